"""Domain layer: errors, schemas and constants."""

from .errors import (
    BatchError,
    ColumnNotFound,
    DeliveryFailure,
    DeliveryUnavailable,
    ErrorCodes,
    FatalExtraction,
    MergeFailure,
    PersistFailure,
    RenderFailure,
    RenderUnavailable,
    SourceNotFound,
)
from .schemas import (
    ArtifactGroup,
    BatchMode,
    BatchReport,
    BatchState,
    ProgressEvent,
    Record,
    RenderedArtifact,
    RunLog,
    SmtpConfig,
)

__all__ = [
    # errors
    "BatchError",
    "ErrorCodes",
    "FatalExtraction",
    "SourceNotFound",
    "MergeFailure",
    "RenderUnavailable",
    "RenderFailure",
    "ColumnNotFound",
    "DeliveryUnavailable",
    "DeliveryFailure",
    "PersistFailure",
    # schemas
    "Record",
    "RenderedArtifact",
    "ArtifactGroup",
    "ProgressEvent",
    "BatchState",
    "BatchMode",
    "BatchReport",
    "RunLog",
    "SmtpConfig",
]
