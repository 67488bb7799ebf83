"""
Route 공통: app.state 접근 + BatchError → HTTP 에러 변환.
"""

from pathlib import Path

from fastapi import HTTPException, Request

from src.app.services.delivery import ProgressSink
from src.app.services.orchestrator import BatchOrchestrator
from src.core.context import RuntimeContext
from src.core.settings import SettingsStore, config_value
from src.domain.constants import DEFAULT_NAME_FIELDS
from src.domain.errors import (
    BatchError,
    ColumnNotFound,
    DeliveryUnavailable,
    FatalExtraction,
    MergeFailure,
    RenderUnavailable,
    SettingsError,
    SourceNotFound,
    SpreadsheetUnreadable,
    WorkspaceUnavailable,
)
from src.render.pdf import RenderService

_STATUS_BY_ERROR: list[tuple[type[BatchError], int]] = [
    (SourceNotFound, 404),
    (SpreadsheetUnreadable, 422),
    (FatalExtraction, 422),
    (ColumnNotFound, 422),
    (MergeFailure, 422),
    (WorkspaceUnavailable, 422),
    (RenderUnavailable, 409),
    (DeliveryUnavailable, 409),
    (SettingsError, 500),
]


def http_error(error: BatchError) -> HTTPException:
    """BatchError → HTTPException (detail = code + context)."""
    status = next(
        (code for cls, code in _STATUS_BY_ERROR if isinstance(error, cls)),
        400,
    )
    return HTTPException(status_code=status, detail=error.to_dict())


def get_settings(request: Request) -> SettingsStore:
    store: SettingsStore = request.app.state.settings
    return store


def get_context(request: Request) -> RuntimeContext:
    context: RuntimeContext = request.app.state.context
    return context


def get_render_service(request: Request) -> RenderService:
    service: RenderService = request.app.state.render_service
    return service


def build_orchestrator(request: Request, progress: ProgressSink | None = None) -> BatchOrchestrator:
    """요청마다 새 orchestrator (context/render service는 공유)."""
    state = request.app.state
    config: dict = state.config
    logs_dir = config_value(config, "paths", "logs_dir", None)
    return BatchOrchestrator(
        context=state.context,
        render_service=state.render_service,
        transport_factory=state.transport_factory,
        progress=progress,
        name_fields=tuple(config_value(config, "naming", "name_fields", DEFAULT_NAME_FIELDS)),
        logs_dir=Path(logs_dir) if logs_dir else None,
    )
