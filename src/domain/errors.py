"""
Error definitions for the batch pipeline.

에러 범위 규칙:
- 배치 전제조건 위반 → 즉시 raise (부수효과 시작 전)
- 단위 작업(merge 1건, render 1건, 발송 1건, 저장 1건) 실패 → 해당 단위에서 잡고 기록 후 skip
- 조용한 실패 금지 → 모든 실패는 BatchReport / RunLog에 남긴다
"""

from typing import Any


class BatchError(Exception):
    """
    파이프라인 에러 기반 클래스.

    code + context 구조로 로그/JSON에 그대로 남길 수 있음.

    Usage:
        raise MergeFailure(ErrorCodes.MERGE_FAILED, template="carta.docx", error="...")
    """

    def __init__(self, code: str, **context: Any) -> None:
        self.code = code
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"[{self.code}] {ctx_str}" if ctx_str else f"[{self.code}]"

    def to_dict(self) -> dict[str, Any]:
        """로그/JSON 직렬화용."""
        return {
            "code": self.code,
            **self.context,
        }


# =============================================================================
# Batch-level (fatal, 전제조건)
# =============================================================================

class FatalExtraction(BatchError):
    """스프레드시트를 읽을 수 없음 → 렌더링 시작 전 배치 중단."""


class ColumnNotFound(BatchError):
    """발송용 이메일 컬럼이 헤더에 없음 (통합 모드 전용)."""


class DeliveryUnavailable(BatchError):
    """SMTP 설정 없음 (통합 모드 전용)."""


class RenderUnavailable(BatchError):
    """렌더 엔진 handle 없음, 또는 수동 선택이 유효하지 않음."""


class WorkspaceUnavailable(BatchError):
    """작업 폴더 하위 구조를 만들 수 없음 (경로가 파일, 권한 없음 등)."""


# =============================================================================
# Extractor
# =============================================================================

class SourceNotFound(BatchError):
    """스프레드시트 경로가 존재하지 않음."""


class SpreadsheetUnreadable(BatchError):
    """워크북 열기 실패 (손상, 형식 불일치 등)."""


# =============================================================================
# Unit-level (per job / per record / per artifact)
# =============================================================================

class MergeFailure(BatchError):
    """템플릿 읽기/파싱 실패. (record, template) 1건 단위."""


class RenderFailure(BatchError):
    """엔진이 변환 중 에러 보고. job 1건 단위."""


class DeliveryFailure(BatchError):
    """메시지 발송 실패. record 1건 단위."""


class PersistFailure(BatchError):
    """salida/ 저장 실패. artifact 1건 단위."""


class SettingsError(BatchError):
    """설정 파일 쓰기 실패."""


# =============================================================================
# Error Codes
# =============================================================================

class ErrorCodes:
    """에러 코드 상수."""

    # === Extract ===
    SOURCE_NOT_FOUND = "SOURCE_NOT_FOUND"
    SPREADSHEET_UNREADABLE = "SPREADSHEET_UNREADABLE"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    COLUMN_NOT_FOUND = "COLUMN_NOT_FOUND"
    WORKSPACE_UNAVAILABLE = "WORKSPACE_UNAVAILABLE"

    # === Merge ===
    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    MERGE_FAILED = "MERGE_FAILED"
    PLACEHOLDER_UNRESOLVED = "PLACEHOLDER_UNRESOLVED"  # warning, not reject

    # === Render ===
    ENGINE_NOT_CONFIGURED = "ENGINE_NOT_CONFIGURED"
    ENGINE_SELECTION_INVALID = "ENGINE_SELECTION_INVALID"
    RENDER_FAILED = "RENDER_FAILED"

    # === Delivery ===
    SMTP_NOT_CONFIGURED = "SMTP_NOT_CONFIGURED"
    SMTP_CONFIG_INVALID = "SMTP_CONFIG_INVALID"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    EMAIL_BLANK = "EMAIL_BLANK"  # warning, not reject

    # === Storage ===
    PERSIST_FAILED = "PERSIST_FAILED"
    SETTINGS_WRITE_FAILED = "SETTINGS_WRITE_FAILED"

    # === Unexpected ===
    JOB_FAILED = "JOB_FAILED"
