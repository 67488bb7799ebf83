"""
Data schemas for the batch pipeline.

규칙:
- Record 키는 정규화된 헤더 (strip + lower)
- 값은 항상 str (빈 셀 → "")
- 단위 작업 결과는 raise 대신 결과 타입(JobOutcome)으로 수집
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any


def normalize_key(name: Any) -> str:
    """헤더/placeholder 이름 정규화 (대소문자 무시 lookup 기준)."""
    if name is None:
        return ""
    return str(name).strip().lower()


# =============================================================================
# State Machine
# =============================================================================

class BatchState(str, Enum):
    """
    배치 실행 상태.

    IDLE → EXTRACTING → RENDERING → (DELIVERING) → PERSISTING → DONE
    FAILED는 렌더링 시작 전에만 도달 (job 단위 실패는 fatal 아님)
    """
    IDLE = "idle"
    EXTRACTING = "extracting"
    RENDERING = "rendering"
    DELIVERING = "delivering"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


class BatchMode(str, Enum):
    """실행 모드."""
    GENERATE = "generate"                  # 렌더 후 즉시 저장
    GENERATE_AND_SEND = "generate_and_send"  # 전부 버퍼링 → 발송 → 저장


# =============================================================================
# Extraction
# =============================================================================

@dataclass
class SheetData:
    """
    스프레드시트 추출 결과.

    headers: 첫 행 값 그대로 (정규화 안 함)
    rows: 빈 행 제외, 셀 값은 trim된 문자열
    """
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)
    preview_size: int = 5

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    @property
    def preview_rows(self) -> list[list[str]]:
        """미리보기 (rows의 prefix)."""
        return self.rows[: self.preview_size]

    def to_dict(self) -> dict[str, Any]:
        return {
            "headers": self.headers,
            "preview_rows": self.preview_rows,
            "total_rows": self.total_rows,
        }


@dataclass(frozen=True)
class Record:
    """
    스프레드시트 1행 = 정규화된 필드명 → 문자열 값.

    생성 후 불변. ordinal은 추출 순서 기준 1부터.
    """
    ordinal: int
    fields: Mapping[str, str]

    @classmethod
    def from_row(cls, ordinal: int, headers: list[str], row: list[str]) -> "Record":
        """
        헤더 위치 기준으로 행을 정렬하여 Record 생성.

        - 빈 헤더는 무시
        - 중복 헤더는 오른쪽 값이 우선
        - 행이 헤더보다 짧으면 ""
        """
        data: dict[str, str] = {}
        for idx, header in enumerate(headers):
            key = normalize_key(header)
            if not key:
                continue
            value = row[idx] if idx < len(row) else ""
            data[key] = str(value if value is not None else "").strip()
        return cls(ordinal=ordinal, fields=MappingProxyType(data))

    def get(self, name: str, default: str | None = None) -> str | None:
        """대소문자 무시 조회."""
        return self.fields.get(normalize_key(name), default)

    def __contains__(self, name: object) -> bool:
        return normalize_key(name) in self.fields

    def first_of(self, names: tuple[str, ...] | list[str]) -> str:
        """names 중 처음으로 값이 있는 필드 (없으면 "")."""
        for name in names:
            value = self.get(name)
            if value:
                return value
        return ""


# =============================================================================
# Jobs & Artifacts
# =============================================================================

@dataclass(frozen=True)
class MergeJob:
    """(record, template, sequence index). 구조적 identity만 가짐."""
    record: Record
    template: Path
    sequence: int  # row-major cross-product index (1부터)


@dataclass
class RenderedArtifact:
    """렌더링된 PDF (메모리) + 파일명."""
    file_name: str
    content: bytes
    template: Path
    record_ordinal: int
    delivery_key: str | None = None
    saved_path: Path | None = None

    @property
    def size(self) -> int:
        return len(self.content)


@dataclass
class ArtifactGroup:
    """
    record 1건의 전체 artifact (모든 템플릿).

    artifact가 0개인 그룹은 발송/카운트에서 제외.
    """
    delivery_key: str
    record_ordinal: int
    label: str = ""
    artifacts: list[RenderedArtifact] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.artifacts


@dataclass
class JobOutcome:
    """merge job 1건 결과 (artifact 또는 error)."""
    job: MergeJob
    artifact: RenderedArtifact | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.artifact is not None and self.error is None


# =============================================================================
# Progress
# =============================================================================

@dataclass(frozen=True)
class ProgressEvent:
    """
    진행 상황 이벤트 (단위 작업 1건마다 push).

    phase: rendering | generating | sending
    current는 phase 내에서 단조 증가.
    """
    phase: str
    current: int
    total: int
    file_name: str | None = None
    record: str | None = None
    template: str | None = None
    delivery_key: str | None = None
    attachments: int | None = None
    ok: bool = True

    def to_dict(self) -> dict[str, Any]:
        result = {
            "phase": self.phase,
            "current": self.current,
            "total": self.total,
            "fileName": self.file_name,
            "record": self.record,
            "template": self.template,
            "email": self.delivery_key,
            "attachments": self.attachments,
            "ok": self.ok,
        }
        return {k: v for k, v in result.items() if v is not None}


# =============================================================================
# Delivery / Transport
# =============================================================================

@dataclass(frozen=True)
class SmtpConfig:
    """
    SMTP 접속 정보.

    별도 검증 단계 없음 → 발송 시점에 transport 에러로 드러남.
    """
    host: str
    port: int = 587
    secure: bool = False  # True = implicit TLS (465)
    user: str = ""
    password: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SmtpConfig":
        """저장된 설정 dict → SmtpConfig ("pass" 또는 "password" 허용)."""
        password = data.get("password")
        if password is None:
            password = data.get("pass", "")
        return cls(
            host=str(data.get("host", "")),
            port=int(data.get("port") or 587),
            secure=bool(data.get("secure", False)),
            user=str(data.get("user", "")),
            password=str(password or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "host": self.host,
            "port": self.port,
            "secure": self.secure,
            "user": self.user,
            "pass": self.password,
        }


@dataclass
class DeliveryError:
    """record 1건 발송 실패 기록."""
    delivery_key: str
    error: str
    code: str = "DELIVERY_FAILED"

    def to_dict(self) -> dict[str, Any]:
        return {"email": self.delivery_key, "code": self.code, "error": self.error}


@dataclass
class DeliveryReport:
    """발송 phase 결과."""
    attempted: int = 0
    sent: int = 0
    errors: list[DeliveryError] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "sent": self.sent,
            "failed": self.failed,
            "errors": [e.to_dict() for e in self.errors],
        }


# =============================================================================
# Render Engine
# =============================================================================

@dataclass(frozen=True)
class DiscoveryResult:
    """렌더 엔진 탐색 결과."""
    available: bool
    handle: str | None = None
    method: str | None = None  # command, path, manual
    version: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "available": self.available,
            "path": self.handle,
            "method": self.method,
            "version": self.version,
        }


# =============================================================================
# Logging Schemas
# =============================================================================

@dataclass
class FailureLog:
    """
    단위 작업 실패/경고 기록.

    unit 예: "job:3", "record:2", "artifact:Juan_carta.pdf"
    """
    code: str
    unit: str
    message: str
    level: str = "error"
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "code": self.code,
            "unit": self.unit,
            "message": self.message,
            "context": self.context,
        }


@dataclass
class RunLog:
    """
    실행 로그.

    배치 run 단위 실행 결과 및 실패 목록.
    """
    run_id: str
    mode: str
    started_at: str  # ISO 8601
    finished_at: str | None = None
    result: str = "pending"  # pending, success, failed
    state: str = BatchState.IDLE.value

    failures: list[FailureLog] = field(default_factory=list)
    counts: dict[str, int] = field(default_factory=dict)

    # Error (if failed)
    error_code: str | None = None
    error_context: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "mode": self.mode,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "result": self.result,
            "state": self.state,
            "failures": [f.to_dict() for f in self.failures],
            "counts": self.counts,
            "error_code": self.error_code,
            "error_context": self.error_context,
        }


# =============================================================================
# Final Summary
# =============================================================================

@dataclass
class BatchReport:
    """
    배치 최종 요약.

    phase별 시도/성공/실패 건수를 항상 포함 (알려진 실패는 누락 금지).
    """
    run_id: str
    mode: BatchMode
    state: BatchState = BatchState.IDLE
    total_records: int = 0
    total_templates: int = 0

    # Render phase
    jobs_attempted: int = 0
    jobs_succeeded: int = 0
    jobs_failed: int = 0
    skipped_records: int = 0  # 통합 모드: 이메일 공백

    # Persist phase
    files: list[Path] = field(default_factory=list)
    persist_failed: int = 0

    # Delivery phase (통합 모드만)
    delivery: DeliveryReport | None = None

    failures: list[FailureLog] = field(default_factory=list)

    @property
    def persisted(self) -> int:
        return len(self.files)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.state == BatchState.DONE,
            "run_id": self.run_id,
            "mode": self.mode.value,
            "state": self.state.value,
            "total_records": self.total_records,
            "total_templates": self.total_templates,
            "render": {
                "attempted": self.jobs_attempted,
                "succeeded": self.jobs_succeeded,
                "failed": self.jobs_failed,
                "skipped_records": self.skipped_records,
            },
            "persist": {
                "attempted": self.persisted + self.persist_failed,
                "succeeded": self.persisted,
                "failed": self.persist_failed,
            },
            "files": [str(p) for p in self.files],
            "failures": [f.to_dict() for f in self.failures],
        }
        if self.delivery is not None:
            result["delivery"] = self.delivery.to_dict()
        return result
