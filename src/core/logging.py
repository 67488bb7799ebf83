"""
Run logging: run log schema, failure events, summary counts

규칙:
- 실패 기록 필수 컨텍스트: level, code, unit, message
- 단위 작업 실패는 모두 기록 (조용한 skip 금지)
- run log는 성공/실패/중단 모두 저장
"""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from src.core.ids import generate_run_id
from src.core.storage import atomic_write_json
from src.domain.errors import BatchError
from src.domain.schemas import BatchState, FailureLog, RunLog

# =============================================================================
# Run Log Management
# =============================================================================


def create_run_log(mode: str) -> RunLog:
    """
    새 RunLog 생성.

    Args:
        mode: 실행 모드 (generate, generate_and_send)

    Returns:
        초기화된 RunLog
    """
    now = datetime.now(UTC).isoformat()

    return RunLog(
        run_id=generate_run_id(),
        mode=mode,
        started_at=now,
        result="pending",
    )


def emit_failure(
    run_log: RunLog,
    code: str,
    unit: str,
    message: str,
    level: str = "error",
    **context: Any,
) -> FailureLog:
    """
    단위 작업 실패(또는 경고) 기록.

    Args:
        run_log: RunLog 인스턴스
        code: 에러/경고 코드
        unit: 단위 식별자 (예: job:3, record:2)
        message: 사람이 읽는 메시지
        level: error 또는 warning
        **context: 추가 컨텍스트 (template, email 등)

    Returns:
        기록된 FailureLog
    """
    failure = FailureLog(
        code=code,
        unit=unit,
        message=message,
        level=level,
        context=context,
    )
    run_log.failures.append(failure)
    return failure


def emit_error(run_log: RunLog, unit: str, error: Exception, **context: Any) -> FailureLog:
    """예외 → FailureLog (BatchError면 code/context 보존)."""
    if isinstance(error, BatchError):
        return emit_failure(
            run_log,
            code=error.code,
            unit=unit,
            message=str(error),
            **{**error.context, **context},
        )
    return emit_failure(
        run_log,
        code="JOB_FAILED",
        unit=unit,
        message=f"{type(error).__name__}: {error}",
        **context,
    )


def complete_run_log(
    run_log: RunLog,
    state: BatchState,
    counts: dict[str, int] | None = None,
    error_code: str | None = None,
    error_context: dict[str, Any] | None = None,
) -> None:
    """
    RunLog 완료 처리.

    Args:
        run_log: RunLog 인스턴스
        state: 최종 상태 (DONE 또는 FAILED)
        counts: phase별 집계
        error_code: 에러 코드 (FAILED 시)
        error_context: 에러 컨텍스트 (FAILED 시)
    """
    run_log.finished_at = datetime.now(UTC).isoformat()
    run_log.state = state.value
    run_log.result = "success" if state == BatchState.DONE else "failed"
    if counts:
        run_log.counts = dict(counts)

    if state == BatchState.FAILED:
        run_log.error_code = error_code
        run_log.error_context = error_context


def save_run_log(run_log: RunLog, logs_dir: Path) -> Path:
    """
    RunLog를 파일로 저장.

    Args:
        run_log: RunLog 인스턴스
        logs_dir: logs/ 디렉터리 경로

    Returns:
        저장된 파일 경로
    """
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / f"run_{run_log.run_id}.json"
    atomic_write_json(log_path, run_log.to_dict())
    return log_path


def load_run_log(log_path: Path) -> dict[str, Any]:
    """RunLog 파일 로드."""
    data: dict[str, Any] = json.loads(log_path.read_text(encoding="utf-8"))
    return data


def list_run_logs(logs_dir: Path) -> list[Path]:
    """
    logs/ 디렉터리의 모든 run log 파일 목록.

    Returns:
        로그 파일 경로 목록 (최신순)
    """
    if not logs_dir.exists():
        return []

    logs = list(logs_dir.glob("run_*.json"))
    logs.sort(key=lambda p: p.stat().st_mtime, reverse=True)
    return logs
