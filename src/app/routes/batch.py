"""
Batch Routes: 문서 일괄 생성 / 생성+발송.

- POST /api/batch/generate                 → 렌더 모드, 최종 BatchReport
- POST /api/batch/generate-and-send        → 통합 모드, 최종 BatchReport
- POST /api/batch/generate/stream          → SSE (progress..., done|error)
- POST /api/batch/generate-and-send/stream → SSE

규칙:
- 배치는 한 번에 하나 (렌더 엔진은 공유 외부 프로세스)
- 전제조건 실패 → 4xx (code + context), 단위 실패는 report에 포함
- 클라이언트가 끊어도 배치는 끝까지 실행 (취소 없음)
"""

import asyncio
import json
import logging
from collections.abc import AsyncGenerator, Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Form, Request
from fastapi.responses import StreamingResponse

from src.app.routes.common import build_orchestrator, http_error
from src.app.services.delivery import ProgressSink
from src.app.services.orchestrator import BatchOrchestrator
from src.domain.errors import BatchError, ErrorCodes
from src.domain.schemas import BatchReport

logger = logging.getLogger(__name__)

api_router = APIRouter()

BatchRun = Callable[[BatchOrchestrator], Awaitable[BatchReport]]

# 스트림 배치 task 참조 유지 (클라이언트 연결이 끊겨도 GC되지 않도록)
_background_runs: set[asyncio.Task] = set()


def _generate_run(base_folder: str, excel_file: str, templates: list[str]) -> BatchRun:
    async def run(orchestrator: BatchOrchestrator) -> BatchReport:
        return await orchestrator.generate(base_folder, excel_file, templates)
    return run


def _send_run(
    base_folder: str,
    excel_file: str,
    templates: list[str],
    email_column: str,
    subject: str,
    body: str,
    extra_files: list[str] | None,
) -> BatchRun:
    async def run(orchestrator: BatchOrchestrator) -> BatchReport:
        return await orchestrator.generate_and_send(
            base_folder,
            excel_file,
            templates,
            email_column=email_column,
            subject=subject,
            body=body,
            extra_files=extra_files,
        )
    return run


async def _execute(request: Request, run: BatchRun) -> dict[str, Any]:
    orchestrator = build_orchestrator(request)
    async with request.app.state.batch_lock:
        try:
            report = await run(orchestrator)
        except BatchError as e:
            raise http_error(e) from e
    return report.to_dict()


def _sse(event: str, data: dict[str, Any]) -> str:
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def _stream(request: Request, run: BatchRun) -> StreamingResponse:
    """배치를 background task로 실행하고 progress를 SSE로 전달."""
    queue: asyncio.Queue[tuple[str, dict[str, Any]]] = asyncio.Queue()

    def on_progress(event: Any) -> None:
        queue.put_nowait(("progress", event.to_dict()))

    progress: ProgressSink = on_progress
    orchestrator = build_orchestrator(request, progress=progress)
    lock: asyncio.Lock = request.app.state.batch_lock

    async def worker() -> None:
        async with lock:
            try:
                report = await run(orchestrator)
                queue.put_nowait(("done", report.to_dict()))
            except BatchError as e:
                queue.put_nowait(("error", e.to_dict()))
            except Exception as e:
                logger.exception(f"Batch stream failed: {e}")
                queue.put_nowait(("error", {"code": ErrorCodes.JOB_FAILED, "error": str(e)}))

    async def event_generator() -> AsyncGenerator[str, None]:
        task = asyncio.create_task(worker())
        _background_runs.add(task)
        task.add_done_callback(_background_runs.discard)

        while True:
            event, data = await queue.get()
            yield _sse(event, data)
            if event in ("done", "error"):
                break

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


# =============================================================================
# Render mode
# =============================================================================

@api_router.post("/generate")
async def generate(
    request: Request,
    base_folder: str = Form(...),
    excel_file: str = Form(...),
    templates: list[str] = Form(...),
) -> dict[str, Any]:
    """record x template 전부 PDF로 렌더 후 salida/에 저장."""
    return await _execute(request, _generate_run(base_folder, excel_file, templates))


@api_router.post("/generate/stream")
async def generate_stream(
    request: Request,
    base_folder: str = Form(...),
    excel_file: str = Form(...),
    templates: list[str] = Form(...),
) -> StreamingResponse:
    """렌더 모드 (SSE 진행 이벤트)."""
    return _stream(request, _generate_run(base_folder, excel_file, templates))


# =============================================================================
# Integrated mode
# =============================================================================

@api_router.post("/generate-and-send")
async def generate_and_send(
    request: Request,
    base_folder: str = Form(...),
    excel_file: str = Form(...),
    templates: list[str] = Form(...),
    email_column: str = Form(...),
    subject: str = Form(""),
    body: str = Form(""),
    extra_files: list[str] | None = Form(None),
) -> dict[str, Any]:
    """렌더 → record별 1통 발송 → 저장."""
    run = _send_run(base_folder, excel_file, templates, email_column, subject, body, extra_files)
    return await _execute(request, run)


@api_router.post("/generate-and-send/stream")
async def generate_and_send_stream(
    request: Request,
    base_folder: str = Form(...),
    excel_file: str = Form(...),
    templates: list[str] = Form(...),
    email_column: str = Form(...),
    subject: str = Form(""),
    body: str = Form(""),
    extra_files: list[str] | None = Form(None),
) -> StreamingResponse:
    """통합 모드 (SSE 진행 이벤트)."""
    run = _send_run(base_folder, excel_file, templates, email_column, subject, body, extra_files)
    return _stream(request, run)
