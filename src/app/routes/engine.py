"""
Engine Routes: 렌더 엔진 탐색 / 수동 선택.

- GET /api/engine/check  → 자동 탐색 (성공 시 캐시)
- POST /api/engine/select → 실행 파일 직접 지정 (검증 후 교체)
"""

from typing import Any

from fastapi import APIRouter, Form, Request

from src.app.routes.common import get_render_service, http_error
from src.domain.errors import BatchError

api_router = APIRouter()


@api_router.get("/check")
async def check_engine(request: Request) -> dict[str, Any]:
    """
    엔진 상태.

    이미 handle이 있으면 탐색하지 않고 그대로 반환.
    """
    service = get_render_service(request)
    if service.handle:
        return {"available": True, "path": service.handle, "method": "cached"}

    result = await service.discover()
    return result.to_dict()


@api_router.post("/select")
async def select_engine(request: Request, path: str = Form(...)) -> dict[str, Any]:
    """수동 선택 (유효하지 않으면 409, 기존 handle 유지)."""
    try:
        result = await get_render_service(request).select_manually(path)
    except BatchError as e:
        raise http_error(e) from e

    return {"success": True, **result.to_dict()}
