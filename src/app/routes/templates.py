"""
Template Routes: DOCX 템플릿 placeholder 조회.

- POST /api/templates/placeholders → 템플릿별 placeholder 목록
  (headers를 넘기면 채울 수 없는 항목도 표시)
"""

import asyncio
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Form

from src.app.routes.common import http_error
from src.domain.errors import BatchError
from src.domain.schemas import normalize_key
from src.render.word import DocxMerger

api_router = APIRouter()


@api_router.post("/placeholders")
async def list_placeholders(
    templates: list[str] = Form(...),
    headers: list[str] | None = Form(None),
) -> dict[str, Any]:
    """
    템플릿 placeholder 목록.

    Args:
        templates: DOCX 경로 목록
        headers: 스프레드시트 헤더 (선택)
    """
    available = {normalize_key(h) for h in headers or [] if normalize_key(h)}
    result = []

    for template in templates:
        merger = DocxMerger(Path(template))
        try:
            placeholders = await asyncio.to_thread(merger.get_placeholders)
        except BatchError as e:
            raise http_error(e) from e

        entry: dict[str, Any] = {"template": template, "placeholders": placeholders}
        if headers is not None:
            entry["missing"] = [p for p in placeholders if normalize_key(p) not in available]
        result.append(entry)

    return {"success": True, "templates": result}
