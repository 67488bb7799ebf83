"""
Excel Routes: 스프레드시트 미리보기.

- POST /api/excel/read → headers + 앞 5행 + 전체 행 수
"""

import asyncio
from typing import Any

from fastapi import APIRouter, Form

from src.app.routes.common import http_error
from src.domain.errors import BatchError
from src.ingest.excel import ExcelExtractor

api_router = APIRouter()


@api_router.post("/read")
async def read_excel_preview(path: str = Form(...)) -> dict[str, Any]:
    """
    스프레드시트 미리보기.

    Returns:
        {"success": True, "headers", "preview_rows", "total_rows"}
    """
    try:
        sheet = await asyncio.to_thread(ExcelExtractor().read, path)
    except BatchError as e:
        raise http_error(e) from e

    return {"success": True, **sheet.to_dict()}
