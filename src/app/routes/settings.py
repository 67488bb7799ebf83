"""
Settings Routes: 사용자 설정, SMTP, 작업 폴더.

- GET/POST /api/settings          → config.json 조회 / merge 저장
- POST /api/settings/smtp         → RuntimeContext 교체 + 저장
- GET /api/workspace              → 저장된 작업 폴더 (하위 폴더 보장)
- POST /api/workspace             → 작업 폴더 선택 (하위 폴더 생성 + 저장)
"""

import logging
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Body, Form, HTTPException, Request

from src.app.routes.common import get_context, get_settings, http_error
from src.core.settings import SMTP_CONFIG_KEY
from src.core.storage import ensure_subfolders
from src.domain.errors import BatchError, ErrorCodes
from src.domain.schemas import SmtpConfig

logger = logging.getLogger(__name__)

api_router = APIRouter()
workspace_router = APIRouter()


def _masked(settings: dict[str, Any]) -> dict[str, Any]:
    """응답용: SMTP 비밀번호 제거."""
    smtp = settings.get(SMTP_CONFIG_KEY)
    if not smtp:
        return settings
    masked = {k: v for k, v in smtp.items() if k not in ("pass", "password")}
    masked["has_password"] = bool(smtp.get("pass") or smtp.get("password"))
    return {**settings, SMTP_CONFIG_KEY: masked}


# =============================================================================
# Settings
# =============================================================================

@api_router.get("")
async def read_settings(request: Request) -> dict[str, Any]:
    """저장된 설정 (비밀번호 제외)."""
    return _masked(get_settings(request).load())


@api_router.post("")
async def save_settings(
    request: Request,
    payload: dict[str, Any] = Body(...),
) -> dict[str, Any]:
    """
    부분 설정 저장 (기존 키 유지).

    smtpConfig가 포함되면 실행 중인 context도 교체.
    smtpConfig를 해석할 수 없으면 아무것도 저장하지 않고 422.
    """
    smtp = None
    if payload.get(SMTP_CONFIG_KEY):
        try:
            smtp = SmtpConfig.from_dict(payload[SMTP_CONFIG_KEY])
        except (AttributeError, TypeError, ValueError) as e:
            raise HTTPException(
                status_code=422,
                detail={"code": ErrorCodes.SMTP_CONFIG_INVALID, "error": str(e)},
            ) from e

    try:
        merged = get_settings(request).save(payload)
    except BatchError as e:
        raise http_error(e) from e

    if smtp is not None:
        get_context(request).reconfigure(smtp=smtp)

    return {"success": True, "settings": _masked(merged)}


@api_router.post("/smtp")
async def save_smtp(
    request: Request,
    host: str = Form(...),
    port: int = Form(587),
    secure: bool = Form(False),
    user: str = Form(""),
    password: str = Form(""),
) -> dict[str, Any]:
    """SMTP 설정: 즉시 사용 가능하도록 context 교체 후 저장."""
    smtp = SmtpConfig(host=host, port=port, secure=secure, user=user, password=password)
    get_context(request).reconfigure(smtp=smtp)

    try:
        get_settings(request).save_smtp_config(smtp)
    except BatchError as e:
        raise http_error(e) from e

    return {"success": True, "host": smtp.host, "port": smtp.port, "secure": smtp.secure}


# =============================================================================
# Workspace (base folder)
# =============================================================================

@workspace_router.get("")
async def load_workspace(request: Request) -> dict[str, Any]:
    """
    저장된 작업 폴더.

    폴더가 남아 있으면 하위 폴더를 다시 보장.
    """
    base = get_settings(request).get_base_folder()
    if base is None or not base.is_dir():
        return {"success": False, "base_folder": None, "from_config": False}

    created = ensure_subfolders(base)
    return {
        "success": True,
        "base_folder": str(base),
        "created": created,
        "from_config": True,
    }


@workspace_router.post("")
async def select_workspace(
    request: Request,
    base_folder: str = Form(...),
) -> dict[str, Any]:
    """작업 폴더 선택: 하위 폴더 생성 + 설정 저장."""
    base = Path(base_folder).expanduser()
    if not base.is_dir():
        raise HTTPException(
            status_code=404,
            detail={"code": "BASE_FOLDER_NOT_FOUND", "path": str(base)},
        )

    created = ensure_subfolders(base)
    try:
        get_settings(request).save_base_folder(base)
    except BatchError as e:
        raise http_error(e) from e

    logger.info(f"Workspace selected: {base} (created {created})")
    return {"success": True, "base_folder": str(base), "created": created}
