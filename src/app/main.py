"""
FastAPI 애플리케이션 진입점.

실행:
- 개발: uvicorn src.app.main:app --reload
- 프로덕션: uvicorn src.app.main:app
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI

from src.app.providers.smtp import DEFAULT_SMTP_TIMEOUT, SmtpTransport
from src.app.routes import batch, engine, excel, settings, templates
from src.core.context import RuntimeContext
from src.core.settings import SettingsStore, config_value, load_config
from src.domain.schemas import SmtpConfig
from src.render.pdf import (
    DEFAULT_FUNCTIONAL_TIMEOUT,
    DEFAULT_RENDER_TIMEOUT,
    DEFAULT_VERSION_TIMEOUT,
    RenderService,
    default_probes,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Lifespan
# =============================================================================


def create_app(config_path: Path | None = None) -> FastAPI:
    """
    앱 생성.

    Args:
        config_path: default.yaml 경로 (None이면 프로젝트 루트)
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        애플리케이션 생명주기 관리.

        시작 시: 설정 로드, 저장된 SMTP 복원, 렌더 엔진 탐색
        """
        # Startup
        config = load_config(config_path)
        app.state.config = config

        settings_file = config_value(config, "paths", "settings_file", None)
        store = SettingsStore(Path(settings_file).expanduser() if settings_file else None)
        app.state.settings = store

        context = RuntimeContext(smtp=store.get_smtp_config())
        app.state.context = context

        app.state.render_service = RenderService(
            context,
            probes=default_probes(
                version_timeout=config_value(config, "render", "version_probe_timeout", DEFAULT_VERSION_TIMEOUT),
                functional_timeout=config_value(
                    config, "render", "functional_probe_timeout", DEFAULT_FUNCTIONAL_TIMEOUT
                ),
            ),
            timeout=config_value(config, "render", "timeout_seconds", DEFAULT_RENDER_TIMEOUT),
        )

        smtp_timeout = config_value(config, "delivery", "smtp_timeout_seconds", DEFAULT_SMTP_TIMEOUT)

        def transport_factory(smtp: SmtpConfig) -> SmtpTransport:
            return SmtpTransport(smtp, timeout=smtp_timeout)

        app.state.transport_factory = transport_factory
        app.state.batch_lock = asyncio.Lock()

        if config_value(config, "render", "discover_on_startup", True):
            await app.state.render_service.discover()

        yield

        # Shutdown
        # (리소스 정리 필요 시 여기에 추가)

    app = FastAPI(
        title="Document Merge Dispatch",
        description="스프레드시트 x Word 템플릿 → PDF 일괄 생성 + 메일 발송",
        version="0.1.0",
        lifespan=lifespan,
    )

    # =========================================================================
    # Routes
    # =========================================================================

    app.include_router(settings.api_router, prefix="/api/settings", tags=["Settings API"])
    app.include_router(settings.workspace_router, prefix="/api/workspace", tags=["Workspace API"])
    app.include_router(excel.api_router, prefix="/api/excel", tags=["Excel API"])
    app.include_router(engine.api_router, prefix="/api/engine", tags=["Engine API"])
    app.include_router(templates.api_router, prefix="/api/templates", tags=["Templates API"])
    app.include_router(batch.api_router, prefix="/api/batch", tags=["Batch API"])

    @app.get("/")
    async def root() -> dict[str, Any]:
        """엔드포인트 안내."""
        return {
            "message": "Document Merge Dispatch",
            "endpoints": {
                "settings": "/api/settings",
                "workspace": "/api/workspace",
                "engine": "/api/engine/check",
                "batch": "/api/batch/generate",
            },
        }

    @app.get("/health")
    async def health() -> dict[str, Any]:
        """헬스 체크."""
        return {
            "status": "ok",
            "engine": app.state.context.engine_available,
            "smtp": app.state.context.smtp_configured,
        }

    return app


# =============================================================================
# App Instance
# =============================================================================

app = create_app()


# =============================================================================
# CLI Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.app.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
