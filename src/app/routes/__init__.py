"""
FastAPI Routes.

API 라우트 (REST + SSE)
"""

from . import batch, engine, excel, settings, templates

__all__ = ["batch", "engine", "excel", "settings", "templates"]
