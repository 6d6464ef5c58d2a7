from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.assets import router as assets_router
from .api.deps import AppServices, build_services
from .api.generate import router as generate_router
from .core.config import settings


def _cors_allow_origins() -> list[str]:
    """CORS origins for browser-based clients.

    Configure with `CORS_ALLOW_ORIGINS` as a comma-separated list.
    Defaults to local dev origins.
    """
    env = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    if env:
        return [o.strip().rstrip("/") for o in env.split(",") if o.strip()]
    return [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]


def create_app(services: Optional[AppServices] = None) -> FastAPI:
    logging.basicConfig(level=settings.log_level)
    app = FastAPI(title=settings.app_name)
    app.state.services = services or build_services(settings)

    @app.get("/")
    def root() -> dict:
        return {"ok": True, "docs": "/docs", "health": "/healthz"}

    @app.get("/healthz")
    def healthz() -> dict:
        return {"ok": True}

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_allow_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(generate_router)
    app.include_router(assets_router)
    return app
