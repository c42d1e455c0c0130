from __future__ import annotations

from typing import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..core.logger import get_logger
from .config import BridgeSettings, get_settings
from .routes import health, session
from .upstream import RelayUpstream


def create_app(settings: BridgeSettings | None = None, upstream: RelayUpstream | None = None) -> FastAPI:
    settings = settings or get_settings()
    logger = get_logger()
    app = FastAPI(title="Wallet Relay Bridge", version=settings.version)
    app.state.settings = settings
    app.state.upstream = upstream or RelayUpstream(settings)

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_credentials=False,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type"],
        )

    @app.middleware("http")
    async def security_headers(request: Request, call_next: Callable):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        return response

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "internal_error", "message": "Internal server error"},
        )

    app.include_router(health.router)
    app.include_router(session.router)

    return app


app = create_app()
