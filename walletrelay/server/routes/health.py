from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from ..schemas import HealthResponse


router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def bridge_health(request: Request) -> HealthResponse:
    """Liveness of the bridge itself; the relay endpoint is not contacted."""

    settings = request.app.state.settings
    return HealthResponse(
        status="ok",
        version=settings.version,
        upstream=settings.relay_http_url,
        time=datetime.now(timezone.utc).isoformat(),
    )
