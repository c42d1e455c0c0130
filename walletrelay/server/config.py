from __future__ import annotations

from dataclasses import dataclass
import os

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class BridgeSettings:
    relay_http_url: str
    approval_base_url: str
    upstream_timeout_seconds: float
    cors_allow_origins: list[str]
    version: str


def _parse_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def get_settings() -> BridgeSettings:
    relay_http_url = (os.getenv("RELAY_HTTP_URL") or os.getenv("WS_SERVER_URL") or "http://localhost:3001").strip()
    approval_base_url = os.getenv("APPROVAL_BASE_URL", "http://localhost:3000").strip()
    cors_raw = os.getenv("CORS_ALLOW_ORIGINS", "").strip()
    cors_allow_origins = [origin.strip() for origin in cors_raw.split(",") if origin.strip()]
    if "*" in cors_allow_origins:
        raise ValueError("CORS_ALLOW_ORIGINS must not include wildcard '*'")
    return BridgeSettings(
        relay_http_url=relay_http_url.rstrip("/"),
        approval_base_url=approval_base_url.rstrip("/"),
        upstream_timeout_seconds=_parse_float(os.getenv("RELAY_HTTP_TIMEOUT"), 10.0),
        cors_allow_origins=cors_allow_origins,
        version=os.getenv("WALLET_RELAY_VERSION", "0.1.0"),
    )
