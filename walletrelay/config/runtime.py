from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


# Load environment variables from a local .env file if present.
load_dotenv()


@dataclass(frozen=True)
class ClientSettings:
    ws_url: str = "ws://localhost:3001"
    reconnect_base_delay: float = 1.0
    max_reconnect_attempts: int = 3
    keepalive_interval: float = 30.0
    approval_timeout: Optional[float] = None


def _parse_int(value: str | None, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float(value: str | None, default: float) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _parse_timeout(value: str | None) -> Optional[float]:
    """Return the approval timeout in seconds, or None when disabled."""

    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized in {"", "0", "none", "off", "never"}:
        return None
    parsed = _parse_float(normalized, 0.0)
    return parsed if parsed > 0 else None


def get_relay_ws_url() -> str:
    return os.getenv("RELAY_WS_URL", "ws://localhost:3001").strip()


def get_client_settings() -> ClientSettings:
    return ClientSettings(
        ws_url=get_relay_ws_url(),
        reconnect_base_delay=_parse_float(os.getenv("RELAY_RECONNECT_BASE_DELAY"), 1.0),
        max_reconnect_attempts=_parse_int(os.getenv("RELAY_MAX_RECONNECT_ATTEMPTS"), 3),
        keepalive_interval=_parse_float(os.getenv("RELAY_KEEPALIVE_INTERVAL"), 30.0),
        approval_timeout=_parse_timeout(os.getenv("RELAY_APPROVAL_TIMEOUT")),
    )
