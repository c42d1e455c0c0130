from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from .logger import get_logger


def safe_excerpt(value: str, *, max_len: int = 80) -> str:
    """Collapse whitespace and cut ``value`` for log lines."""

    compact = " ".join(value.split())
    if len(compact) <= max_len:
        return compact
    return f"{compact[:max_len]}..."


def audit_record(event: str, **fields: Any) -> dict[str, Any]:
    record: dict[str, Any] = {"event": event, "timestamp": datetime.now(tz=timezone.utc).isoformat()}
    record.update({key: value for key, value in fields.items() if value is not None})
    return record


def audit_event(event: str, **fields: Any) -> None:
    """Log one ``audit {json}`` line for a session or transaction lifecycle event."""

    record = audit_record(event, **fields)
    get_logger().info("audit %s", json.dumps(record, sort_keys=True, default=str))
