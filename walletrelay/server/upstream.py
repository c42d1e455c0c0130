from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from ..core.logger import get_logger
from .config import BridgeSettings


class UpstreamError(Exception):
    """Base error for relay endpoint lookups."""


class UpstreamUnavailableError(UpstreamError):
    """The relay endpoint could not be reached or answered unusably."""


class SessionNotFoundError(UpstreamError):
    """The relay endpoint has no such session."""


class NoQueuedTransactionError(UpstreamError):
    """The session exists but has no queued transaction."""


@dataclass(frozen=True)
class SessionTransaction:
    session_id: str
    transaction_data: Dict[str, Any]
    status: Optional[str]


def _json_or_none(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _mentions_transaction(body: Any) -> bool:
    if not isinstance(body, dict):
        return False
    if body.get("sessionExists") is True:
        return True
    error = str(body.get("error") or "").lower()
    return "no transaction" in error or "no queued" in error


class RelayUpstream:
    """Reads a session's queued transaction from the relay endpoint's HTTP path."""

    def __init__(self, settings: BridgeSettings, session: requests.Session | None = None) -> None:
        self.base_url = settings.relay_http_url
        self.timeout = settings.upstream_timeout_seconds
        self._http = session or requests.Session()
        self._logger = get_logger()

    def fetch_session_transaction(self, session_id: str) -> SessionTransaction:
        url = f"{self.base_url}/session/{quote(session_id, safe='')}/transaction"
        try:
            response = self._http.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            self._logger.error("Relay endpoint unreachable for %s: %s", session_id, exc)
            raise UpstreamUnavailableError("Could not fetch session data") from exc

        body = _json_or_none(response)
        if response.status_code == 404:
            if _mentions_transaction(body):
                raise NoQueuedTransactionError(session_id)
            raise SessionNotFoundError(session_id)
        if not response.ok:
            self._logger.error("Relay endpoint returned %s for %s", response.status_code, session_id)
            raise UpstreamUnavailableError(f"Relay endpoint returned {response.status_code}")
        if not isinstance(body, dict):
            raise UpstreamUnavailableError("Relay endpoint returned an invalid response")

        transaction_data = body.get("transactionData")
        if not transaction_data:
            raise NoQueuedTransactionError(session_id)
        if not isinstance(transaction_data, dict):
            raise UpstreamUnavailableError("Relay endpoint returned invalid transaction data")
        status = body.get("status")
        return SessionTransaction(
            session_id=session_id,
            transaction_data=transaction_data,
            status=None if status is None else str(status),
        )
