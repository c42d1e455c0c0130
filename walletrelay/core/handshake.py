from __future__ import annotations

import hashlib
import json
from enum import Enum
from typing import Optional

from .audit import audit_event
from .messages import InitSession, SessionInitialized
from .schemas import Session, SessionContext, SessionError, TransactionRequest


def queued_transaction_id(session_id: str, payload: dict) -> str:
    """Stable id for a queued request the relay sent without one.

    Replayed handshakes deliver the same payload again and must map to the
    same id so the correlator treats them as duplicates.
    """

    digest = hashlib.sha256(
        json.dumps({"sessionId": session_id, "payload": payload}, sort_keys=True, default=str).encode("utf-8")
    ).hexdigest()
    return f"tx-{digest[:24]}"


class HandshakePhase(str, Enum):
    UNBOUND = "unbound"
    PENDING = "pending"
    ESTABLISHED = "established"
    FAILED = "failed"


class SessionHandshake:
    """Binds a connection to a session and mirrors the session it returns."""

    def __init__(self, session_id: Optional[str]) -> None:
        if not session_id:
            raise SessionError("No session ID found. Please start from the correct link.")
        self.session_id = session_id
        self.phase = HandshakePhase.UNBOUND
        self.session = Session(session_id=session_id)
        self.error: Optional[str] = None

    @property
    def established(self) -> bool:
        return self.phase == HandshakePhase.ESTABLISHED

    def begin(self) -> InitSession:
        """Return the ``init_session`` message for a freshly opened connection."""

        if self.phase == HandshakePhase.FAILED:
            raise SessionError(self.error or "Session handshake failed")
        self.phase = HandshakePhase.PENDING
        return InitSession(session_id=self.session_id)

    def accept(self, ack: SessionInitialized) -> SessionContext:
        if self.phase != HandshakePhase.PENDING:
            raise SessionError("Unexpected session_initialized: no handshake in progress")
        if ack.error:
            self.fail(ack.error)
        transaction = None
        if ack.transaction_data is not None:
            transaction = TransactionRequest(
                transaction_id=ack.transaction_id or queued_transaction_id(self.session_id, ack.transaction_data),
                payload=ack.transaction_data,
            )
        self.session.user_id = ack.user_id or self.session.user_id
        self.session.username = ack.username or self.session.username
        self.session.queued_transaction = transaction
        self.phase = HandshakePhase.ESTABLISHED
        audit_event(
            "session_bound",
            session_id=self.session_id,
            user_id=self.session.user_id,
            has_transaction=transaction is not None,
        )
        return SessionContext(user_id=self.session.user_id, username=self.session.username, transaction=transaction)

    def fail(self, message: str) -> None:
        """Mark the handshake failed and raise; the caller must not retry."""

        self.phase = HandshakePhase.FAILED
        self.error = message
        audit_event("session_failed", session_id=self.session_id, error=message)
        raise SessionError(message)

    def reset(self) -> None:
        """Forget a pending or established handshake after the connection drops."""

        if self.phase in {HandshakePhase.PENDING, HandshakePhase.ESTABLISHED}:
            self.phase = HandshakePhase.UNBOUND
