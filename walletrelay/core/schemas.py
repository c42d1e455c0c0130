from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class TransactionStatus(str, Enum):
    RECEIVED = "received"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


_ALLOWED_STATUS: Dict[TransactionStatus, set[TransactionStatus]] = {
    TransactionStatus.RECEIVED: {TransactionStatus.APPROVED, TransactionStatus.REJECTED},
    TransactionStatus.APPROVED: {TransactionStatus.SUBMITTED, TransactionStatus.FAILED},
    TransactionStatus.SUBMITTED: {TransactionStatus.CONFIRMED, TransactionStatus.FAILED},
    TransactionStatus.REJECTED: set(),
    TransactionStatus.CONFIRMED: set(),
    TransactionStatus.FAILED: set(),
}


def can_transition(current: TransactionStatus, target: TransactionStatus) -> bool:
    return target in _ALLOWED_STATUS.get(current, set())


class ConnectionPhase(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED_RETRYING = "closed-retrying"
    CLOSED_FATAL = "closed-fatal"
    CLOSED = "closed"


@dataclass
class TransactionRequest:
    """One request to sign something.

    ``payload`` is the producer's transaction data exactly as received; it is
    handed to the wallet collaborator without modification.
    """

    transaction_id: str
    payload: Dict[str, Any]
    status: TransactionStatus = TransactionStatus.RECEIVED

    def __post_init__(self) -> None:
        if not self.transaction_id:
            raise ValueError("transaction_id is required")
        if not isinstance(self.payload, dict):
            raise ValueError("payload must be a mapping")

    @property
    def receiver_id(self) -> Optional[str]:
        return self.payload.get("receiverId") or self.payload.get("receiver")

    @property
    def method_name(self) -> Optional[str]:
        return self.payload.get("methodName") or self.payload.get("method")

    @property
    def amount(self) -> Optional[str]:
        value = self.payload.get("amount")
        if value is None:
            value = self.payload.get("deposit")
        return None if value is None else str(value)

    @property
    def purpose(self) -> Optional[str]:
        return self.payload.get("purpose")

    @property
    def is_transfer(self) -> bool:
        return "amount" in self.payload and "methodName" not in self.payload

    def transition(self, target: TransactionStatus) -> None:
        if not can_transition(self.status, target):
            raise InvalidTransitionError(
                f"Transaction {self.transaction_id} cannot move from {self.status.value} to {target.value}"
            )
        self.status = target


@dataclass
class Session:
    session_id: str
    user_id: Optional[str] = None
    username: Optional[str] = None
    queued_transaction: Optional[TransactionRequest] = None

    def __post_init__(self) -> None:
        if not self.session_id:
            raise SessionError("No session ID found. Please start from the correct link.")


@dataclass
class ConnectionState:
    phase: ConnectionPhase = ConnectionPhase.CONNECTING
    retry_count: int = 0
    max_retries: int = 3
    session_id: Optional[str] = None

    def bind_session(self, session_id: str) -> None:
        if self.session_id is not None and self.session_id != session_id:
            raise SessionError("Connection is already bound to a different session")
        self.session_id = session_id


@dataclass(frozen=True)
class TransactionOutcome:
    """Final result of one request; ``tx_hash`` and ``error`` are mutually exclusive."""

    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        if self.success and (not self.tx_hash or self.error):
            raise ValueError("successful outcome requires tx_hash and no error")
        if not self.success and (not self.error or self.tx_hash):
            raise ValueError("failed outcome requires error and no tx_hash")

    @classmethod
    def succeeded(cls, tx_hash: str) -> "TransactionOutcome":
        return cls(success=True, tx_hash=tx_hash)

    @classmethod
    def failed(cls, error: str) -> "TransactionOutcome":
        return cls(success=False, error=error)


@dataclass
class SessionContext:
    user_id: Optional[str]
    username: Optional[str]
    transaction: Optional[TransactionRequest] = None


@dataclass(frozen=True)
class StatusUpdate:
    level: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


class RelayError(Exception):
    """Base error for the relay client."""


class ConnectionNotOpenError(RelayError):
    """Raised when a send is attempted while the connection is not open."""


class ConnectionFatalError(RelayError):
    """Raised once reconnect attempts are exhausted."""


class ProtocolError(RelayError):
    """Raised when an inbound message is malformed."""


class SessionError(RelayError):
    """Raised for missing or rejected sessions. Never retried."""

    fatal = True


class CorrelationError(RelayError):
    """Raised when the correlator is asked to do something inconsistent."""


class UnknownTransactionError(CorrelationError):
    """Raised when resolving a transaction id that was never offered."""


class InvalidTransitionError(RelayError):
    """Raised on an illegal transaction status transition."""


class WalletError(RelayError):
    """Raised by a wallet collaborator when signing or broadcast fails."""


class LaunchParameterError(RelayError):
    """Raised when launch URL parameters cannot seed a transaction."""
