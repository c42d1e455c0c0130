"""Wire messages exchanged with the relay endpoint.

Every message is a JSON object with a ``type`` discriminator. Client->server
and server->client messages are closed sets; inbound messages with an
unrecognised ``type`` decode to :class:`UnknownMessage` so the caller can log
them instead of dropping them silently. The correlation field is
``transactionId`` in both directions.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Union

from .schemas import ProtocolError, TransactionOutcome


# Client -> server


@dataclass(frozen=True)
class InitSession:
    session_id: str
    type: str = field(default="init_session", init=False)

    def to_wire(self) -> Dict[str, Any]:
        return {"type": self.type, "sessionId": self.session_id}


@dataclass(frozen=True)
class WalletConnected:
    session_id: str
    wallet_id: str
    txn_link: Optional[str] = None
    type: str = field(default="wallet_connected", init=False)

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type, "sessionId": self.session_id, "walletId": self.wallet_id}
        if self.txn_link:
            payload["txnLink"] = self.txn_link
        return payload


@dataclass(frozen=True)
class WalletDisconnected:
    session_id: str
    reason: Optional[str] = None
    type: str = field(default="wallet_disconnected", init=False)

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.type, "sessionId": self.session_id}
        if self.reason:
            payload["reason"] = self.reason
        return payload


@dataclass(frozen=True)
class TransactionResult:
    transaction_id: str
    session_id: str
    outcome: TransactionOutcome
    type: str = field(default="transaction_result", init=False)

    @property
    def success(self) -> bool:
        return self.outcome.success

    def to_wire(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "type": self.type,
            "transactionId": self.transaction_id,
            "sessionId": self.session_id,
            "success": self.outcome.success,
        }
        if self.outcome.success:
            payload["txHash"] = self.outcome.tx_hash
        else:
            payload["error"] = self.outcome.error
        return payload


@dataclass(frozen=True)
class Ping:
    type: str = field(default="ping", init=False)

    def to_wire(self) -> Dict[str, Any]:
        return {"type": self.type}


ClientMessage = Union[InitSession, WalletConnected, WalletDisconnected, TransactionResult, Ping]


# Server -> client


@dataclass(frozen=True)
class SessionInitialized:
    user_id: Optional[str]
    username: Optional[str]
    transaction_data: Optional[Dict[str, Any]] = None
    transaction_id: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ProcessTransaction:
    transaction_id: str
    transaction_data: Dict[str, Any]


@dataclass(frozen=True)
class Acknowledgement:
    kind: str


@dataclass(frozen=True)
class ErrorMessage:
    message: str


@dataclass(frozen=True)
class Pong:
    pass


@dataclass(frozen=True)
class UnknownMessage:
    type: str
    payload: Dict[str, Any]


ServerMessage = Union[SessionInitialized, ProcessTransaction, Acknowledgement, ErrorMessage, Pong, UnknownMessage]

ACK_TYPES = frozenset(
    {
        "wallet_connection_received",
        "transaction_result_received",
        "wallet_disconnection_received",
    }
)


def encode(message: ClientMessage) -> str:
    return json.dumps(message.to_wire(), separators=(",", ":"))


def _optional_str(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    return str(value)


def _transaction_data(data: Dict[str, Any], *, required: bool) -> Optional[Dict[str, Any]]:
    value = data.get("transactionData")
    if value is None:
        # Older relays send the queued request under "data".
        value = data.get("data")
    if value is None:
        if required:
            raise ProtocolError("transactionData is required")
        return None
    if not isinstance(value, dict):
        raise ProtocolError("transactionData must be an object")
    return value


def decode(raw: Union[str, bytes]) -> ServerMessage:
    """Decode one inbound frame, raising :class:`ProtocolError` if it is malformed."""

    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ProtocolError("message is not valid UTF-8") from exc
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise ProtocolError("message is not valid JSON") from exc
    if not isinstance(data, dict):
        raise ProtocolError("message must be a JSON object")
    kind = data.get("type")
    if not isinstance(kind, str) or not kind:
        raise ProtocolError("message has no type")

    if kind == "session_initialized":
        transaction_data = _transaction_data(data, required=False)
        transaction_id = _optional_str(data, "transactionId")
        if transaction_id is None and transaction_data is not None:
            transaction_id = _optional_str(transaction_data, "transactionId")
        return SessionInitialized(
            user_id=_optional_str(data, "userId"),
            username=_optional_str(data, "username"),
            transaction_data=transaction_data,
            transaction_id=transaction_id,
            error=_optional_str(data, "error"),
        )
    if kind == "process_transaction":
        transaction_id = _optional_str(data, "transactionId")
        if not transaction_id:
            raise ProtocolError("process_transaction requires transactionId")
        transaction_data = _transaction_data(data, required=True) or {}
        return ProcessTransaction(transaction_id=transaction_id, transaction_data=transaction_data)
    if kind in ACK_TYPES:
        return Acknowledgement(kind=kind)
    if kind == "error":
        return ErrorMessage(message=_optional_str(data, "message") or "An error occurred")
    if kind == "pong":
        return Pong()
    return UnknownMessage(type=kind, payload=data)
