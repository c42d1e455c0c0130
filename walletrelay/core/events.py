from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class ConnectionOpened:
    pass


@dataclass(frozen=True)
class ConnectionClosed:
    error: Optional[BaseException] = None
    retrying: bool = True
    retry_in: float = 0.0


@dataclass(frozen=True)
class ConnectionFailed:
    message: str


@dataclass(frozen=True)
class InboundMessage:
    raw: Union[str, bytes]


@dataclass(frozen=True)
class KeepaliveTick:
    pass


@dataclass(frozen=True)
class ApproveRequested:
    pass


@dataclass(frozen=True)
class RejectRequested:
    pass


@dataclass(frozen=True)
class ApprovalTimedOut:
    transaction_id: str


@dataclass(frozen=True)
class WalletSucceeded:
    transaction_id: str
    tx_hash: str


@dataclass(frozen=True)
class WalletRaised:
    transaction_id: str
    error: BaseException


@dataclass(frozen=True)
class WalletReport:
    connected: bool
    wallet_id: Optional[str] = None
    txn_link: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class Shutdown:
    pass


ClientEvent = Union[
    ConnectionOpened,
    ConnectionClosed,
    ConnectionFailed,
    InboundMessage,
    KeepaliveTick,
    ApproveRequested,
    RejectRequested,
    ApprovalTimedOut,
    WalletSucceeded,
    WalletRaised,
    WalletReport,
    Shutdown,
]
