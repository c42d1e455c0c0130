from __future__ import annotations

from collections import OrderedDict
from enum import Enum
from typing import Dict, List, Optional

from .audit import audit_event
from .logger import get_logger
from .messages import TransactionResult
from .schemas import (
    CorrelationError,
    TransactionOutcome,
    TransactionRequest,
    UnknownTransactionError,
)


class OfferResult(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    REJECTED_BUSY = "rejected_busy"


class TransactionCorrelator:
    """Owns the single pending-request slot for one connection.

    ``offer`` fills the slot, ``resolve`` empties it and produces the one
    ``transaction_result`` message for that id. Results wait in ``outbox``
    until the caller confirms delivery with ``mark_delivered``.
    """

    def __init__(self, session_id: str) -> None:
        if not session_id:
            raise CorrelationError("session_id is required")
        self.session_id = session_id
        self._pending: Optional[TransactionRequest] = None
        self._resolved: Dict[str, TransactionOutcome] = {}
        self._outbox: "OrderedDict[str, TransactionResult]" = OrderedDict()
        self._logger = get_logger()

    @property
    def pending(self) -> Optional[TransactionRequest]:
        return self._pending

    @property
    def outbox(self) -> List[TransactionResult]:
        return list(self._outbox.values())

    def is_resolved(self, transaction_id: str) -> bool:
        return transaction_id in self._resolved

    def outcome_for(self, transaction_id: str) -> Optional[TransactionOutcome]:
        return self._resolved.get(transaction_id)

    def offer(self, request: TransactionRequest) -> OfferResult:
        transaction_id = request.transaction_id
        if transaction_id in self._resolved or (
            self._pending is not None and self._pending.transaction_id == transaction_id
        ):
            self._logger.info("Ignoring duplicate delivery of transaction %s", transaction_id)
            return OfferResult.DUPLICATE
        if self._pending is not None:
            self._logger.warning(
                "Rejected transaction %s: transaction %s is still pending",
                transaction_id,
                self._pending.transaction_id,
            )
            audit_event(
                "transaction_offer_rejected",
                session_id=self.session_id,
                transaction_id=transaction_id,
                pending_transaction_id=self._pending.transaction_id,
            )
            return OfferResult.REJECTED_BUSY
        self._pending = request
        audit_event("transaction_offered", session_id=self.session_id, transaction_id=transaction_id)
        return OfferResult.ACCEPTED

    def resolve(self, transaction_id: str, outcome: TransactionOutcome) -> Optional[TransactionResult]:
        """Record ``outcome`` and return the result message, or ``None`` if already resolved."""

        if transaction_id in self._resolved:
            self._logger.info("Transaction %s already resolved; ignoring", transaction_id)
            return None
        if self._pending is None or self._pending.transaction_id != transaction_id:
            raise UnknownTransactionError(f"Unknown transaction id: {transaction_id}")
        self._resolved[transaction_id] = outcome
        self._pending = None
        result = TransactionResult(transaction_id=transaction_id, session_id=self.session_id, outcome=outcome)
        self._outbox[transaction_id] = result
        audit_event(
            "transaction_resolved",
            session_id=self.session_id,
            transaction_id=transaction_id,
            success=outcome.success,
            error=outcome.error,
        )
        return result

    def mark_delivered(self, transaction_id: str) -> None:
        self._outbox.pop(transaction_id, None)
