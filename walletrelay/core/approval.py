from __future__ import annotations

from enum import Enum
from typing import Optional

from .correlator import TransactionCorrelator
from .logger import get_logger
from .messages import TransactionResult
from .schemas import TransactionOutcome, TransactionRequest, TransactionStatus, WalletError

REJECTED_BY_USER = "Transaction rejected by user"
APPROVAL_TIMED_OUT = "Approval timed out"
GENERIC_WALLET_FAILURE = "Transaction failed"
MAX_ERROR_LENGTH = 160


class ApprovalState(str, Enum):
    IDLE = "idle"
    AWAITING_APPROVAL = "awaiting_approval"
    APPROVING = "approving"
    REJECTING = "rejecting"
    RESOLVED = "resolved"


def describe_wallet_error(exc: BaseException) -> str:
    """Reduce a wallet failure to a short human string."""

    text = str(exc).strip()
    lowered = text.lower()
    if "insufficient" in lowered or "notenoughbalance" in lowered:
        return "Insufficient funds"
    if "user rejected" in lowered or "cancel" in lowered or "user closed" in lowered:
        return "Transaction cancelled in wallet"
    if "timeout" in lowered or "timed out" in lowered:
        return "Wallet did not respond in time"
    if not isinstance(exc, WalletError) or not text:
        return GENERIC_WALLET_FAILURE
    first_line = text.splitlines()[0]
    if len(first_line) > MAX_ERROR_LENGTH:
        return first_line[: MAX_ERROR_LENGTH - 3] + "..."
    return first_line


class ApprovalStateMachine:
    """Drives one TransactionRequest through human approval.

    One instance exists per ``transaction_id``. ``approve`` and ``reject`` are
    no-ops once the machine has left ``awaiting_approval``.
    """

    def __init__(self, request: TransactionRequest, correlator: TransactionCorrelator) -> None:
        self.request = request
        self.correlator = correlator
        self.state = ApprovalState.IDLE
        self.outcome: Optional[TransactionOutcome] = None
        self._logger = get_logger()

    @property
    def transaction_id(self) -> str:
        return self.request.transaction_id

    @property
    def is_resolved(self) -> bool:
        return self.state == ApprovalState.RESOLVED

    def begin(self) -> None:
        if self.state != ApprovalState.IDLE:
            return
        self.state = ApprovalState.AWAITING_APPROVAL

    def approve(self) -> bool:
        """Move to ``approving``; the caller then invokes the wallet with ``request.payload``."""

        if self.state != ApprovalState.AWAITING_APPROVAL:
            self._logger.info("Approve ignored for %s in state %s", self.transaction_id, self.state.value)
            return False
        self.state = ApprovalState.APPROVING
        self.request.transition(TransactionStatus.APPROVED)
        self.request.transition(TransactionStatus.SUBMITTED)
        return True

    def reject(self, reason: str = REJECTED_BY_USER) -> Optional[TransactionResult]:
        if self.state != ApprovalState.AWAITING_APPROVAL:
            self._logger.info("Reject ignored for %s in state %s", self.transaction_id, self.state.value)
            return None
        self.state = ApprovalState.REJECTING
        self.request.transition(TransactionStatus.REJECTED)
        return self._resolve(TransactionOutcome.failed(reason))

    def wallet_succeeded(self, tx_hash: str) -> Optional[TransactionResult]:
        if self.state != ApprovalState.APPROVING:
            return None
        self.request.transition(TransactionStatus.CONFIRMED)
        return self._resolve(TransactionOutcome.succeeded(tx_hash))

    def wallet_failed(self, exc: BaseException) -> Optional[TransactionResult]:
        if self.state != ApprovalState.APPROVING:
            return None
        self._logger.warning("Wallet failed for %s: %r", self.transaction_id, exc)
        self.request.transition(TransactionStatus.FAILED)
        return self._resolve(TransactionOutcome.failed(describe_wallet_error(exc)))

    def _resolve(self, outcome: TransactionOutcome) -> Optional[TransactionResult]:
        self.state = ApprovalState.RESOLVED
        self.outcome = outcome
        return self.correlator.resolve(self.transaction_id, outcome)
