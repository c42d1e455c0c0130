from __future__ import annotations

import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext
from typing import Optional
from urllib.parse import parse_qs, urlparse

from .schemas import LaunchParameterError, SessionError, TransactionRequest

YOCTO_PER_NEAR = Decimal(10) ** 24
DEFAULT_CURRENCY = "NEAR"


@dataclass(frozen=True)
class LaunchContext:
    session_id: str
    amount: Optional[str] = None
    receiver: Optional[str] = None
    purpose: Optional[str] = None


def _first(params: dict[str, list[str]], *names: str) -> Optional[str]:
    for name in names:
        values = params.get(name)
        if values and values[0].strip():
            return values[0].strip()
    return None


def parse_launch_url(url: str) -> LaunchContext:
    params = parse_qs(urlparse(url).query)
    session_id = _first(params, "sessionId", "sessionid")
    if not session_id:
        raise SessionError("No session ID found. Please start from the correct link.")
    return LaunchContext(
        session_id=session_id,
        amount=_first(params, "amount"),
        receiver=_first(params, "receiver"),
        purpose=_first(params, "purpose"),
    )


def to_yocto(amount: str) -> str:
    try:
        value = Decimal(amount)
    except InvalidOperation as exc:
        raise LaunchParameterError(f"Invalid amount: {amount!r}") from exc
    if not value.is_finite() or value <= 0:
        raise LaunchParameterError(f"Invalid amount: {amount!r}")
    with localcontext() as ctx:
        ctx.prec = 80
        yocto = value * YOCTO_PER_NEAR
    if yocto != yocto.to_integral_value():
        raise LaunchParameterError(f"Amount {amount} has more precision than 1 yoctoNEAR")
    return str(int(yocto))


def format_display_amount(payload: dict) -> str:
    metadata = payload.get("metadata")
    if isinstance(metadata, dict) and metadata.get("originalAmount"):
        return str(metadata["originalAmount"])
    raw = payload.get("amount", payload.get("deposit", "0"))
    with localcontext() as ctx:
        ctx.prec = 80
        try:
            value = Decimal(str(raw)) / YOCTO_PER_NEAR
        except InvalidOperation:
            return "0.00"
        if not value.is_finite():
            return "0.00"
        try:
            return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
        except InvalidOperation:
            # More digits than the context holds; show it unrounded.
            return str(value)


def new_transaction_id() -> str:
    return f"tx-{uuid.uuid4().hex}"


def seed_transaction(context: LaunchContext) -> Optional[TransactionRequest]:
    """Build a transfer request from pre-filled launch parameters.

    Returns ``None`` unless both ``amount`` and ``receiver`` are present.
    """

    if not context.amount or not context.receiver:
        return None
    payload = {
        "receiverId": context.receiver,
        "amount": to_yocto(context.amount),
        "metadata": {"originalAmount": context.amount, "currency": DEFAULT_CURRENCY},
    }
    if context.purpose:
        payload["purpose"] = context.purpose
    return TransactionRequest(transaction_id=new_transaction_id(), payload=payload)
