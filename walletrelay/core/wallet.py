from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from .schemas import TransactionRequest, WalletError


class WalletCollaborator(Protocol):
    """External component that signs and broadcasts a transaction."""

    async def sign_and_send(self, transaction: Dict[str, Any]) -> Any:
        ...


def extract_tx_hash(result: Any) -> Optional[str]:
    if isinstance(result, str):
        return result or None
    if not isinstance(result, dict):
        return None
    if result.get("hash"):
        return str(result["hash"])
    transaction = result.get("transaction")
    if isinstance(transaction, dict) and transaction.get("hash"):
        return str(transaction["hash"])
    outcome = result.get("transaction_outcome")
    if isinstance(outcome, dict) and outcome.get("id"):
        return str(outcome["id"])
    return None


async def sign_and_send(wallet: WalletCollaborator, request: TransactionRequest) -> str:
    """Hand the untouched payload to the wallet and return the transaction hash."""

    result = await wallet.sign_and_send(request.payload)
    tx_hash = extract_tx_hash(result)
    if not tx_hash:
        raise WalletError("Wallet returned no transaction hash")
    return tx_hash
