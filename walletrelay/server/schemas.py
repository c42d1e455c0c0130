from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str
    service: str = "wallet-relay-bridge"
    version: str
    upstream: str
    time: str


class SessionLookupRequest(BaseModel):
    session_id: str | None = Field(default=None, alias="sessionId")


class SessionTransactionResponse(BaseModel):
    success: bool = True
    sessionId: str
    approvalUrl: str
    walletUrl: str
    transactionData: dict[str, Any]
    status: str | None = None
    sessionStatus: str | None = None
    message: str = "Transaction ready. User should visit the approval URL to complete."
    timestamp: str


class ErrorResponse(BaseModel):
    error: str
    message: str
    sessionId: str | None = None
    example: str | None = None
