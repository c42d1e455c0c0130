from __future__ import annotations

from datetime import datetime, timezone
from urllib.parse import urlencode

from fastapi import APIRouter, Body, Query, Request, status
from fastapi.responses import JSONResponse

from ...core.audit import audit_event
from ..schemas import ErrorResponse, SessionLookupRequest, SessionTransactionResponse
from ..upstream import NoQueuedTransactionError, SessionNotFoundError, UpstreamUnavailableError


router = APIRouter(tags=["session"])

PATH_EXAMPLE = "/session/your-session-id"
QUERY_EXAMPLE = "/api/send/?sessionid=your-session-id"
BODY_EXAMPLE = '{ "sessionId": "your-session-id" }'


def build_approval_url(base_url: str, session_id: str) -> str:
    return f"{base_url}?{urlencode({'sessionId': session_id})}"


def _error(status_code: int, error: str, message: str, **extra: str | None) -> JSONResponse:
    body = ErrorResponse(error=error, message=message, **extra)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def _missing_session(example: str) -> JSONResponse:
    return _error(
        status.HTTP_400_BAD_REQUEST,
        "missing_session_id",
        "Missing required parameter: sessionId",
        example=example,
    )


def _lookup(request: Request, session_id: str) -> SessionTransactionResponse | JSONResponse:
    upstream = request.app.state.upstream
    settings = request.app.state.settings
    try:
        record = upstream.fetch_session_transaction(session_id)
    except SessionNotFoundError:
        audit_event("bridge_lookup", session_id=session_id, result="session_not_found")
        return _error(
            status.HTTP_404_NOT_FOUND,
            "session_not_found",
            "No such session. Make sure the session was created by the bot.",
            sessionId=session_id,
        )
    except NoQueuedTransactionError:
        audit_event("bridge_lookup", session_id=session_id, result="no_queued_transaction")
        return _error(
            status.HTTP_404_NOT_FOUND,
            "no_queued_transaction",
            "Session exists but has no queued transaction.",
            sessionId=session_id,
        )
    except UpstreamUnavailableError:
        audit_event("bridge_lookup", session_id=session_id, result="upstream_unavailable")
        return _error(
            status.HTTP_503_SERVICE_UNAVAILABLE,
            "upstream_unavailable",
            "Could not fetch session data. The relay endpoint is unavailable; try again shortly.",
            sessionId=session_id,
        )

    audit_event("bridge_lookup", session_id=session_id, result="ok")
    approval_url = build_approval_url(settings.approval_base_url, session_id)
    # walletUrl and sessionStatus are the names older bot integrations read.
    return SessionTransactionResponse(
        sessionId=session_id,
        approvalUrl=approval_url,
        walletUrl=approval_url,
        transactionData=record.transaction_data,
        status=record.status,
        sessionStatus=record.status,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/session", response_model=SessionTransactionResponse)
def session_missing() -> JSONResponse:
    return _missing_session(PATH_EXAMPLE)


@router.get("/session/{session_id}", response_model=SessionTransactionResponse)
@router.get("/session/{session_id}/transaction", response_model=SessionTransactionResponse)
def session_transaction(session_id: str, request: Request) -> SessionTransactionResponse | JSONResponse:
    session_id = session_id.strip()
    if not session_id:
        return _missing_session(PATH_EXAMPLE)
    return _lookup(request, session_id)


@router.get("/api/send", response_model=SessionTransactionResponse)
def send_link_query(
    request: Request,
    sessionid: str | None = Query(default=None),
) -> SessionTransactionResponse | JSONResponse:
    session_id = (sessionid or "").strip()
    if not session_id:
        return _missing_session(QUERY_EXAMPLE)
    return _lookup(request, session_id)


@router.post("/api/send", response_model=SessionTransactionResponse)
def send_link_body(
    request: Request,
    payload: SessionLookupRequest | None = Body(default=None),
) -> SessionTransactionResponse | JSONResponse:
    session_id = ((payload.session_id if payload else None) or "").strip()
    if not session_id:
        return _missing_session(BODY_EXAMPLE)
    return _lookup(request, session_id)
