"""Relay client wiring.

``RelayClient`` owns one Connection Manager, one Session Handshake, one
Transaction Correlator and at most one live Approval State Machine. Inbound
relay frames, keepalive ticks, human actions and wallet completions are all
pushed onto a single queue and processed one at a time by ``_consume``; no
state is shared with other threads.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Any, Callable, Optional

from .config.runtime import ClientSettings, get_client_settings
from .core.approval import APPROVAL_TIMED_OUT, ApprovalState, ApprovalStateMachine
from .core.audit import audit_event, safe_excerpt
from .core.connection import ConnectFactory, ConnectionManager, SleepFn
from .core.correlator import OfferResult, TransactionCorrelator
from .core.events import (
    ApprovalTimedOut,
    ApproveRequested,
    ClientEvent,
    ConnectionClosed,
    ConnectionFailed,
    ConnectionOpened,
    InboundMessage,
    KeepaliveTick,
    RejectRequested,
    Shutdown,
    WalletRaised,
    WalletReport,
    WalletSucceeded,
)
from .core.handshake import HandshakePhase, SessionHandshake
from .core.launch import format_display_amount, parse_launch_url, seed_transaction
from .core.logger import get_logger
from .core.messages import (
    Acknowledgement,
    ErrorMessage,
    Pong,
    ProcessTransaction,
    SessionInitialized,
    TransactionResult,
    UnknownMessage,
    WalletConnected,
    WalletDisconnected,
    decode,
)
from .core.schemas import (
    ConnectionNotOpenError,
    ProtocolError,
    Session,
    SessionError,
    StatusUpdate,
    TransactionRequest,
)
from .core.wallet import WalletCollaborator, sign_and_send

StatusListener = Callable[[StatusUpdate], None]


class RelayClient:
    def __init__(
        self,
        session_id: Optional[str],
        wallet: WalletCollaborator,
        settings: ClientSettings | None = None,
        *,
        seeded_transaction: TransactionRequest | None = None,
        connect: ConnectFactory | None = None,
        sleep: SleepFn | None = None,
        on_status: StatusListener | None = None,
    ) -> None:
        self.settings = settings or get_client_settings()
        self.handshake = SessionHandshake(session_id)
        self.correlator = TransactionCorrelator(self.handshake.session_id)
        self.events: "asyncio.Queue[ClientEvent]" = asyncio.Queue()
        self.connection = ConnectionManager(
            self.settings.ws_url,
            self.events,
            base_delay=self.settings.reconnect_base_delay,
            max_retries=self.settings.max_reconnect_attempts,
            keepalive_interval=self.settings.keepalive_interval,
            connect=connect,
            sleep=sleep,
        )
        self.connection.state.bind_session(self.handshake.session_id)
        self.wallet = wallet
        self.seeded_transaction = seeded_transaction
        self.machine: Optional[ApprovalStateMachine] = None
        self.on_status = on_status
        self.status = StatusUpdate("info", "Connecting to server...")
        self.fatal_error: Optional[str] = None
        self._consumer: Optional[asyncio.Task[None]] = None
        self._wallet_task: Optional[asyncio.Task[None]] = None
        self._approval_timer: Optional[asyncio.TimerHandle] = None
        self._logger = get_logger()

    @classmethod
    def from_launch_url(
        cls,
        url: str,
        wallet: WalletCollaborator,
        settings: ClientSettings | None = None,
        **kwargs: Any,
    ) -> "RelayClient":
        """Bind the launch URL's session and seed its pre-filled transfer, if any."""

        context = parse_launch_url(url)
        return cls(context.session_id, wallet, settings, seeded_transaction=seed_transaction(context), **kwargs)

    @property
    def session(self) -> Session:
        return self.handshake.session

    @property
    def approval_state(self) -> ApprovalState:
        if self.machine is None:
            return ApprovalState.IDLE
        return self.machine.state

    @property
    def awaiting_wallet(self) -> bool:
        return self.machine is not None and self.machine.state == ApprovalState.APPROVING

    async def __aenter__(self) -> "RelayClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    async def start(self) -> None:
        if self._consumer is not None:
            return
        self._consumer = asyncio.create_task(self._consume(), name="walletrelay-consumer")
        self.connection.open()

    async def stop(self) -> None:
        """Explicit shutdown; no reconnect follows.

        A wallet call that is already in flight is awaited, never cancelled, so
        its result is sent, or kept in the outbox, before the connection closes.
        """

        self._cancel_approval_timer()
        if self._wallet_task is not None and not self._wallet_task.done():
            self._logger.info("Waiting for the wallet call to finish before shutting down")
            await self._wallet_task
        if self._consumer is not None and not self._consumer.done():
            await self.events.put(Shutdown())
            await self._consumer
        self._consumer = None
        self._cancel_approval_timer()
        await self.connection.close()

    async def wait_closed(self) -> None:
        if self._consumer is not None:
            await self._consumer

    # Human actions. They only enqueue; the consumer applies them in order.

    def approve(self) -> None:
        self.events.put_nowait(ApproveRequested())

    def reject(self) -> None:
        self.events.put_nowait(RejectRequested())

    def report_wallet_connected(self, wallet_id: str, txn_link: Optional[str] = None) -> None:
        self.events.put_nowait(WalletReport(connected=True, wallet_id=wallet_id, txn_link=txn_link))

    def report_wallet_disconnected(self, reason: Optional[str] = None) -> None:
        self.events.put_nowait(WalletReport(connected=False, reason=reason))

    async def _consume(self) -> None:
        while True:
            event = await self.events.get()
            if isinstance(event, Shutdown):
                return
            try:
                await self._dispatch(event)
            except SessionError as exc:
                self._fail(str(exc))
                await self.connection.close()
            except Exception:  # noqa: BLE001
                self._logger.exception("Failed to handle %s", type(event).__name__)
            # After a fatal error keep reading until the wallet call in flight resolves.
            if self.fatal_error is not None and not self.awaiting_wallet:
                return

    async def _dispatch(self, event: ClientEvent) -> None:
        if isinstance(event, ConnectionOpened):
            await self._send_handshake()
        elif isinstance(event, ConnectionClosed):
            self.handshake.reset()
            if event.retrying:
                attempt = self.connection.state.retry_count
                self._set_status("warning", f"Connection lost. Reconnecting (attempt {attempt})...")
        elif isinstance(event, ConnectionFailed):
            self._fail(event.message)
        elif isinstance(event, InboundMessage):
            await self._handle_frame(event.raw)
        elif isinstance(event, KeepaliveTick):
            with contextlib.suppress(ConnectionNotOpenError):
                await self.connection.send_keepalive()
        elif isinstance(event, ApproveRequested):
            self._handle_approve()
        elif isinstance(event, RejectRequested):
            if self.machine is not None:
                await self._deliver(self.machine.reject())
        elif isinstance(event, ApprovalTimedOut):
            if self.machine is not None and self.machine.transaction_id == event.transaction_id:
                await self._deliver(self.machine.reject(APPROVAL_TIMED_OUT))
        elif isinstance(event, (WalletSucceeded, WalletRaised)):
            await self._handle_wallet_outcome(event)
        elif isinstance(event, WalletReport):
            await self._handle_wallet_report(event)

    async def _send_handshake(self) -> None:
        message = self.handshake.begin()
        try:
            await self.connection.send(message)
        except ConnectionNotOpenError as exc:
            self._logger.info("Handshake deferred: %s", exc)
            return
        self._set_status("info", "Connected. Fetching transaction data...")

    async def _handle_frame(self, raw: Any) -> None:
        try:
            message = decode(raw)
        except ProtocolError as exc:
            self._logger.warning("Malformed relay message (%s): %s", exc, safe_excerpt(str(raw)))
            self._set_status("warning", "Invalid response from server")
            await self.connection.abort(str(exc))
            return

        if isinstance(message, SessionInitialized):
            await self._handle_session_initialized(message)
        elif isinstance(message, ProcessTransaction):
            if not self.handshake.established:
                self._logger.warning(
                    "Rejected transaction %s received before session_initialized", message.transaction_id
                )
                return
            self._offer(TransactionRequest(transaction_id=message.transaction_id, payload=message.transaction_data))
        elif isinstance(message, Acknowledgement):
            self._logger.debug("Relay acknowledged: %s", message.kind)
        elif isinstance(message, ErrorMessage):
            if self.handshake.phase == HandshakePhase.PENDING:
                self.handshake.fail(message.message)
            self._set_status("error", message.message)
        elif isinstance(message, Pong):
            self._logger.debug("Relay keepalive acknowledged")
        elif isinstance(message, UnknownMessage):
            self._logger.warning("Unknown message type from relay: %s", message.type)

    async def _handle_session_initialized(self, message: SessionInitialized) -> None:
        if self.handshake.phase != HandshakePhase.PENDING:
            self._logger.warning("Ignoring session_initialized with no handshake in progress")
            return
        context = self.handshake.accept(message)
        seeded, self.seeded_transaction = self.seeded_transaction, None
        request = context.transaction or seeded
        if request is not None:
            self._offer(request)
        elif self.machine is None:
            self._set_status("info", "No transaction data found for this session")
        await self._flush_outbox()

    def _offer(self, request: TransactionRequest) -> None:
        result = self.correlator.offer(request)
        if result == OfferResult.REJECTED_BUSY:
            self._set_status(
                "warning",
                "Another transaction arrived while one is awaiting approval; it was not accepted.",
                transaction_id=request.transaction_id,
            )
            return
        if result != OfferResult.ACCEPTED:
            return
        self.machine = ApprovalStateMachine(request, self.correlator)
        self.machine.begin()
        self._start_approval_timer(request.transaction_id)
        amount = format_display_amount(request.payload)
        self._set_status(
            "info",
            f"Transaction ready: {amount} NEAR",
            transaction_id=request.transaction_id,
        )

    def _handle_approve(self) -> None:
        machine = self.machine
        if machine is None or not machine.approve():
            return
        self._cancel_approval_timer()
        self._set_status("info", "Waiting for wallet...", transaction_id=machine.transaction_id)
        self._wallet_task = asyncio.create_task(self._call_wallet(machine.request), name="walletrelay-wallet")

    async def _call_wallet(self, request: TransactionRequest) -> None:
        try:
            tx_hash = await sign_and_send(self.wallet, request)
        except Exception as exc:  # noqa: BLE001
            await self.events.put(WalletRaised(transaction_id=request.transaction_id, error=exc))
        else:
            await self.events.put(WalletSucceeded(transaction_id=request.transaction_id, tx_hash=tx_hash))

    async def _handle_wallet_outcome(self, event: WalletSucceeded | WalletRaised) -> None:
        machine = self.machine
        if machine is None or machine.transaction_id != event.transaction_id:
            self._logger.error("Wallet outcome for unknown transaction %s", event.transaction_id)
            return
        if isinstance(event, WalletSucceeded):
            result = machine.wallet_succeeded(event.tx_hash)
        else:
            result = machine.wallet_failed(event.error)
        await self._deliver(result)

    async def _deliver(self, result: Optional[TransactionResult]) -> None:
        if result is None:
            return
        self._cancel_approval_timer()
        outcome = result.outcome
        level = "success" if outcome.success else "error"
        message = "Transaction completed successfully!" if outcome.success else outcome.error or "Transaction failed"
        details = {"transaction_id": result.transaction_id, "tx_hash": outcome.tx_hash}
        if self.fatal_error is not None:
            self._logger.warning("Result for %s kept locally: %s", result.transaction_id, self.fatal_error)
            self._set_status(level, f"{message} The server was not notified. {self.fatal_error}", **details)
            return
        self._set_status(level, message, **details)
        if not self.handshake.established:
            self._logger.warning("Result for %s held until the session is re-established", result.transaction_id)
            return
        try:
            await self.connection.send(result)
        except ConnectionNotOpenError as exc:
            self._logger.warning("Result for %s not sent yet: %s", result.transaction_id, exc)
            return
        self.correlator.mark_delivered(result.transaction_id)

    async def _flush_outbox(self) -> None:
        for result in self.correlator.outbox:
            try:
                await self.connection.send(result)
            except ConnectionNotOpenError as exc:
                self._logger.warning("Result for %s not sent yet: %s", result.transaction_id, exc)
                return
            self.correlator.mark_delivered(result.transaction_id)

    async def _handle_wallet_report(self, event: WalletReport) -> None:
        session_id = self.handshake.session_id
        if event.connected:
            message: WalletConnected | WalletDisconnected = WalletConnected(
                session_id=session_id, wallet_id=event.wallet_id or "", txn_link=event.txn_link
            )
        else:
            message = WalletDisconnected(session_id=session_id, reason=event.reason)
        try:
            await self.connection.send(message)
        except ConnectionNotOpenError as exc:
            self._set_status("error", "Not connected to server. Wallet status was not reported.")
            self._logger.warning("Wallet report dropped: %s", exc)

    def _start_approval_timer(self, transaction_id: str) -> None:
        self._cancel_approval_timer()
        timeout = self.settings.approval_timeout
        if not timeout:
            return
        loop = asyncio.get_running_loop()
        self._approval_timer = loop.call_later(
            timeout, self.events.put_nowait, ApprovalTimedOut(transaction_id=transaction_id)
        )

    def _cancel_approval_timer(self) -> None:
        if self._approval_timer is not None:
            self._approval_timer.cancel()
            self._approval_timer = None

    def _fail(self, message: str) -> None:
        self.fatal_error = message
        audit_event("client_fatal", session_id=self.handshake.session_id, error=message)
        self._set_status("error", message)

    def _set_status(self, level: str, message: str, **details: Any) -> None:
        self.status = StatusUpdate(level=level, message=message, details=details)
        if self.on_status is None:
            return
        try:
            self.on_status(self.status)
        except Exception:  # noqa: BLE001
            self._logger.exception("Status listener failed")
