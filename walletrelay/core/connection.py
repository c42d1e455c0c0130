from __future__ import annotations

import asyncio
import contextlib
from typing import Any, AsyncContextManager, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import WebSocketException

from .audit import audit_event
from .events import ConnectionClosed, ConnectionFailed, ConnectionOpened, InboundMessage, KeepaliveTick
from .logger import get_logger
from .messages import ClientMessage, Ping, encode
from .schemas import ConnectionFatalError, ConnectionNotOpenError, ConnectionPhase, ConnectionState

ConnectFactory = Callable[[str], AsyncContextManager[Any]]
SleepFn = Callable[[float], Awaitable[None]]

CONNECTION_LOST_MESSAGE = "Connection lost. Please refresh."


def _default_connect(endpoint: str) -> AsyncContextManager[Any]:
    return websockets.connect(endpoint, max_size=2**20)


class ConnectionManager:
    """Owns one duplex connection to the relay endpoint.

    The manager never interprets messages: inbound frames and lifecycle
    changes are pushed onto ``events`` for a single consumer. Reconnects are
    linear (``base_delay * retry_count``) and bounded by ``max_retries``;
    after that the phase is ``closed-fatal`` and nothing else is attempted.
    """

    def __init__(
        self,
        endpoint: str,
        events: "asyncio.Queue[Any]",
        *,
        base_delay: float = 1.0,
        max_retries: int = 3,
        keepalive_interval: float = 30.0,
        connect: Optional[ConnectFactory] = None,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self.endpoint = endpoint
        self.state = ConnectionState(max_retries=max_retries)
        self.base_delay = base_delay
        self.keepalive_interval = keepalive_interval
        self._events = events
        self._connect = connect or _default_connect
        self._sleep = sleep or asyncio.sleep
        self._ws: Any = None
        self._send_lock = asyncio.Lock()
        self._closing = False
        self._runner: Optional[asyncio.Task[None]] = None
        self._keepalive: Optional[asyncio.Task[None]] = None
        self._logger = get_logger()

    @property
    def phase(self) -> ConnectionPhase:
        return self.state.phase

    @property
    def is_open(self) -> bool:
        return self.state.phase == ConnectionPhase.OPEN and self._ws is not None

    def open(self) -> "ConnectionManager":
        if self.state.phase == ConnectionPhase.CLOSED_FATAL:
            raise ConnectionFatalError(CONNECTION_LOST_MESSAGE)
        if self._runner is not None:
            return self
        self._closing = False
        self._runner = asyncio.create_task(self._run(), name="walletrelay-connection")
        if self.keepalive_interval > 0:
            self._keepalive = asyncio.create_task(self._keepalive_loop(), name="walletrelay-keepalive")
        return self

    async def send(self, message: ClientMessage) -> None:
        if not self.is_open:
            raise ConnectionNotOpenError(f"Cannot send {message.type}: connection is {self.state.phase.value}")
        async with self._send_lock:
            ws = self._ws
            if ws is None:
                raise ConnectionNotOpenError(f"Cannot send {message.type}: connection is closed")
            try:
                await ws.send(encode(message))
            except (OSError, WebSocketException) as exc:
                raise ConnectionNotOpenError(f"Cannot send {message.type}: {exc}") from exc

    async def send_keepalive(self) -> bool:
        if not self.is_open:
            return False
        await self.send(Ping())
        return True

    async def abort(self, reason: str) -> None:
        """Drop the current socket after a protocol error; the runner reconnects."""

        ws = self._ws
        if ws is None:
            return
        self._logger.warning("Dropping relay connection: %s", reason)
        with contextlib.suppress(OSError, WebSocketException):
            await ws.close(code=1002, reason=reason[:120])

    async def close(self) -> None:
        """Explicit shutdown; no reconnect follows."""

        self._closing = True
        ws = self._ws
        if ws is not None:
            with contextlib.suppress(OSError, WebSocketException):
                await ws.close()
        for task in (self._keepalive, self._runner):
            if task is None or task.done():
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._keepalive = None
        self._runner = None
        if self.state.phase != ConnectionPhase.CLOSED_FATAL:
            self.state.phase = ConnectionPhase.CLOSED

    async def _run(self) -> None:
        while not self._closing:
            self.state.phase = ConnectionPhase.CONNECTING
            error: Optional[BaseException] = None
            try:
                async with self._connect(self.endpoint) as ws:
                    self._ws = ws
                    self.state.phase = ConnectionPhase.OPEN
                    self.state.retry_count = 0
                    self._logger.info("Connected to relay at %s", self.endpoint)
                    await self._events.put(ConnectionOpened())
                    async for raw in ws:
                        await self._events.put(InboundMessage(raw=raw))
            except (OSError, WebSocketException) as exc:
                error = exc
                self._logger.info("Relay connection error: %s", exc)
            except Exception as exc:  # noqa: BLE001
                error = exc
                self._logger.exception("Relay connection failed unexpectedly")
            finally:
                self._ws = None

            if self._closing:
                break
            if self.state.retry_count >= self.state.max_retries:
                self.state.phase = ConnectionPhase.CLOSED_FATAL
                audit_event("connection_fatal", endpoint=self.endpoint, attempts=self.state.retry_count)
                await self._events.put(ConnectionClosed(error=error, retrying=False))
                await self._events.put(ConnectionFailed(message=CONNECTION_LOST_MESSAGE))
                return
            self.state.retry_count += 1
            delay = self.base_delay * self.state.retry_count
            self.state.phase = ConnectionPhase.CLOSED_RETRYING
            audit_event("reconnect_scheduled", attempt=self.state.retry_count, delay=delay)
            await self._events.put(ConnectionClosed(error=error, retrying=True, retry_in=delay))
            await self._sleep(delay)
        if self.state.phase != ConnectionPhase.CLOSED_FATAL:
            self.state.phase = ConnectionPhase.CLOSED

    async def _keepalive_loop(self) -> None:
        while not self._closing:
            await asyncio.sleep(self.keepalive_interval)
            await self._events.put(KeepaliveTick())
