from __future__ import annotations

import asyncio
import contextlib
import json
import sys
from pathlib import Path
from typing import Any, Callable

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


class FakeSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self) -> None:
        self.inbox: asyncio.Queue[Any] = asyncio.Queue()
        self.sent: list[dict[str, Any]] = []
        self.closed = False
        self.close_code: int | None = None

    def push(self, payload: Any) -> None:
        self.inbox.put_nowait(payload if isinstance(payload, (str, bytes)) else json.dumps(payload))

    def drop(self) -> None:
        self.closed = True
        self.inbox.put_nowait(None)

    def sent_of_type(self, kind: str) -> list[dict[str, Any]]:
        return [message for message in self.sent if message.get("type") == kind]

    async def send(self, data: str) -> None:
        if self.closed:
            raise OSError("socket closed")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed:
            return
        self.closed = True
        self.close_code = code
        self.inbox.put_nowait(None)

    def __aiter__(self) -> "FakeSocket":
        return self

    async def __anext__(self) -> Any:
        item = await self.inbox.get()
        if item is None:
            raise StopAsyncIteration
        return item


class FakeRelay:
    def __init__(self, *, failures: int = 0, always_fail: bool = False) -> None:
        self.failures = failures
        self.always_fail = always_fail
        self.attempts = 0
        self.endpoints: list[str] = []
        self.sockets: list[FakeSocket] = []

    @property
    def current(self) -> FakeSocket:
        return self.sockets[-1]

    def all_sent_of_type(self, kind: str) -> list[dict[str, Any]]:
        return [message for socket in self.sockets for message in socket.sent_of_type(kind)]

    def connect(self, endpoint: str):
        @contextlib.asynccontextmanager
        async def _connection():
            self.attempts += 1
            self.endpoints.append(endpoint)
            if self.always_fail or self.failures > 0:
                self.failures = max(self.failures - 1, 0)
                raise ConnectionRefusedError("relay unavailable")
            socket = FakeSocket()
            self.sockets.append(socket)
            try:
                yield socket
            finally:
                socket.closed = True

        return _connection()


class FakeWallet:
    def __init__(self, result: Any = None, error: BaseException | None = None, hold: bool = False) -> None:
        self.result = result if result is not None else {"transaction": {"hash": "hash-abc"}}
        self.error = error
        self.calls: list[dict[str, Any]] = []
        self.gate: asyncio.Event | None = asyncio.Event() if hold else None

    async def sign_and_send(self, transaction: dict[str, Any]) -> Any:
        self.calls.append(transaction)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.result


async def _wait_for(predicate: Callable[[], Any], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)


async def _no_sleep(delay: float) -> None:
    await asyncio.sleep(0)


@pytest.fixture
def relay() -> FakeRelay:
    return FakeRelay()


@pytest.fixture
def fake_relay_cls() -> type[FakeRelay]:
    return FakeRelay


@pytest.fixture
def fake_wallet_cls() -> type[FakeWallet]:
    return FakeWallet


@pytest.fixture
def wait_for() -> Callable[..., Any]:
    return _wait_for


@pytest.fixture
def no_sleep() -> Callable[[float], Any]:
    return _no_sleep
