import asyncio

import pytest

from walletrelay.core.connection import CONNECTION_LOST_MESSAGE, ConnectionManager
from walletrelay.core.events import ConnectionClosed, ConnectionFailed, ConnectionOpened, InboundMessage, KeepaliveTick
from walletrelay.core.messages import Ping
from walletrelay.core.schemas import ConnectionFatalError, ConnectionNotOpenError, ConnectionPhase


def _drain(queue):
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items


def test_gives_up_after_three_linear_retries(fake_relay_cls, wait_for):
    relay = fake_relay_cls(always_fail=True)
    delays = []

    async def record_sleep(delay):
        delays.append(delay)

    async def scenario():
        events = asyncio.Queue()
        manager = ConnectionManager(
            "ws://relay.test", events, base_delay=0.5, keepalive_interval=0, connect=relay.connect, sleep=record_sleep
        )
        manager.open()
        await wait_for(lambda: manager.phase == ConnectionPhase.CLOSED_FATAL)
        await manager.close()
        return manager, _drain(events)

    manager, events = asyncio.run(scenario())

    assert relay.attempts == 4
    assert delays == [0.5, 1.0, 1.5]
    assert manager.phase == ConnectionPhase.CLOSED_FATAL
    closed = [event for event in events if isinstance(event, ConnectionClosed)]
    assert [event.retrying for event in closed] == [True, True, True, False]
    assert isinstance(events[-1], ConnectionFailed)
    assert events[-1].message == CONNECTION_LOST_MESSAGE == "Connection lost. Please refresh."
    with pytest.raises(ConnectionFatalError):
        manager.open()


def test_successful_open_resets_retry_count(fake_relay_cls, wait_for, no_sleep):
    relay = fake_relay_cls(failures=2)

    async def scenario():
        events = asyncio.Queue()
        manager = ConnectionManager(
            "ws://relay.test", events, keepalive_interval=0, connect=relay.connect, sleep=no_sleep
        )
        manager.open()
        await wait_for(lambda: manager.is_open)
        retry_count = manager.state.retry_count
        relay.current.push({"type": "pong"})
        await wait_for(lambda: events.qsize() >= 4)
        await manager.close()
        return manager, retry_count, _drain(events)

    manager, retry_count, events = asyncio.run(scenario())

    assert relay.attempts == 3
    assert retry_count == 0
    assert any(isinstance(event, InboundMessage) for event in events)
    assert any(isinstance(event, ConnectionOpened) for event in events)
    assert manager.phase == ConnectionPhase.CLOSED


def test_send_fails_fast_when_not_open():
    async def scenario():
        manager = ConnectionManager("ws://relay.test", asyncio.Queue(), keepalive_interval=0)
        try:
            await manager.send(Ping())
        except ConnectionNotOpenError:
            raised = True
        else:
            raised = False
        return raised, await manager.send_keepalive()

    raised, keepalive_sent = asyncio.run(scenario())

    assert raised is True
    assert keepalive_sent is False


def test_send_and_keepalive_write_to_open_socket(relay, wait_for, no_sleep):
    async def scenario():
        manager = ConnectionManager(
            "ws://relay.test", asyncio.Queue(), keepalive_interval=0, connect=relay.connect, sleep=no_sleep
        )
        manager.open()
        await wait_for(lambda: manager.is_open)
        sent = await manager.send_keepalive()
        await manager.close()
        return sent

    assert asyncio.run(scenario()) is True
    assert relay.current.sent == [{"type": "ping"}]


def test_dropped_socket_reconnects(relay, wait_for, no_sleep):
    async def scenario():
        events = asyncio.Queue()
        manager = ConnectionManager(
            "ws://relay.test", events, keepalive_interval=0, connect=relay.connect, sleep=no_sleep
        )
        manager.open()
        await wait_for(lambda: manager.is_open)
        relay.current.drop()
        await wait_for(lambda: len(relay.sockets) == 2 and manager.is_open)
        await manager.close()
        return _drain(events)

    events = asyncio.run(scenario())

    assert sum(isinstance(event, ConnectionOpened) for event in events) == 2
    assert any(isinstance(event, ConnectionClosed) and event.retrying for event in events)


def test_abort_closes_with_protocol_error_code(relay, wait_for, no_sleep):
    async def scenario():
        manager = ConnectionManager(
            "ws://relay.test", asyncio.Queue(), keepalive_interval=0, connect=relay.connect, sleep=no_sleep
        )
        manager.open()
        await wait_for(lambda: manager.is_open)
        first = relay.current
        await manager.abort("bad frame")
        await wait_for(lambda: len(relay.sockets) == 2 and manager.is_open)
        await manager.close()
        return first

    first = asyncio.run(scenario())

    assert first.close_code == 1002


def test_keepalive_loop_emits_ticks():
    async def scenario():
        events = asyncio.Queue()
        manager = ConnectionManager("ws://relay.test", events, keepalive_interval=0.01, connect=_never_connect)
        manager.open()
        tick = await asyncio.wait_for(_next_tick(events), timeout=2)
        await manager.close()
        return tick

    assert isinstance(asyncio.run(scenario()), KeepaliveTick)


async def _next_tick(events):
    while True:
        event = await events.get()
        if isinstance(event, KeepaliveTick):
            return event


def _never_connect(endpoint):
    class _Pending:
        async def __aenter__(self):
            await asyncio.Event().wait()

        async def __aexit__(self, *exc):
            return False

    return _Pending()
