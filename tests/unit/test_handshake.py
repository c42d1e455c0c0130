import pytest

from walletrelay.core.handshake import HandshakePhase, SessionHandshake, queued_transaction_id
from walletrelay.core.messages import SessionInitialized
from walletrelay.core.schemas import SessionError


def test_missing_session_id_is_fatal():
    with pytest.raises(SessionError, match="No session ID found"):
        SessionHandshake(None)


def test_begin_produces_init_session():
    handshake = SessionHandshake("s1")

    message = handshake.begin()

    assert message.to_wire() == {"type": "init_session", "sessionId": "s1"}
    assert handshake.phase == HandshakePhase.PENDING


def test_ack_without_transaction_binds_session():
    handshake = SessionHandshake("s1")
    handshake.begin()

    context = handshake.accept(SessionInitialized(user_id="u1", username="alice"))

    assert handshake.established
    assert context.transaction is None
    assert handshake.session.user_id == "u1"
    assert handshake.session.username == "alice"


def test_ack_with_transaction_builds_request():
    handshake = SessionHandshake("s1")
    handshake.begin()
    payload = {"receiverId": "alice.test", "amount": "1000000000000000000000000"}

    context = handshake.accept(
        SessionInitialized(user_id="u1", username="alice", transaction_data=payload, transaction_id="tx-9")
    )

    assert context.transaction is not None
    assert context.transaction.transaction_id == "tx-9"
    assert context.transaction.payload == payload
    assert handshake.session.queued_transaction is context.transaction


def test_queued_transaction_without_id_gets_stable_id():
    payload = {"receiverId": "alice.test", "amount": "5"}

    first = SessionHandshake("s1")
    first.begin()
    second = SessionHandshake("s1")
    second.begin()

    a = first.accept(SessionInitialized(user_id=None, username=None, transaction_data=payload))
    b = second.accept(SessionInitialized(user_id=None, username=None, transaction_data=dict(payload)))

    assert a.transaction.transaction_id == b.transaction.transaction_id == queued_transaction_id("s1", payload)
    assert queued_transaction_id("s2", payload) != queued_transaction_id("s1", payload)


def test_error_ack_fails_handshake_for_good():
    handshake = SessionHandshake("s1")
    handshake.begin()

    with pytest.raises(SessionError, match="Session expired"):
        handshake.accept(SessionInitialized(user_id=None, username=None, error="Session expired"))

    assert handshake.phase == HandshakePhase.FAILED
    with pytest.raises(SessionError):
        handshake.begin()


def test_ack_without_pending_handshake_is_rejected():
    handshake = SessionHandshake("s1")

    with pytest.raises(SessionError):
        handshake.accept(SessionInitialized(user_id="u1", username="alice"))


def test_reset_allows_replay_after_disconnect():
    handshake = SessionHandshake("s1")
    handshake.begin()
    handshake.accept(SessionInitialized(user_id="u1", username="alice"))

    handshake.reset()

    assert handshake.phase == HandshakePhase.UNBOUND
    assert handshake.begin().session_id == "s1"
