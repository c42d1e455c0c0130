import pytest

from walletrelay.core.launch import (
    format_display_amount,
    parse_launch_url,
    seed_transaction,
    to_yocto,
)
from walletrelay.core.schemas import LaunchParameterError, SessionError, TransactionStatus


def test_launch_url_seeds_yocto_transfer_before_any_network_call():
    context = parse_launch_url("https://wallet.example/?sessionId=s1&amount=2.5&receiver=alice.test&purpose=game")
    request = seed_transaction(context)

    assert context.session_id == "s1"
    assert request is not None
    assert request.payload["amount"] == "2500000000000000000000000"
    assert int(request.payload["amount"]) == 25 * 10**23
    assert request.receiver_id == "alice.test"
    assert request.purpose == "game"
    assert request.payload["metadata"] == {"originalAmount": "2.5", "currency": "NEAR"}
    assert request.status == TransactionStatus.RECEIVED
    assert request.transaction_id.startswith("tx-")


def test_launch_url_without_prefill_seeds_nothing():
    context = parse_launch_url("https://wallet.example/?sessionId=s1&receiver=alice.test")
    assert seed_transaction(context) is None


def test_launch_url_without_session_is_fatal():
    with pytest.raises(SessionError):
        parse_launch_url("https://wallet.example/?amount=1&receiver=alice.test")


def test_lowercase_sessionid_parameter_is_accepted():
    assert parse_launch_url("https://wallet.example/?sessionid=abc").session_id == "abc"


def test_to_yocto_is_exact_for_large_amounts():
    assert to_yocto("123456.000000000000000000000001") == "123456000000000000000000000001"


@pytest.mark.parametrize("amount", ["abc", "-1", "0", "1e-30", "NaN"])
def test_to_yocto_rejects_invalid_amounts(amount):
    with pytest.raises(LaunchParameterError):
        to_yocto(amount)


def test_display_amount_prefers_original_amount():
    assert format_display_amount({"amount": "5500000000000000000000000"}) == "5.50"
    assert format_display_amount({"amount": "1", "metadata": {"originalAmount": "5.5"}}) == "5.5"
    assert format_display_amount({"deposit": "1000000000000000000000000"}) == "1.00"


def test_display_amount_handles_extreme_values():
    assert format_display_amount({"amount": "1e60"}) == "1" + "0" * 36 + ".00"
    assert format_display_amount({"amount": "Infinity"}) == "0.00"
    assert format_display_amount({"amount": "NaN"}) == "0.00"
    assert format_display_amount({"amount": "not-a-number"}) == "0.00"
