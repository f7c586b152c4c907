"""
Bot Tests

Covers:
- Follower commands (subscribe, risk, status, unsubscribe, help)
- Dispatch of leader signals vs follower commands
- Telegram update parsing and transport error handling
"""

import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

from copier.bot.commands import GENERIC_ERROR, CommandHandler, split_command
from copier.bot.dispatcher import MessageDispatcher
from copier.bot.transport import TelegramTransport, parse_update
from copier.errors import StoreError, TransportError
from copier.relay.broadcaster import Broadcaster
from copier.relay.parser import SignalParser
from copier.storage import CopierDB, SignalStore, SubscriptionStore
from tests.mocks.fake_transport import FakeTransport
from tests.mocks.signals import LEADER, TEST_SECRET, inbound, leader_text, signed_payload

SCOPE = "GODSEYE"


# Fixtures


@pytest.fixture
def temp_db():
    """Temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield CopierDB(str(Path(tmpdir) / "test.db"))


@pytest.fixture
def subscriptions(temp_db):
    return SubscriptionStore(temp_db)


@pytest.fixture
def signals(temp_db):
    return SignalStore(temp_db)


@pytest.fixture
def commands(subscriptions, signals):
    return CommandHandler(subscriptions, signals, referral_code=SCOPE, default_risk=0.5)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def dispatcher(subscriptions, signals, commands, transport):
    broadcaster = Broadcaster(subscriptions, signals, TEST_SECRET, SCOPE, parser=SignalParser(LEADER))
    yield MessageDispatcher(broadcaster, commands, transport, run_in_background=False)
    broadcaster.shutdown()


# COMMANDS


@pytest.mark.parametrize(
    "text,expected",
    [
        ("/risk 1.0", ("risk", "1.0")),
        ("/risk@CopierBot 1.0", ("risk", "1.0")),
        ("/STATUS", ("status", "")),
        ("/subscribe  ref=GODSEYE ", ("subscribe", "ref=GODSEYE")),
        ("hello", None),
        ("/", None),
        ("", None),
    ],
)
def test_split_command(text, expected):
    assert split_command(text) == expected


def test_subscribe_with_valid_referral(commands, subscriptions):
    reply = commands.handle("42", "/subscribe ref=GODSEYE")

    assert "Successfully subscribed" in reply
    subscriber = subscriptions.get("42")
    assert subscriber.risk == 0.5
    assert subscriber.referral_scope == SCOPE


@pytest.mark.parametrize("text", ["/subscribe", "/subscribe ref=WRONG", "/subscribe GODSEYE"])
def test_subscribe_with_invalid_referral(commands, subscriptions, text):
    reply = commands.handle("42", text)
    assert "Invalid referral code" in reply
    assert subscriptions.get("42") is None


def test_resubscribe_resets_risk(commands, subscriptions):
    commands.handle("42", "/subscribe ref=GODSEYE")
    commands.handle("42", "/risk 1.5")
    commands.handle("42", "/subscribe ref=GODSEYE")
    assert subscriptions.get("42").risk == 0.5


def test_risk_updates_value(commands, subscriptions):
    commands.handle("42", "/subscribe ref=GODSEYE")
    reply = commands.handle("42", "/risk 1.5")
    assert reply == "✅ Risk multiplier updated to 1.5x"
    assert subscriptions.get("42").risk == 1.5


@pytest.mark.parametrize("value", ["abc", "0", "2.5", "-1", "nan", "inf"])
def test_risk_rejects_invalid_value(commands, subscriptions, value):
    commands.handle("42", "/subscribe ref=GODSEYE")
    reply = commands.handle("42", f"/risk {value}")
    assert "Invalid risk value" in reply
    assert subscriptions.get("42").risk == 0.5


def test_risk_without_value_shows_usage(commands):
    assert "Usage: /risk <value>" in commands.handle("42", "/risk")


def test_risk_requires_subscription(commands):
    reply = commands.handle("42", "/risk 1.0")
    assert "subscribe first" in reply


def test_status(commands, subscriptions, signals):
    commands.handle("42", "/subscribe ref=GODSEYE")
    signals.insert_if_absent("s1", "42", {"id": "s1"})

    reply = commands.handle("42", "/status")
    assert "Risk Multiplier: 0.5x" in reply
    assert "Referral: GODSEYE" in reply
    assert "Active Signals: 1" in reply


def test_status_not_subscribed(commands):
    assert "not subscribed" in commands.handle("42", "/status")


def test_unsubscribe_deletes_signals(commands, subscriptions, signals):
    commands.handle("42", "/subscribe ref=GODSEYE")
    signals.insert_if_absent("s1", "42", {"id": "s1"})

    reply = commands.handle("42", "/unsubscribe")
    assert "Successfully unsubscribed" in reply
    assert subscriptions.get("42") is None
    assert signals.list_recent("42", 10) == []

    assert commands.handle("42", "/unsubscribe") == "❌ You are not subscribed."


def test_help_and_start(commands):
    assert "/subscribe ref=GODSEYE" in commands.handle("42", "/help")
    assert commands.handle("42", "/start") == commands.handle("42", "/help")


def test_unknown_command_and_plain_text(commands):
    assert commands.handle("42", "/launch") is None
    assert commands.handle("42", "good morning") is None


def test_store_error_gives_generic_reply(commands, monkeypatch):
    def broken(*args, **kwargs):
        raise StoreError("database is locked")

    monkeypatch.setattr(commands.subscriptions, "get", broken)
    assert commands.handle("42", "/status") == GENERIC_ERROR


# DISPATCH


def test_follower_command_is_answered(dispatcher, transport):
    dispatcher.dispatch(inbound("/subscribe ref=GODSEYE", sender_id="42", chat_id="42"))
    assert transport.sent[0][0] == "42"
    assert "Successfully subscribed" in transport.sent[0][1]


def test_leader_signal_is_broadcast_without_reply(dispatcher, transport, subscriptions, signals):
    subscriptions.upsert("42", 1.0, SCOPE)

    dispatcher.dispatch(inbound(leader_text(signed_payload()), sender_username=LEADER))

    assert signals.count_for_subscriber("42") == 1
    assert transport.sent == []


def test_forged_leader_signal_is_silently_dropped(dispatcher, transport, subscriptions, signals):
    subscriptions.upsert("42", 1.0, SCOPE)

    dispatcher.dispatch(
        inbound(leader_text(signed_payload(secret="forged")), sender_username=LEADER)
    )

    assert signals.count_for_subscriber("42") == 0
    assert transport.sent == []


def test_signal_text_from_follower_is_ignored(dispatcher, transport, subscriptions, signals):
    subscriptions.upsert("42", 1.0, SCOPE)
    dispatcher.dispatch(inbound(leader_text(signed_payload()), sender_username="mallory"))
    assert signals.count_for_subscriber("42") == 0
    assert transport.sent == []


def test_reply_failure_does_not_undo_mutation(subscriptions, signals, commands):
    """Subscription is committed even if the confirmation cannot be sent."""
    broadcaster = Broadcaster(subscriptions, signals, TEST_SECRET, SCOPE, parser=SignalParser(LEADER))
    dispatcher = MessageDispatcher(
        broadcaster, commands, FakeTransport(should_fail=True), run_in_background=False
    )

    dispatcher.dispatch(inbound("/subscribe ref=GODSEYE", sender_id="42"))

    assert subscriptions.get("42") is not None


def test_poll_forever_dispatches_queued_messages(dispatcher, transport, subscriptions):
    transport.inbox.append(inbound("/subscribe ref=GODSEYE", sender_id="42", chat_id="42"))

    dispatcher.poll_forever(timeout=0, max_iterations=1)

    assert subscriptions.get("42") is not None
    assert len(transport.sent) == 1


# TELEGRAM TRANSPORT


def test_parse_update_message():
    message = parse_update({
        "update_id": 1,
        "message": {
            "message_id": 77,
            "from": {"id": 42, "username": "alice"},
            "chat": {"id": -100},
            "text": "/status",
        },
    })
    assert message.sender_id == "42"
    assert message.sender_username == "alice"
    assert message.chat_id == "-100"
    assert message.source_key == "-100:77"


def test_parse_update_channel_post():
    message = parse_update({
        "update_id": 2,
        "channel_post": {
            "message_id": 5,
            "sender_chat": {"id": -200, "username": LEADER},
            "chat": {"id": -200},
            "text": "New Trade Alert!",
        },
    })
    assert message.sender_username == LEADER


@pytest.mark.parametrize(
    "update",
    [
        {},
        {"update_id": 3, "message": {"message_id": 1, "chat": {"id": 1}, "sticker": {}}},
        {"update_id": 4, "callback_query": {}},
        "not a dict",
    ],
)
def test_parse_update_ignores_non_text(update):
    assert parse_update(update) is None


def make_response(status_code, body):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


def test_telegram_send_text():
    session = MagicMock()
    session.post.return_value = make_response(200, {"ok": True, "result": {}})
    transport = TelegramTransport("TOKEN", session=session)

    transport.send_text("42", "hi")

    url = session.post.call_args[0][0]
    assert url == "https://api.telegram.org/botTOKEN/sendMessage"
    assert session.post.call_args[1]["json"] == {"chat_id": "42", "text": "hi"}


def test_telegram_api_error_raises_transport_error():
    session = MagicMock()
    session.post.return_value = make_response(403, {"ok": False, "description": "Forbidden: bot was blocked"})
    transport = TelegramTransport("TOKEN", session=session)

    with pytest.raises(TransportError, match="bot was blocked"):
        transport.send_text("42", "hi")


def test_telegram_network_error_hides_token():
    session = MagicMock()
    session.post.side_effect = requests.ConnectionError("https://api.telegram.org/botTOKEN/sendMessage")
    transport = TelegramTransport("TOKEN", session=session)

    with pytest.raises(TransportError) as exc_info:
        transport.send_text("42", "hi")
    assert "TOKEN" not in str(exc_info.value)


def test_telegram_receive_advances_offset():
    session = MagicMock()
    session.post.return_value = make_response(200, {
        "ok": True,
        "result": [
            {"update_id": 10, "message": {"message_id": 1, "from": {"id": 1}, "chat": {"id": 1}, "text": "/help"}},
            {"update_id": 11, "callback_query": {}},
        ],
    })
    transport = TelegramTransport("TOKEN", session=session)

    messages = transport.receive_text(timeout=0)
    assert len(messages) == 1

    transport.receive_text(timeout=0)
    assert session.post.call_args[1]["json"]["offset"] == 12
