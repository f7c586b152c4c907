"""Tests for leader message parsing."""

import json

import pytest

from copier.relay.parser import SignalParser, extract_json_block
from copier.relay.signal import Side
from tests.mocks.signals import LEADER, leader_text, signed_payload


@pytest.fixture
def parser():
    return SignalParser(leader_username=LEADER)


def test_parses_spoiler_wrapped_signal(parser):
    payload = signed_payload()
    signal = parser.parse(leader_text(payload), LEADER)

    assert signal is not None
    assert signal.symbol == "BTCUSDT"
    assert signal.side == Side.BUY
    assert signal.size == 1000
    assert isinstance(signal.size, int)
    assert signal.signature == payload["signature"]


def test_parses_signal_at_end_of_text(parser):
    signal = parser.parse(leader_text(signed_payload(), spoiler=False), LEADER)
    assert signal is not None


def test_leading_at_sign_on_sender_is_ignored(parser):
    assert parser.parse(leader_text(signed_payload()), f"@{LEADER}") is not None


@pytest.mark.parametrize("sender", [None, "", "SomeoneElse", LEADER.lower()])
def test_non_leader_sender_rejected(parser, sender):
    assert parser.parse(leader_text(signed_payload()), sender) is None


def test_missing_marker_phrase_rejected(parser):
    text = f"SIGNAL: {json.dumps(signed_payload())}"
    assert parser.parse(text, LEADER) is None


def test_missing_start_marker_rejected(parser):
    text = f"New Trade Alert!\n{json.dumps(signed_payload())}"
    assert parser.parse(text, LEADER) is None


def test_malformed_json_returns_none(parser):
    text = 'New Trade Alert!\nSIGNAL: {"symbol": "BTCUSDT", "side": BUY}</tg-spoiler>'
    assert parser.parse(text, LEADER) is None


def test_unbalanced_block_returns_none(parser):
    text = 'New Trade Alert!\nSIGNAL: {"symbol": "BTCUSDT", "side": "BUY"'
    assert parser.parse(text, LEADER) is None


@pytest.mark.parametrize(
    "override",
    [
        {"side": "HOLD"},
        {"side": "buy"},
        {"size": "1000"},
        {"size": -5},
        {"leverage": 0},
        {"symbol": ""},
    ],
)
def test_schema_violations_return_none(parser, override):
    payload = signed_payload()
    payload.update(override)
    assert parser.parse(leader_text(payload), LEADER) is None


def test_missing_signature_returns_none(parser):
    payload = signed_payload()
    del payload["signature"]
    assert parser.parse(leader_text(payload), LEADER) is None


def test_empty_text_returns_none(parser):
    assert parser.parse("", LEADER) is None
    assert parser.parse(None, LEADER) is None


def test_custom_markers():
    parser = SignalParser(LEADER, marker="TRADE", start_marker="DATA=", end_marker="#end")
    text = f"TRADE\nDATA={json.dumps(signed_payload())}#end trailing"
    assert parser.parse(text, LEADER) is not None


class TestExtractJsonBlock:
    """Bracket-matching extraction."""

    def test_nested_objects_and_braces_in_strings(self):
        text = 'SIGNAL: {"a": {"b": "}{"}, "c": "\\"}"} tail'
        assert extract_json_block(text, "SIGNAL:", "</x>") == '{"a": {"b": "}{"}, "c": "\\"}"}'

    def test_stops_at_first_balanced_block(self):
        text = 'SIGNAL: {"a": 1}</tg-spoiler> {"b": 2}'
        assert extract_json_block(text, "SIGNAL:", "</tg-spoiler>") == '{"a": 1}'

    def test_unbalanced_falls_back_to_end_marker(self):
        text = 'SIGNAL: {"a": 1</tg-spoiler>'
        assert extract_json_block(text, "SIGNAL:", "</tg-spoiler>") == '{"a": 1'

    def test_no_block_after_marker(self):
        assert extract_json_block("SIGNAL: nothing here", "SIGNAL:", "") is None

    def test_text_between_marker_and_block(self):
        assert extract_json_block('SIGNAL: see {"a": 1}', "SIGNAL:", "") is None

    def test_no_marker(self):
        assert extract_json_block('{"a": 1}', "SIGNAL:", "") is None
