"""
Signal extraction from free-form leader messages.

A leader message looks like:

    🚨 New Trade Alert! 🚨
    ...
    <tg-spoiler>SIGNAL: {"symbol": "BTCUSDT", "side": "BUY", ...}</tg-spoiler>

Fail-closed: anything that is not an exact match returns None.
"""

import json
import logging
from typing import Optional

from pydantic import ValidationError as SchemaError

from copier.relay.signal import RawTradeSignal

logger = logging.getLogger(__name__)


def extract_json_block(text: str, start_marker: str, end_marker: str) -> Optional[str]:
    """
    Find the {...} block following start_marker.

    Scans braces outside of JSON strings until the opening brace is balanced.
    If the block never balances, falls back to everything up to end_marker
    (or end of text) so the JSON decoder can report the error.

    Returns:
        The candidate JSON text, or None if no block starts after the marker
    """
    marker_at = text.find(start_marker)
    if marker_at < 0:
        return None

    open_at = text.find("{", marker_at + len(start_marker))
    if open_at < 0:
        return None

    # Nothing but whitespace may sit between the marker and the block
    if text[marker_at + len(start_marker):open_at].strip():
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(open_at, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[open_at:i + 1]

    end_at = text.find(end_marker, open_at) if end_marker else -1
    return text[open_at:end_at] if end_at >= 0 else text[open_at:]


class SignalParser:
    """
    Parses leader messages into RawTradeSignal objects.

    Checks performed (fail-fast):
    1. Sender is the leader
    2. Marker phrase present
    3. JSON block extractable after the start marker
    4. JSON decodes and matches the signal schema
    """

    def __init__(
        self,
        leader_username: str,
        marker: str = "New Trade Alert!",
        start_marker: str = "SIGNAL:",
        end_marker: str = "</tg-spoiler>",
    ):
        self.leader_username = leader_username.lstrip("@")
        self.marker = marker
        self.start_marker = start_marker
        self.end_marker = end_marker

    def is_leader(self, sender: Optional[str]) -> bool:
        return bool(sender) and sender.lstrip("@") == self.leader_username

    def parse(self, text: Optional[str], sender: Optional[str]) -> Optional[RawTradeSignal]:
        """
        Extract a signal from a message.

        Never raises; returns None for anything that is not a well-formed
        signal from the leader.
        """
        if not text or not self.is_leader(sender):
            return None

        if self.marker not in text:
            return None

        logger.info("Received signal message from leader")

        block = extract_json_block(text, self.start_marker, self.end_marker)
        if block is None:
            logger.info("No signal pattern found in message")
            return None

        try:
            data = json.loads(block)
        except json.JSONDecodeError as e:
            logger.warning(f"Failed to parse signal JSON: {e.msg} at pos {e.pos}")
            return None

        if not isinstance(data, dict):
            logger.warning("Signal JSON is not an object")
            return None

        try:
            return RawTradeSignal.from_dict(data)
        except SchemaError as e:
            logger.warning(f"Signal payload rejected by schema: {e.error_count()} error(s)")
            return None
