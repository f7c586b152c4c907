"""
Signal relay pipeline

Components:
- signal: Wire schema and risk adjustment
- signature: HMAC-SHA256 signing and verification
- parser: Leader message extraction
- broadcaster: Fan-out to subscribers
"""

from copier.relay.signal import (
    CANONICAL_FIELDS,
    AdjustedSignal,
    RawTradeSignal,
    Side,
    adjust_for_risk,
)
from copier.relay.signature import canonical_payload, sign_signal, verify_signal
from copier.relay.parser import SignalParser, extract_json_block
from copier.relay.broadcaster import Broadcaster, BroadcastResult, derive_signal_id

__all__ = [
    # Schema
    "CANONICAL_FIELDS",
    "AdjustedSignal",
    "RawTradeSignal",
    "Side",
    "adjust_for_risk",
    # Signature
    "canonical_payload",
    "sign_signal",
    "verify_signal",
    # Parser
    "SignalParser",
    "extract_json_block",
    # Fan-out
    "Broadcaster",
    "BroadcastResult",
    "derive_signal_id",
]
