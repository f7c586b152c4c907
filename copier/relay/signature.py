"""HMAC-SHA256 signing and verification for leader trade signals."""

import hashlib
import hmac
import json
import logging
import math
from typing import Any, Mapping, Union

from copier.relay.signal import CANONICAL_FIELDS, RawTradeSignal

logger = logging.getLogger(__name__)

SignalLike = Union[RawTradeSignal, Mapping[str, Any]]


def _js_number(value: Any) -> str:
    """
    Render a number the way JSON.stringify does.

    Uses the shortest round-trip digits (Python repr) laid out by the
    ECMAScript Number::toString rules: plain decimals for 1e-7 < |x| < 1e21,
    exponent form outside that range. Non-finite values become null.
    """
    if isinstance(value, bool):
        raise TypeError("booleans are not numbers")
    if isinstance(value, int):
        if abs(value) < 2 ** 53:
            return str(value)
        value = float(value)
    if not isinstance(value, float):
        raise TypeError(f"expected a number, got {type(value).__name__}")
    if not math.isfinite(value):
        return "null"
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    mantissa, _, exponent = repr(abs(value)).partition("e")
    whole, _, fraction = mantissa.partition(".")
    digits = whole + fraction
    # value == 0.<digits> * 10**point
    point = len(whole) + int(exponent or 0)
    stripped = digits.lstrip("0")
    point -= len(digits) - len(stripped)
    digits = stripped.rstrip("0")
    k = len(digits)

    if k <= point <= 21:
        text = digits + "0" * (point - k)
    elif 0 < point <= 21:
        text = f"{digits[:point]}.{digits[point:]}"
    elif -6 < point <= 0:
        text = "0." + "0" * -point + digits
    else:
        e = point - 1
        exp_text = f"e+{e}" if e >= 0 else f"e-{-e}"
        text = (digits if k == 1 else f"{digits[0]}.{digits[1:]}") + exp_text
    return sign + text


def _as_fields(signal: SignalLike) -> dict:
    if isinstance(signal, RawTradeSignal):
        return signal.canonical_fields()
    fields = {}
    for key in CANONICAL_FIELDS:
        if key not in signal:
            raise KeyError(key)
        value = signal[key]
        # Side enums serialize as their value
        fields[key] = getattr(value, "value", value)
    return fields


def canonical_payload(signal: SignalLike) -> bytes:
    """
    Serialize exactly the signed fields in fixed order as compact JSON.

    Any extra keys on the input are ignored; a missing signed field raises
    KeyError.
    """
    fields = _as_fields(signal)
    parts = []
    for key in CANONICAL_FIELDS:
        value = fields[key]
        if isinstance(value, str):
            rendered = json.dumps(value, ensure_ascii=False)
        else:
            rendered = _js_number(value)
        parts.append(f"{json.dumps(key)}:{rendered}")
    return ("{" + ",".join(parts) + "}").encode("utf-8")


def sign_signal(signal: SignalLike, secret: Union[str, bytes]) -> str:
    """Hex HMAC-SHA256 of the canonical payload."""
    key = secret.encode("utf-8") if isinstance(secret, str) else secret
    return hmac.new(key, canonical_payload(signal), hashlib.sha256).hexdigest()


def verify_signal(signal: SignalLike, secret: Union[str, bytes]) -> bool:
    """
    Check a signal's claimed signature against the shared secret.

    Fail-closed: a missing field, missing signature or any error during
    canonicalization returns False. Neither the secret nor the expected
    digest is ever logged.
    """
    if isinstance(signal, RawTradeSignal):
        claimed = signal.signature
    else:
        claimed = signal.get("signature")

    if not isinstance(claimed, str) or not claimed:
        logger.warning("Signal rejected: missing signature")
        return False

    try:
        expected = sign_signal(signal, secret)
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Signal rejected: cannot canonicalize payload ({type(e).__name__})")
        return False

    if not hmac.compare_digest(expected.encode("utf-8"), claimed.encode("utf-8")):
        logger.warning("Signal rejected: signature mismatch")
        return False

    return True
