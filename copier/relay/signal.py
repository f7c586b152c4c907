"""
Trade signal schema and risk adjustment.

RawTradeSignal is the wire payload posted by the leader. It exists only
between parse and verify and is never stored as-is; each subscriber gets
an AdjustedSignal scaled by their risk multiplier.
"""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, field_validator

# Integers stay integers so the canonical form matches what the signer hashed
Number = Union[StrictInt, StrictFloat]

# Fields covered by the signature, in signing order
CANONICAL_FIELDS = ("symbol", "side", "size", "price", "leverage")


class Side(str, Enum):
    """Trade side: BUY or SELL"""

    BUY = "BUY"
    SELL = "SELL"


class RawTradeSignal(BaseModel):
    """
    Signed trade signal as received from the leader.

    Unknown keys are ignored; only CANONICAL_FIELDS are signed.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    symbol: str = Field(..., min_length=1, description="Instrument symbol, e.g. BTCUSDT")
    side: Side = Field(..., description="BUY or SELL")
    size: Number = Field(..., description="Leader position size")
    price: Number = Field(..., description="Entry price")
    leverage: Number = Field(..., description="Leverage multiple")
    signature: str = Field(..., min_length=1, description="Hex HMAC-SHA256 over canonical fields")

    @field_validator("size", "price", "leverage")
    @classmethod
    def validate_positive(cls, v: Number) -> Number:
        if v <= 0:
            raise ValueError(f"must be positive, got {v}")
        return v

    def canonical_fields(self) -> Dict[str, Any]:
        """Signed fields in signing order"""
        return {
            "symbol": self.symbol,
            "side": self.side.value,
            "size": self.size,
            "price": self.price,
            "leverage": self.leverage,
        }

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization"""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: dict) -> "RawTradeSignal":
        """Parse from dictionary"""
        return cls.model_validate(data)


@dataclass(frozen=True)
class AdjustedSignal:
    """Per-subscriber copy of a signal, scaled by the subscriber's risk."""

    id: str
    symbol: str
    side: str
    size: Number
    price: Number
    leverage: Number
    original_size: Number
    adjusted_size: float
    applied_risk: float

    def to_dict(self) -> dict:
        return asdict(self)


def adjust_for_risk(signal: RawTradeSignal, risk: float, signal_id: str) -> AdjustedSignal:
    """
    Scale a verified signal's size by a subscriber's risk multiplier.

    Pure function. The signature is not carried into the adjusted copy.

    Args:
        signal: Verified trade signal
        risk: Subscriber risk multiplier
        signal_id: Broadcast identifier shared by every subscriber's copy

    Returns:
        AdjustedSignal with adjusted_size = size * risk
    """
    return AdjustedSignal(
        id=signal_id,
        symbol=signal.symbol,
        side=signal.side.value,
        size=signal.size,
        price=signal.price,
        leverage=signal.leverage,
        original_size=signal.size,
        adjusted_size=signal.size * risk,
        applied_risk=risk,
    )
