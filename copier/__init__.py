"""
Trade Signal Copier

Relays signed trade signals from a leader chat account to subscribed
followers, scaled by each follower's risk multiplier.

Components:
- config: Validated configuration
- relay: Parse, verify and fan out signals
- storage: SQLite subscription and signal stores
- ratelimit: Per-subscriber admission control
- api: Flask delivery API
- bot: Chat transport, commands and dispatch
"""

from copier.config import CopierConfig
from copier.errors import (
    AuthenticityError,
    CopierError,
    NotSubscribedError,
    RateLimitExceeded,
    StoreError,
    TransportError,
    ValidationError,
)

__version__ = "1.0.0"
__all__ = [
    "CopierConfig",
    "AuthenticityError",
    "CopierError",
    "NotSubscribedError",
    "RateLimitExceeded",
    "StoreError",
    "TransportError",
    "ValidationError",
]
