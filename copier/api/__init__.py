"""
HTTP delivery surface

- delivery: Subscriber-facing queries over the stores
- app: Flask application factory
"""

from copier.api.delivery import (
    DeliveryService,
    SignalNotFound,
    SignalOwnershipError,
    SubscriptionStatus,
)
from copier.api.app import create_app

__all__ = [
    "DeliveryService",
    "SignalNotFound",
    "SignalOwnershipError",
    "SubscriptionStatus",
    "create_app",
]
