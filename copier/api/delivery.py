"""
Delivery service - read/delete access to stored signals.

Thin orchestration over SignalStore and SubscriptionStore. Rate limiting
is applied by the HTTP layer before any of these calls.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from copier.errors import NotSubscribedError, ValidationError
from copier.storage import MAX_LIST_LIMIT, SignalStore, SubscriptionStore

logger = logging.getLogger(__name__)


class SignalNotFound(Exception):
    """No signal with this id for the subscriber."""

    pass


class SignalOwnershipError(Exception):
    """Signal exists but belongs to another subscriber."""

    pass


@dataclass
class SubscriptionStatus:
    subscribed: bool
    risk: Optional[float] = None
    ref: Optional[str] = None
    subscribed_since: Optional[datetime] = None
    active_signals: int = 0

    def to_dict(self) -> dict:
        return {
            "subscribed": self.subscribed,
            "risk": self.risk,
            "ref": self.ref,
            "subscribedSince": self.subscribed_since.isoformat() if self.subscribed_since else None,
        }


def require_subscriber_id(subscriber_id: Optional[str]) -> str:
    if subscriber_id is None or not str(subscriber_id).strip():
        raise ValidationError("subscriberId required")
    return str(subscriber_id).strip()


class DeliveryService:
    """Subscriber-facing queries over the two stores."""

    def __init__(
        self,
        subscriptions: SubscriptionStore,
        signals: SignalStore,
        page_limit: int = MAX_LIST_LIMIT,
    ):
        self.subscriptions = subscriptions
        self.signals = signals
        self.page_limit = page_limit

    def list_signals(self, subscriber_id: str, limit: Optional[int] = None) -> List[dict]:
        """Most recent signals for a subscriber, newest first, at most page_limit."""
        subscriber_id = require_subscriber_id(subscriber_id)
        if limit is None:
            limit = self.page_limit
        if limit <= 0:
            raise ValidationError(f"limit must be positive, got {limit}")
        return self.signals.list_recent(subscriber_id, min(limit, self.page_limit))

    def delete_signal(self, signal_id: str, subscriber_id: str) -> None:
        """
        Delete one of the subscriber's signals.

        Ownership is part of the delete predicate. The follow-up lookup only
        decides which error to report when nothing was deleted.

        Raises:
            SignalOwnershipError: signal_id exists for a different subscriber
            SignalNotFound: no such signal
        """
        subscriber_id = require_subscriber_id(subscriber_id)
        if not signal_id:
            raise ValidationError("signal id required")

        if self.signals.delete_one(signal_id, subscriber_id):
            logger.info(f"Subscriber {subscriber_id} deleted signal {signal_id}")
            return

        if self.signals.exists(signal_id):
            logger.warning(
                f"Subscriber {subscriber_id} attempted to delete signal {signal_id} they do not own"
            )
            raise SignalOwnershipError(signal_id)
        raise SignalNotFound(signal_id)

    def get_risk(self, subscriber_id: str) -> float:
        subscriber_id = require_subscriber_id(subscriber_id)
        subscriber = self.subscriptions.get(subscriber_id)
        if subscriber is None:
            raise NotSubscribedError(subscriber_id)
        return subscriber.risk

    def set_risk(self, subscriber_id: str, risk: float) -> float:
        subscriber_id = require_subscriber_id(subscriber_id)
        return self.subscriptions.set_risk(subscriber_id, risk)

    def get_subscription(self, subscriber_id: str) -> SubscriptionStatus:
        subscriber_id = require_subscriber_id(subscriber_id)
        subscriber = self.subscriptions.get(subscriber_id)
        if subscriber is None:
            return SubscriptionStatus(subscribed=False)
        return SubscriptionStatus(
            subscribed=True,
            risk=subscriber.risk,
            ref=subscriber.referral_scope,
            subscribed_since=subscriber.created_at,
            active_signals=self.signals.count_for_subscriber(subscriber_id),
        )
