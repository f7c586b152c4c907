"""
Follower chat commands.

/subscribe ref=CODE, /unsubscribe, /risk <value>, /status, /help.
Each command maps to one store mutation or query and returns the reply
text; sending the reply is the dispatcher's job.
"""

import logging
import math
import re
from typing import Callable, Dict, Optional

from copier.errors import NotSubscribedError, StoreError, ValidationError
from copier.storage import SignalStore, SubscriptionStore

logger = logging.getLogger(__name__)

REF_PATTERN = re.compile(r"ref=([A-Za-z0-9_]+)")

GENERIC_ERROR = "❌ Something went wrong. Please try again."


def split_command(text: str) -> Optional[tuple]:
    """
    Split "/risk@MyBot 1.0" into ("risk", "1.0").

    Returns None if text is not a command.
    """
    if not text or not text.startswith("/"):
        return None
    head, _, args = text.strip().partition(" ")
    name = head[1:].split("@", 1)[0].lower()
    if not name:
        return None
    return name, args.strip()


class CommandHandler:
    """Executes follower commands against the stores."""

    def __init__(
        self,
        subscriptions: SubscriptionStore,
        signals: SignalStore,
        referral_code: str,
        default_risk: float = 0.5,
    ):
        self.subscriptions = subscriptions
        self.signals = signals
        self.referral_code = referral_code
        self.default_risk = default_risk
        self._commands: Dict[str, Callable[[str, str], str]] = {
            "start": self.help,
            "help": self.help,
            "subscribe": self.subscribe,
            "unsubscribe": self.unsubscribe,
            "risk": self.risk,
            "status": self.status,
        }

    def handle(self, subscriber_id: Optional[str], text: str) -> Optional[str]:
        """
        Run a command and return the reply.

        Returns None for text that is not a known command.
        """
        parsed = split_command(text)
        if parsed is None:
            return None
        name, args = parsed

        command = self._commands.get(name)
        if command is None:
            return None

        if not subscriber_id:
            logger.warning(f"/{name} received without a sender id")
            return None

        try:
            return command(subscriber_id, args)
        except StoreError as e:
            logger.error(f"/{name} failed for {subscriber_id}: {e}", exc_info=True)
            return GENERIC_ERROR

    def subscribe(self, subscriber_id: str, args: str) -> str:
        match = REF_PATTERN.search(args)
        if match is None or match.group(1) != self.referral_code:
            return f"Invalid referral code. Please use: /subscribe ref={self.referral_code}"

        self.subscriptions.upsert(subscriber_id, self.default_risk, self.referral_code)
        return (
            "✅ Successfully subscribed!\n\n"
            f"Your default risk multiplier is {self.default_risk}x\n"
            f"Use /risk <value> to adjust ({self.subscriptions.min_risk} to "
            f"{self.subscriptions.max_risk})\n\n"
            "Example: /risk 1.0"
        )

    def unsubscribe(self, subscriber_id: str, args: str) -> str:
        if self.subscriptions.delete(subscriber_id):
            return "✅ Successfully unsubscribed. All your signals have been deleted."
        return "❌ You are not subscribed."

    def risk(self, subscriber_id: str, args: str) -> str:
        bounds = f"{self.subscriptions.min_risk} to {self.subscriptions.max_risk}"
        value = args.split(" ", 1)[0] if args else ""
        if not value:
            return (
                "Please specify a risk value.\n\n"
                "Usage: /risk <value>\n"
                "Example: /risk 1.0\n\n"
                f"Valid range: {bounds}"
            )

        try:
            risk = float(value)
        except ValueError:
            risk = math.nan

        try:
            risk = self.subscriptions.set_risk(subscriber_id, risk)
        except ValidationError:
            return f"❌ Invalid risk value.\n\nRisk must be between {bounds}"
        except NotSubscribedError:
            return f"❌ Please subscribe first using: /subscribe ref={self.referral_code}"
        return f"✅ Risk multiplier updated to {risk}x"

    def status(self, subscriber_id: str, args: str) -> str:
        subscriber = self.subscriptions.get(subscriber_id)
        if subscriber is None:
            return (
                "❌ You are not subscribed.\n\n"
                f"To subscribe, use: /subscribe ref={self.referral_code}"
            )

        count = self.signals.count_for_subscriber(subscriber_id)
        return (
            "📊 Your Status:\n\n"
            "Subscribed: Yes\n"
            f"Risk Multiplier: {subscriber.risk}x\n"
            f"Referral: {subscriber.referral_scope}\n"
            f"Active Signals: {count}\n"
            f"Subscribed Since: {subscriber.created_at.date().isoformat()}"
        )

    def help(self, subscriber_id: str, args: str) -> str:
        return (
            "🤖 Trade Copier Bot Commands:\n\n"
            f"/subscribe ref={self.referral_code} - Subscribe to signals\n"
            "/unsubscribe - Unsubscribe from signals\n"
            f"/risk <value> - Set risk multiplier ({self.subscriptions.min_risk}-"
            f"{self.subscriptions.max_risk})\n"
            "/status - Check your subscription status\n"
            "/help - Show this help message"
        )
