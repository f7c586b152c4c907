"""Wires stores, relay, rate limiter and bot together from a CopierConfig."""

import logging
from dataclasses import dataclass
from typing import Optional

from copier.api.delivery import DeliveryService
from copier.bot.commands import CommandHandler
from copier.bot.dispatcher import MessageDispatcher
from copier.bot.transport import TelegramTransport, Transport
from copier.config import CopierConfig
from copier.ratelimit import InMemoryRateLimiter, RateLimiter
from copier.relay.broadcaster import Broadcaster
from copier.relay.parser import SignalParser
from copier.storage import CopierDB, SignalStore, SubscriptionStore

logger = logging.getLogger(__name__)


@dataclass
class CopierServices:
    """Everything the HTTP app and the poller need."""

    config: CopierConfig
    db: CopierDB
    subscriptions: SubscriptionStore
    signals: SignalStore
    rate_limiter: RateLimiter
    delivery: DeliveryService
    broadcaster: Broadcaster
    dispatcher: MessageDispatcher

    def shutdown(self) -> None:
        self.broadcaster.shutdown(wait=True)


def build_services(
    config: CopierConfig,
    transport: Optional[Transport] = None,
    rate_limiter: Optional[RateLimiter] = None,
    run_in_background: bool = True,
) -> CopierServices:
    """
    Build the object graph.

    Args:
        config: Copier configuration
        transport: Chat transport (defaults to TelegramTransport)
        rate_limiter: Admission control (defaults to in-memory)
        run_in_background: Broadcast on a worker pool instead of inline
    """
    db = CopierDB(config.db_path)
    subscriptions = SubscriptionStore(db, min_risk=config.min_risk, max_risk=config.max_risk)
    signals = SignalStore(db, max_list_limit=config.signals_page_limit)

    parser = SignalParser(
        leader_username=config.leader_username,
        marker=config.signal_marker,
        start_marker=config.signal_start_marker,
        end_marker=config.signal_end_marker,
    )
    broadcaster = Broadcaster(
        subscriptions=subscriptions,
        signals=signals,
        secret=config.app_secret,
        referral_scope=config.referral_code,
        parser=parser,
        max_workers=config.broadcast_workers,
    )
    commands = CommandHandler(
        subscriptions=subscriptions,
        signals=signals,
        referral_code=config.referral_code,
        default_risk=config.default_risk,
    )
    dispatcher = MessageDispatcher(
        broadcaster=broadcaster,
        commands=commands,
        transport=transport or TelegramTransport(config.bot_token),
        run_in_background=run_in_background,
    )

    services = CopierServices(
        config=config,
        db=db,
        subscriptions=subscriptions,
        signals=signals,
        rate_limiter=rate_limiter
        or InMemoryRateLimiter(
            limit=config.rate_limit_requests,
            window_seconds=config.rate_limit_window_seconds,
        ),
        delivery=DeliveryService(subscriptions, signals, page_limit=config.signals_page_limit),
        broadcaster=broadcaster,
        dispatcher=dispatcher,
    )
    logger.info(
        f"Copier services ready (db={config.db_path}, leader={config.leader_username}, "
        f"scope={config.referral_code})"
    )
    return services
