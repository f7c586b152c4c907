"""
Fan-out broadcaster - Main relay orchestration.

Coordinates the full signal flow:
  message → parse → verify → signal id → subscribers → adjust → store

Parse/verify failures drop the signal (logged, never replied).
A failing write for one subscriber is logged and skipped; the rest of the
fan-out continues.
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import List, Optional, Union

from copier.errors import AuthenticityError
from copier.relay.parser import SignalParser
from copier.relay.signal import RawTradeSignal, adjust_for_risk
from copier.relay.signature import verify_signal
from copier.storage import SignalStore, SubscriptionStore

logger = logging.getLogger(__name__)

# Namespace for ids derived from inbound message identity
SIGNAL_ID_NAMESPACE = uuid.UUID("6f1c3a52-8d0e-4b7a-9e61-2b5d4c8f0a17")


def derive_signal_id(source_key: Optional[str] = None) -> str:
    """
    Signal id for one broadcast.

    With a source_key (e.g. "chat_id:message_id") the id is stable, so a
    redelivered message maps onto the rows already written. Without one a
    random UUID4 is used.
    """
    if source_key:
        return str(uuid.uuid5(SIGNAL_ID_NAMESPACE, source_key))
    return str(uuid.uuid4())


@dataclass
class BroadcastResult:
    """Outcome of one fan-out."""

    signal_id: str
    targeted: int = 0
    inserted: int = 0
    skipped: int = 0
    failed: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed

    def __repr__(self) -> str:
        return (
            f"BroadcastResult({self.signal_id}: targeted={self.targeted}, "
            f"inserted={self.inserted}, skipped={self.skipped}, failed={len(self.failed)})"
        )


class Broadcaster:
    """
    Stateless fan-out over the subscription and signal stores.

    Nothing is retained between invocations; the optional worker pool only
    moves broadcasts off the caller's thread.
    """

    def __init__(
        self,
        subscriptions: SubscriptionStore,
        signals: SignalStore,
        secret: Union[str, bytes],
        referral_scope: str,
        parser: Optional[SignalParser] = None,
        max_workers: int = 2,
    ):
        """
        Initialize broadcaster.

        Args:
            subscriptions: Source of fan-out membership
            signals: Destination for adjusted signal rows
            secret: Shared HMAC secret
            referral_scope: Scope whose subscribers receive broadcasts
            parser: Leader message parser (needed for process_message)
            max_workers: Worker threads used by submit()
        """
        self.subscriptions = subscriptions
        self.signals = signals
        self._secret = secret
        self.referral_scope = referral_scope
        self.parser = parser
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()

    def broadcast(self, signal: RawTradeSignal, source_key: Optional[str] = None) -> BroadcastResult:
        """
        Verify a signal and store one adjusted copy per subscriber.

        Args:
            signal: Parsed, not yet verified signal
            source_key: Stable identity of the inbound message, if any

        Returns:
            BroadcastResult with per-subscriber counts

        Raises:
            AuthenticityError: signature does not verify
            StoreError: subscriber list could not be read
        """
        if not verify_signal(signal, self._secret):
            raise AuthenticityError("Invalid signal signature")

        signal_id = derive_signal_id(source_key)
        subscribers = self.subscriptions.list_by_scope(self.referral_scope)
        result = BroadcastResult(signal_id=signal_id, targeted=len(subscribers))

        if not subscribers:
            logger.info(f"Signal {signal_id}: no subscribers in {self.referral_scope}, nothing to do")
            return result

        logger.info(
            f"Broadcasting {signal.side.value} {signal.symbol} x{signal.size} "
            f"to {len(subscribers)} subscribers (signal {signal_id})"
        )

        for subscriber_id, risk in subscribers:
            try:
                adjusted = adjust_for_risk(signal, risk, signal_id)
                if self.signals.insert_if_absent(signal_id, subscriber_id, adjusted.to_dict()):
                    result.inserted += 1
                else:
                    result.skipped += 1
            except Exception as e:
                result.failed.append(subscriber_id)
                logger.error(
                    f"Error inserting signal {signal_id} for subscriber {subscriber_id}: {e}",
                    exc_info=True,
                )

        if result.failed:
            logger.warning(f"Signal {signal_id} broadcast finished with failures: {result!r}")
        else:
            logger.info(f"Signal {signal_id} broadcast complete: {result!r}")
        return result

    def process_message(
        self, text: Optional[str], sender: Optional[str], source_key: Optional[str] = None
    ) -> Optional[BroadcastResult]:
        """
        Parse, verify and broadcast a leader message.

        Returns None if the message is not a valid signal. Authenticity
        failures are logged and swallowed here; nothing is reported back to
        the sender.
        """
        if self.parser is None:
            raise RuntimeError("Broadcaster has no parser configured")

        signal = self.parser.parse(text, sender)
        if signal is None:
            return None

        try:
            return self.broadcast(signal, source_key=source_key)
        except AuthenticityError as e:
            logger.warning(f"Dropped signal from {sender}: {e}")
            return None

    def submit(
        self, text: Optional[str], sender: Optional[str], source_key: Optional[str] = None
    ) -> Future:
        """Run process_message on the worker pool."""
        with self._executor_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self._max_workers, thread_name_prefix="broadcast"
                )
            future = self._executor.submit(self.process_message, text, sender, source_key)
        future.add_done_callback(self._log_failure)
        return future

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"Broadcast failed: {error}", exc_info=error)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker pool. In-flight broadcasts finish if wait=True."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
