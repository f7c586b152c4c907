"""
Routes inbound chat messages.

Leader messages go to the broadcaster (never answered); follower
commands go to the CommandHandler and the reply is sent best-effort.
"""

import logging
import time
from typing import Optional

from copier.bot.commands import CommandHandler
from copier.bot.transport import InboundMessage, Transport, parse_update
from copier.errors import TransportError
from copier.relay.broadcaster import Broadcaster

logger = logging.getLogger(__name__)


class MessageDispatcher:
    """Dispatches chat messages to the relay or the command handler."""

    def __init__(
        self,
        broadcaster: Broadcaster,
        commands: CommandHandler,
        transport: Transport,
        run_in_background: bool = True,
    ):
        """
        Args:
            broadcaster: Fan-out for leader signals
            commands: Follower command handler
            transport: Outbound replies
            run_in_background: Broadcast on the worker pool instead of inline
        """
        self.broadcaster = broadcaster
        self.commands = commands
        self.transport = transport
        self.run_in_background = run_in_background

    def dispatch(self, message: InboundMessage) -> None:
        parser = self.broadcaster.parser
        if parser is not None and parser.is_leader(message.sender_username):
            if self.run_in_background:
                self.broadcaster.submit(message.text, message.sender_username, message.source_key)
            else:
                self.broadcaster.process_message(
                    message.text, message.sender_username, message.source_key
                )
            return

        reply = self.commands.handle(message.sender_id, message.text)
        if reply is not None:
            self.reply(message.chat_id, reply)

    def dispatch_update(self, update: dict) -> None:
        """Handle one raw platform update (webhook body)."""
        message = parse_update(update)
        if message is None:
            return
        self.dispatch(message)

    def reply(self, chat_id: str, text: str) -> bool:
        """Send a reply; failures are logged, never raised."""
        try:
            self.transport.send_text(chat_id, text)
            return True
        except TransportError as e:
            logger.warning(f"Failed to send reply to {chat_id}: {e}")
            return False

    def poll_forever(self, timeout: int = 30, retry_delay: float = 5.0, max_iterations: Optional[int] = None) -> None:
        """
        Long-poll the transport and dispatch every message.

        Transport errors back off for retry_delay seconds; max_iterations
        bounds the loop (None = run until interrupted).
        """
        iterations = 0
        logger.info("Polling for chat updates")
        while max_iterations is None or iterations < max_iterations:
            iterations += 1
            try:
                messages = self.transport.receive_text(timeout=timeout)
            except TransportError as e:
                logger.warning(f"Polling failed: {e}; retrying in {retry_delay}s")
                time.sleep(retry_delay)
                continue

            for message in messages:
                try:
                    self.dispatch(message)
                except Exception as e:
                    logger.error(f"Failed to handle message {message.source_key}: {e}", exc_info=True)
