"""
Chat platform transport.

The relay only needs two capabilities from a chat platform: receive text
events and send text replies. TelegramTransport implements them over the
Telegram Bot API with requests; tests use an in-memory fake.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import requests

from copier.errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboundMessage:
    """Text event from the chat platform."""

    chat_id: str
    sender_id: Optional[str]
    sender_username: Optional[str]
    text: str
    message_id: Optional[str] = None

    @property
    def source_key(self) -> Optional[str]:
        """Stable identity of this message across redeliveries."""
        if self.message_id is None:
            return None
        return f"{self.chat_id}:{self.message_id}"


def parse_update(update: dict) -> Optional[InboundMessage]:
    """
    Convert a Telegram update into an InboundMessage.

    Handles regular messages and channel posts; anything without text
    (stickers, joins, callbacks) returns None.
    """
    if not isinstance(update, dict):
        return None

    message = update.get("message") or update.get("channel_post")
    if not isinstance(message, dict):
        return None

    text = message.get("text")
    chat = message.get("chat") or {}
    if not isinstance(text, str) or "id" not in chat:
        return None

    sender = message.get("from") or message.get("sender_chat") or {}
    sender_id = sender.get("id")
    message_id = message.get("message_id")

    return InboundMessage(
        chat_id=str(chat["id"]),
        sender_id=str(sender_id) if sender_id is not None else None,
        sender_username=sender.get("username"),
        text=text,
        message_id=str(message_id) if message_id is not None else None,
    )


class Transport(ABC):
    """Capability interface for a chat platform."""

    @abstractmethod
    def receive_text(self, timeout: int = 30) -> List[InboundMessage]:
        """Block up to timeout seconds for new text events."""
        pass

    @abstractmethod
    def send_text(self, recipient: str, text: str) -> None:
        """
        Send a plain text message.

        Raises:
            TransportError: delivery failed
        """
        pass


class TelegramTransport(Transport):
    """Telegram Bot API over HTTPS."""

    def __init__(
        self,
        bot_token: str,
        api_base: str = "https://api.telegram.org",
        session: Optional[requests.Session] = None,
        request_timeout: float = 10.0,
    ):
        self._base_url = f"{api_base.rstrip('/')}/bot{bot_token}"
        self._session = session or requests.Session()
        self.request_timeout = request_timeout
        self._offset: Optional[int] = None

    def _call(self, method: str, payload: dict, timeout: Optional[float] = None) -> object:
        try:
            response = self._session.post(
                f"{self._base_url}/{method}",
                json=payload,
                timeout=timeout or self.request_timeout,
            )
        except requests.RequestException as e:
            # Never include the URL: it embeds the bot token
            raise TransportError(f"Telegram {method} request failed: {type(e).__name__}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code != 200 or not body.get("ok"):
            description = body.get("description") or f"HTTP {response.status_code}"
            raise TransportError(f"Telegram {method} failed: {description}")
        return body.get("result")

    def receive_text(self, timeout: int = 30) -> List[InboundMessage]:
        payload = {"timeout": timeout, "allowed_updates": ["message", "channel_post"]}
        if self._offset is not None:
            payload["offset"] = self._offset

        updates = self._call("getUpdates", payload, timeout=timeout + self.request_timeout) or []

        messages = []
        for update in updates:
            update_id = update.get("update_id")
            if isinstance(update_id, int):
                self._offset = update_id + 1
            message = parse_update(update)
            if message is not None:
                messages.append(message)
        return messages

    def send_text(self, recipient: str, text: str) -> None:
        self._call("sendMessage", {"chat_id": recipient, "text": text})

    def set_webhook(self, url: str, secret_token: Optional[str] = None) -> None:
        """Register url as the update webhook."""
        payload = {"url": url, "allowed_updates": ["message", "channel_post"]}
        if secret_token:
            payload["secret_token"] = secret_token
        self._call("setWebhook", payload)
        logger.info(f"Webhook registered: {url}")
