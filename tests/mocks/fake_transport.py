"""
In-memory chat transport for testing.

Records every outbound message and serves queued inbound messages.
No network calls.
"""

from typing import List, Optional, Tuple

from copier.bot.transport import InboundMessage, Transport
from copier.errors import TransportError


class FakeTransport(Transport):
    """
    Fake chat transport.

    Exposes the same interface as TelegramTransport with deterministic
    behaviour.
    """

    def __init__(self, should_fail: bool = False):
        """
        Args:
            should_fail: If True, send_text raises TransportError
        """
        self.should_fail = should_fail
        self.sent: List[Tuple[str, str]] = []
        self.inbox: List[InboundMessage] = []

    def receive_text(self, timeout: int = 30) -> List[InboundMessage]:
        messages, self.inbox = self.inbox, []
        return messages

    def send_text(self, recipient: str, text: str) -> None:
        if self.should_fail:
            raise TransportError("Fake transport failure")
        self.sent.append((recipient, text))

    def last_reply(self) -> Optional[str]:
        return self.sent[-1][1] if self.sent else None
