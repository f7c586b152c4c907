"""
Chat bot surface

- transport: Platform capability interface (Telegram implementation)
- commands: Follower commands (/subscribe, /unsubscribe, /risk, /status, /help)
- dispatcher: Routes leader signals to the relay and commands to the handler
"""

from copier.bot.transport import InboundMessage, TelegramTransport, Transport, parse_update
from copier.bot.commands import CommandHandler, split_command
from copier.bot.dispatcher import MessageDispatcher

__all__ = [
    "InboundMessage",
    "TelegramTransport",
    "Transport",
    "parse_update",
    "CommandHandler",
    "split_command",
    "MessageDispatcher",
]
