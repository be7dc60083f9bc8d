"""Telegram bot front end for wallet pairing.

Provides:
- Message templates
- Bot command and callback handling
- Telegram Bot API transport
"""

from .handler import BotHandler
from .telegram import TelegramClient

__all__ = [
    "BotHandler",
    "TelegramClient",
]
