"""wpair - Ethereum wallet pairing for Telegram bots."""

__version__ = "0.1.0"
