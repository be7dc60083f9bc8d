"""Base exceptions for wpair."""


class WpairError(Exception):
    """Base exception for all wpair errors."""

    pass


class ConfigError(WpairError):
    """Configuration is missing or invalid."""

    pass


class TransportError(WpairError):
    """Bot API call failed."""

    pass
