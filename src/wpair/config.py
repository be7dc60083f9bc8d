"""Configuration management for wpair."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

import yaml


TOKEN_ENV_VAR = "WPAIR_TELEGRAM_TOKEN"


@dataclass
class HttpConfig:
    """Verify server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    rate_limit_requests: int = 30  # per client IP
    rate_limit_window: int = 60  # seconds


@dataclass
class TelegramConfig:
    """Telegram Bot API configuration."""

    token: str | None = None
    api_url: str = "https://api.telegram.org"
    poll_timeout: int = 30  # long-poll seconds


@dataclass
class WalletConfig:
    """Wallet session configuration."""

    project_id: str | None = None
    chain_id: int = 1
    session_factory: str | None = None  # "module:attribute"
    pairing_timeout: float = 300.0  # 5 minutes


@dataclass
class Config:
    """Daemon configuration."""

    log_level: str = "INFO"
    log_file: str | None = None
    backend_url: str = "http://localhost:8080"
    http: HttpConfig = field(default_factory=HttpConfig)
    telegram: TelegramConfig = field(default_factory=TelegramConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)


def get_config_path(custom_path: Path | None = None) -> Path:
    """Get the configuration file path.

    Args:
        custom_path: Override path. If None, returns default.

    Returns:
        Path to config file.
    """
    if custom_path is not None:
        return custom_path
    return Path.home() / ".config" / "wpair" / "config.yaml"


def _default_file_reader(path: Path) -> dict[str, Any] | None:
    """Default file reader that loads YAML from disk."""
    if not path.exists():
        return None
    try:
        content = path.read_text()
        if not content.strip():
            return None
        return yaml.safe_load(content)
    except yaml.YAMLError:
        return None


def load_config(
    path: Path | None = None,
    file_reader: Callable[[Path], dict[str, Any] | None] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration from file.

    The bot token may also come from the WPAIR_TELEGRAM_TOKEN environment
    variable, which wins over the file.

    Args:
        path: Path to config file. If None, uses default path.
        file_reader: Injectable file reader for testing.
        environ: Injectable environment for testing.

    Returns:
        Config object with values from file or defaults.
    """
    config_path = get_config_path(path)
    reader = file_reader or _default_file_reader
    env = os.environ if environ is None else environ

    data = reader(config_path) or {}

    http_data = data.get("http", {})
    http_config = HttpConfig(
        host=http_data.get("host", HttpConfig.host),
        port=http_data.get("port", HttpConfig.port),
        rate_limit_requests=http_data.get(
            "rate_limit_requests", HttpConfig.rate_limit_requests
        ),
        rate_limit_window=http_data.get(
            "rate_limit_window", HttpConfig.rate_limit_window
        ),
    )

    telegram_data = data.get("telegram", {})
    telegram_config = TelegramConfig(
        token=env.get(TOKEN_ENV_VAR) or telegram_data.get("token"),
        api_url=telegram_data.get("api_url", TelegramConfig.api_url),
        poll_timeout=telegram_data.get("poll_timeout", TelegramConfig.poll_timeout),
    )

    wallet_data = data.get("wallet", {})
    wallet_config = WalletConfig(
        project_id=wallet_data.get("project_id"),
        chain_id=wallet_data.get("chain_id", WalletConfig.chain_id),
        session_factory=wallet_data.get("session_factory"),
        pairing_timeout=wallet_data.get(
            "pairing_timeout", WalletConfig.pairing_timeout
        ),
    )

    return Config(
        log_level=data.get("log_level", Config.log_level),
        log_file=data.get("log_file", Config.log_file),
        backend_url=data.get("backend_url", Config.backend_url).rstrip("/"),
        http=http_config,
        telegram=telegram_config,
        wallet=wallet_config,
    )
