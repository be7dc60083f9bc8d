"""Wallet session contract and per-user pending attempt state.

The wallet protocol itself lives outside wpair. A session is any object that
behaves like an EIP-1193 provider with an event emitter:

- emits ``display_uri`` once with the pairing URI,
- emits ``connect`` when the wallet approves, after which ``accounts``
  holds the offered addresses,
- answers ``request(method, params)`` with a result or raises.

Sessions are produced by a factory named in configuration as
``"package.module:attribute"``.
"""

import asyncio
import importlib
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Protocol

from wpair.config import WalletConfig
from wpair.errors import ConfigError

EVENT_DISPLAY_URI = "display_uri"
EVENT_CONNECT = "connect"


class WalletSession(Protocol):
    """Protocol for an external wallet session."""

    accounts: list[str]

    def on(self, event: str, callback: Callable[..., Any]) -> None:
        """Register a callback for a session event."""
        ...

    async def connect(self) -> None:
        """Start the pairing handshake. Emits display_uri, later connect."""
        ...

    async def request(self, method: str, params: list[Any]) -> Any:
        """Send a JSON-RPC request to the wallet."""
        ...

    async def disconnect(self) -> None:
        """Tear the session down."""
        ...


class SessionFactory(Protocol):
    """Protocol for creating wallet sessions."""

    def __call__(self) -> Awaitable[WalletSession]:
        """Create a fresh, unconnected session."""
        ...


def load_session_factory(
    path: Optional[str], wallet_config: WalletConfig
) -> SessionFactory:
    """Resolve a session factory from an import path.

    The attribute is called with the wallet configuration and must return
    the factory (an async callable with no arguments).

    Args:
        path: "package.module:attribute".
        wallet_config: Passed to the attribute.

    Raises:
        ConfigError: If the path is missing or cannot be imported.
    """
    if not path:
        raise ConfigError("wallet.session_factory is not configured")

    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigError(f"Invalid session factory path: {path!r}")

    try:
        module = importlib.import_module(module_name)
        builder = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise ConfigError(f"Cannot load session factory {path!r}: {e}") from e

    return builder(wallet_config)


@dataclass
class PendingSession:
    """One open pairing attempt.

    Attributes:
        user_id: Requesting user.
        session: Wallet session, owned by the correlator for the attempt.
        created_at: Unix timestamp when the attempt was opened.
        uri: Pairing URI once the session emitted it.
        tasks: Watchers running against the session.
    """

    user_id: int
    session: Optional[WalletSession] = None
    created_at: float = field(default_factory=time.time)
    uri: Optional[str] = None
    tasks: list[asyncio.Task] = field(default_factory=list)

    def age(self) -> float:
        """Seconds since the attempt was opened."""
        return time.time() - self.created_at
