"""Pytest configuration and shared fixtures."""

import asyncio
from collections import defaultdict
from typing import Any, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from eth_account import Account
from eth_account.messages import encode_defunct


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before each test."""
    from wpair.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


@pytest_asyncio.fixture(autouse=True, loop_scope="function")
async def cleanup_aiohttp_sessions():
    """Give aiohttp sessions time to clean up their connectors."""
    yield
    await asyncio.sleep(0)


def sign_text(account, text: str) -> str:
    """Sign text as a personal message, returning a 0x hex signature."""
    signed = Account.sign_message(encode_defunct(text=text), account.key)
    return "0x" + bytes(signed.signature).hex()


class FakeWalletSession:
    """In-memory wallet session.

    connect() emits display_uri and returns; tests drive the wallet side
    with approve() and configure signing with signer / sign_error.
    """

    def __init__(
        self,
        uri: Optional[str] = "wc:abc",
        signer: Any = None,
        sign_error: Optional[Exception] = None,
        connect_error: Optional[Exception] = None,
        fail_after_uri: bool = False,
    ):
        self.uri = uri
        self.signer = signer
        self.sign_error = sign_error
        self.connect_error = connect_error
        self.fail_after_uri = fail_after_uri
        self.accounts: list[str] = []
        self.requests: list[tuple[str, list]] = []
        self.disconnected = False
        self._handlers = defaultdict(list)

    def on(self, event, callback):
        self._handlers[event].append(callback)

    def emit(self, event, *args):
        for callback in list(self._handlers[event]):
            callback(*args)

    async def connect(self):
        if self.connect_error and not self.fail_after_uri:
            raise self.connect_error
        if self.uri is not None:
            self.emit("display_uri", self.uri)
        if self.connect_error and self.fail_after_uri:
            await asyncio.sleep(0)
            raise self.connect_error

    def approve(self, accounts):
        """Wallet approves the session offering these accounts."""
        self.accounts = list(accounts)
        self.emit("connect", {"chainId": "0x1"})

    async def request(self, method, params):
        self.requests.append((method, params))
        if self.sign_error:
            raise self.sign_error
        if callable(self.signer):
            return self.signer(method, params)
        if self.signer is not None:
            # Wallet decodes the hex parameter and signs the resulting text
            text = bytes.fromhex(params[0][2:]).decode("utf-8")
            return sign_text(self.signer, text)
        return None

    async def disconnect(self):
        self.disconnected = True


@pytest.fixture
def wallet_account():
    """Deterministic local Ethereum account."""
    return Account.from_key("0x" + "11" * 32)


@pytest.fixture
def other_account():
    """A second, unrelated account."""
    return Account.from_key("0x" + "22" * 32)


@pytest.fixture
def wallet_session(wallet_account):
    """Fake session whose wallet signs with wallet_account."""
    return FakeWalletSession(signer=wallet_account)


@pytest.fixture
def session_factory(wallet_session):
    """Async factory returning wallet_session."""
    return AsyncMock(return_value=wallet_session)


async def settle(rounds: int = 5) -> None:
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
