"""Main daemon orchestration - ties all components together."""

import asyncio
import logging
import signal
from typing import Optional

from wpair.bot.handler import BotHandler
from wpair.bot.messages import COMMAND_START
from wpair.bot.telegram import TelegramClient
from wpair.challenge import ChallengeVerifier
from wpair.config import Config
from wpair.correlator import SessionCorrelator
from wpair.delivery import BotTransport, DeliveryQueue
from wpair.errors import ConfigError
from wpair.pairing import PairingFacade
from wpair.session import SessionFactory, load_session_factory
from wpair.verify_server import VerifyServer

logger = logging.getLogger(__name__)

# Substrings marking errors raised from inside the wallet session library
SESSION_ERROR_MARKERS = ("proposal expired", "walletconnect", "proposal")


class StartupError(Exception):
    """Error during daemon startup."""

    pass


def is_session_error(message: str) -> bool:
    """Check if an error message comes from the wallet session library."""
    lowered = message.lower()
    return any(marker in lowered for marker in SESSION_ERROR_MARKERS)


def handle_loop_exception(loop: asyncio.AbstractEventLoop, context: dict) -> None:
    """Log uncaught background errors and keep the process alive.

    Installed as the event loop exception handler.
    """
    exc = context.get("exception")
    message = str(exc) if exc is not None else context.get("message", "")

    if is_session_error(message):
        logger.error(f"Caught wallet session error: {message}", exc_info=exc)
    else:
        logger.error(f"Unhandled error: {message}", exc_info=exc)


class Daemon:
    """Main daemon wiring pairing, the verify server and the bot.

    Responsibilities:
    - Build the single pairing facade shared by the bot and the HTTP server
    - Start the verify server, the delivery queue and bot polling
    - Install the loop exception handler
    - Handle graceful shutdown
    """

    BOT_COMMANDS = {COMMAND_START: "Start working with the bot"}

    def __init__(
        self,
        config: Config,
        session_factory: Optional[SessionFactory] = None,
        transport: Optional[BotTransport] = None,
    ):
        """Initialize daemon.

        Args:
            config: Daemon configuration.
            session_factory: Optional injected session factory (for testing).
            transport: Optional injected bot transport (for testing).
        """
        self._config = config
        self._session_factory = session_factory
        self._transport = transport
        self._running = False

        self._correlator: Optional[SessionCorrelator] = None
        self._queue: Optional[DeliveryQueue] = None
        self._pairing: Optional[PairingFacade] = None
        self._verify_server: Optional[VerifyServer] = None
        self._handler: Optional[BotHandler] = None

    @property
    def pairing(self) -> Optional[PairingFacade]:
        return self._pairing

    @property
    def verify_server(self) -> Optional[VerifyServer]:
        return self._verify_server

    def _build(self) -> None:
        """Create components from configuration."""
        if self._session_factory is None:
            try:
                self._session_factory = load_session_factory(
                    self._config.wallet.session_factory, self._config.wallet
                )
            except ConfigError as e:
                raise StartupError(str(e)) from e

        if self._transport is None:
            token = self._config.telegram.token
            if not token:
                raise StartupError("Telegram bot token is not configured")
            self._transport = TelegramClient(
                token,
                api_url=self._config.telegram.api_url,
                poll_timeout=self._config.telegram.poll_timeout,
            )

        self._correlator = SessionCorrelator(
            self._session_factory,
            timeout=self._config.wallet.pairing_timeout,
        )
        self._queue = DeliveryQueue(self._transport)
        self._pairing = PairingFacade(
            self._correlator,
            ChallengeVerifier(),
            self._queue,
            backend_url=self._config.backend_url,
        )
        self._verify_server = VerifyServer(
            self._pairing,
            rate_limit_requests=self._config.http.rate_limit_requests,
            rate_limit_window=self._config.http.rate_limit_window,
        )
        self._handler = BotHandler(self._pairing)

    async def start(self) -> None:
        """Start the daemon.

        Raises:
            StartupError: If configuration is incomplete.
        """
        logger.info("Starting daemon...")

        self._build()

        loop = asyncio.get_running_loop()
        loop.set_exception_handler(handle_loop_exception)

        await self._verify_server.start(self._config.http.host, self._config.http.port)
        await self._transport.start(self._handler)

        try:
            await self._transport.set_my_commands(self.BOT_COMMANDS)
        except Exception as e:
            logger.warning(f"Failed to set bot commands: {e}")

        await self._queue.start()

        self._setup_signals()

        self._running = True
        logger.info("Daemon started successfully")

    async def run_forever(self) -> None:
        """Run daemon until shutdown signal."""
        if not self._running:
            await self.start()

        try:
            while self._running:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            pass
        finally:
            await self._shutdown()

    async def stop(self) -> None:
        """Stop the daemon gracefully."""
        self._running = False

    def _setup_signals(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(
                    sig,
                    lambda: asyncio.create_task(self.stop()),
                )
            except (NotImplementedError, RuntimeError):
                # Not supported outside the main thread or on Windows
                pass

    async def _shutdown(self) -> None:
        """Perform graceful shutdown."""
        logger.info("Shutting down daemon...")

        if self._transport is not None:
            await self._transport.close()

        if self._correlator:
            await self._correlator.close()

        if self._queue:
            await self._queue.stop()

        if self._verify_server:
            await self._verify_server.stop()

        logger.info("Daemon shutdown complete")
