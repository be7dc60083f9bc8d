"""Outbound message queue.

Serializes sends to the chat transport so a slow or failing send never
blocks the pairing flow. Delivery is attempted at most once per message: a
failed send is logged and dropped, never retried or requeued, so one broken
chat cannot stall every other user.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Button:
    """Inline keyboard button. Exactly one of url or callback_data is set."""

    text: str
    url: Optional[str] = None
    callback_data: Optional[str] = None


ButtonRows = tuple[tuple[Button, ...], ...]


@dataclass(frozen=True)
class TextMessage:
    """Text message addressed to a chat."""

    chat_id: int
    text: str
    buttons: ButtonRows = ()


@dataclass(frozen=True)
class PhotoMessage:
    """Image message addressed to a chat."""

    chat_id: int
    photo: bytes
    filename: str = "image.png"
    caption: str = ""
    buttons: ButtonRows = ()


OutboundMessage = Union[TextMessage, PhotoMessage]


class Transport(Protocol):
    """Protocol for the chat transport."""

    async def send_text(self, message: TextMessage) -> None:
        """Send a text message."""
        ...

    async def send_photo(self, message: PhotoMessage) -> None:
        """Send an image message."""
        ...


class BotTransport(Transport, Protocol):
    """Chat transport that also receives updates for a bot handler."""

    async def start(self, handler: Any) -> None:
        """Start delivering updates to the handler."""
        ...

    async def set_my_commands(self, commands: dict[str, str]) -> None:
        """Register the command menu."""
        ...

    async def close(self) -> None:
        """Stop receiving updates and release resources."""
        ...


class DeliveryQueue:
    """FIFO of outbound messages drained by a single background task.

    The drain loop starts with the first enqueue inside a running event
    loop, or earlier through start(). Once stopped it stays stopped until
    start() is called again.

    Usage:
        queue = DeliveryQueue(transport)
        queue.enqueue(TextMessage(chat_id=1, text="hi"))
        await queue.stop()
    """

    def __init__(self, transport: Transport):
        """Initialize queue.

        Args:
            transport: Chat transport used to send messages.
        """
        self._transport = transport
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._running = False
        self._stopped = False
        self.sent_count = 0
        self.dropped_count = 0

    @property
    def pending(self) -> int:
        """Number of messages waiting to be sent."""
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return self._running

    def enqueue(self, message: OutboundMessage) -> None:
        """Append a message to the tail of the queue. Never blocks."""
        self._queue.put_nowait(message)
        if not self._running and not self._stopped:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                # No loop yet; start() picks the message up
                return
            self._start_drain()

    async def start(self) -> None:
        """Start the drain loop."""
        self._stopped = False
        self._start_drain()

    def _start_drain(self) -> None:
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._drain_loop())
        logger.info("Delivery queue started")

    async def stop(self) -> None:
        """Stop the drain loop. Unsent messages stay queued."""
        self._running = False
        self._stopped = True
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Delivery queue stopped")

    async def _drain_loop(self) -> None:
        """Send queued messages one at a time, in order."""
        while self._running:
            message = await self._queue.get()
            try:
                await self._send(message)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.dropped_count += 1
                logger.error(
                    f"Failed to deliver {type(message).__name__} "
                    f"to chat {message.chat_id}: {e}"
                )
            else:
                self.sent_count += 1
            finally:
                self._queue.task_done()

    async def _send(self, message: OutboundMessage) -> None:
        if isinstance(message, PhotoMessage):
            await self._transport.send_photo(message)
        else:
            await self._transport.send_text(message)

    async def join(self) -> None:
        """Wait until every queued message has been handled."""
        await self._queue.join()
