"""Bot command and callback handling.

Turns user actions into pairing attempts and reports the result back
through the delivery queue. Chats are private, so the chat id is the user id.
"""

import logging
from typing import Callable

from wpair.bot import messages
from wpair.delivery import Button, PhotoMessage, TextMessage
from wpair.outcome import Success
from wpair.pairing import PairingFacade, is_web_navigable
from wpair.qr import QrRenderer

logger = logging.getLogger(__name__)


class BotHandler:
    """Handles bot commands, button callbacks and membership events."""

    def __init__(
        self,
        pairing: PairingFacade,
        qr_factory: Callable[[str], QrRenderer] = QrRenderer,
    ):
        """Initialize handler.

        Args:
            pairing: Pairing facade.
            qr_factory: Builds a renderer for a pairing URI.
        """
        self._pairing = pairing
        self._qr_factory = qr_factory

    async def on_command(self, user_id: int, command: str) -> None:
        """Handle a slash command (without the leading slash)."""
        if command == messages.COMMAND_START:
            self._send_start(user_id)
        else:
            logger.debug(f"Ignoring command /{command} from user {user_id}")

    async def on_member_joined(self, user_id: int) -> None:
        """User added the bot."""
        self._send_start(user_id)

    async def on_callback(self, user_id: int, data: str) -> None:
        """Handle an inline button press."""
        if data in (messages.CALLBACK_CONNECT_WALLET, messages.CALLBACK_RETRY):
            await self.pair_wallet(user_id)
        else:
            logger.debug(f"Unknown callback data from user {user_id}: {data}")

    async def pair_wallet(self, user_id: int) -> None:
        """Run one pairing attempt for the user and report the outcome."""
        try:
            uri = await self._pairing.connect(user_id)

            if not uri:
                self._send_error(user_id, "Failed to create connection session")
                return

            # A QR failure leaves the attempt open until it resolves or times out
            self._send_wallet_qr(user_id, uri)

            outcome = await self._pairing.get_result(user_id)

            if isinstance(outcome, Success):
                self._pairing.enqueue(
                    TextMessage(
                        chat_id=user_id,
                        text=messages.wallet_connected(outcome.address),
                    )
                )
            else:
                self._send_error(user_id, outcome.message)
        except Exception as e:
            logger.error(f"Error pairing wallet for user {user_id}: {e}")
            self._send_error(user_id, "Unknown error occurred")

    def _send_start(self, user_id: int) -> None:
        self._pairing.enqueue(
            TextMessage(
                chat_id=user_id,
                text=messages.start_text(),
                buttons=messages.start_buttons(),
            )
        )

    def _send_error(self, user_id: int, reason: str) -> None:
        self._pairing.enqueue(
            TextMessage(
                chat_id=user_id,
                text=messages.wallet_error(reason),
                buttons=messages.retry_buttons(),
            )
        )

    def _send_wallet_qr(self, user_id: int, uri: str) -> None:
        """Queue the QR code, with a browser button when the URI allows it."""
        try:
            png = self._qr_factory(uri).to_png_bytes()
        except Exception as e:
            logger.error(f"Error generating wallet QR for user {user_id}: {e}")
            self._send_error(user_id, "Error generating QR code")
            return

        if is_web_navigable(uri):
            caption = messages.pair_wallet_qr()
            buttons = (
                (
                    Button(
                        messages.CONNECT_BUTTON_TEXT,
                        url=self._pairing.browser_url(user_id, uri),
                    ),
                ),
            )
        else:
            caption = messages.pair_wallet_qr(raw_uri=uri)
            buttons = ()

        self._pairing.enqueue(
            PhotoMessage(
                chat_id=user_id,
                photo=png,
                filename=f"qr_{user_id}.png",
                caption=caption,
                buttons=buttons,
            )
        )
