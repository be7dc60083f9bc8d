"""Telegram transport built on python-telegram-bot.

- Long-polls for updates and routes the start command, button callbacks and
  membership changes to the bot handler.
- Sends text and photo messages for the delivery queue.

Usage:
    client = TelegramClient(token)
    await client.start(handler)
    ...
    await client.close()
"""

import logging
from typing import TYPE_CHECKING, Optional

from telegram import (
    BotCommand,
    ChatMember,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    InputFile,
    Update,
)
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    ChatMemberHandler,
    CommandHandler,
    ContextTypes,
)

from wpair.bot import messages
from wpair.delivery import ButtonRows, PhotoMessage, TextMessage
from wpair.errors import TransportError

if TYPE_CHECKING:
    from wpair.bot.handler import BotHandler

logger = logging.getLogger(__name__)

ALLOWED_UPDATES = [Update.MESSAGE, Update.CALLBACK_QUERY, Update.MY_CHAT_MEMBER]


def _reply_markup(buttons: ButtonRows) -> Optional[InlineKeyboardMarkup]:
    """Build an inline keyboard, or None when there are no buttons."""
    if not buttons:
        return None

    rows = []
    for row in buttons:
        keys = []
        for button in row:
            if button.url is not None:
                keys.append(InlineKeyboardButton(button.text, url=button.url))
            else:
                keys.append(
                    InlineKeyboardButton(button.text, callback_data=button.callback_data or "")
                )
        rows.append(keys)
    return InlineKeyboardMarkup(rows)


class TelegramClient:
    """Bot API client implementing the delivery transport.

    Updates are processed concurrently so a pairing wait never blocks
    other users.
    """

    def __init__(
        self,
        token: str,
        api_url: str = "https://api.telegram.org",
        poll_timeout: int = 30,
        application: Optional[Application] = None,
    ):
        """Initialize client.

        Args:
            token: Bot token from BotFather.
            api_url: Bot API server URL.
            poll_timeout: Long-poll timeout for getUpdates (seconds).
            application: Optional prebuilt application (for testing).
        """
        self._poll_timeout = poll_timeout
        self._app = application or (
            ApplicationBuilder()
            .token(token)
            .base_url(f"{api_url.rstrip('/')}/bot")
            .concurrent_updates(True)
            .build()
        )
        self._handler: Optional["BotHandler"] = None
        self._initialized = False
        self._polling = False

    @property
    def application(self) -> Application:
        return self._app

    async def open(self) -> None:
        """Initialize the bot's HTTP resources."""
        if not self._initialized:
            await self._app.initialize()
            self._initialized = True

    async def close(self) -> None:
        """Stop polling and release the bot's HTTP resources."""
        await self.stop()
        if self._initialized:
            await self._app.shutdown()
            self._initialized = False

    async def send_text(self, message: TextMessage) -> None:
        """Send a text message."""
        try:
            await self._app.bot.send_message(
                chat_id=message.chat_id,
                text=message.text,
                parse_mode=ParseMode.HTML,
                reply_markup=_reply_markup(message.buttons),
            )
        except TelegramError as e:
            raise TransportError(f"sendMessage failed: {e}") from e

    async def send_photo(self, message: PhotoMessage) -> None:
        """Upload and send a photo message."""
        try:
            await self._app.bot.send_photo(
                chat_id=message.chat_id,
                photo=InputFile(message.photo, filename=message.filename),
                caption=message.caption or None,
                parse_mode=ParseMode.HTML,
                reply_markup=_reply_markup(message.buttons),
            )
        except TelegramError as e:
            raise TransportError(f"sendPhoto failed: {e}") from e

    async def set_my_commands(self, commands: dict[str, str]) -> None:
        """Register the bot command menu.

        Args:
            commands: Command name to description.
        """
        try:
            await self._app.bot.set_my_commands(
                [BotCommand(name, description) for name, description in commands.items()]
            )
        except TelegramError as e:
            raise TransportError(f"setMyCommands failed: {e}") from e

    async def start(self, handler: "BotHandler") -> None:
        """Register update handlers and start polling in the background."""
        if self._polling:
            return

        self._handler = handler
        self._app.add_handler(CommandHandler(messages.COMMAND_START, self._on_command))
        self._app.add_handler(CallbackQueryHandler(self._on_callback))
        self._app.add_handler(
            ChatMemberHandler(self._on_my_chat_member, ChatMemberHandler.MY_CHAT_MEMBER)
        )
        self._app.add_error_handler(self._on_error)

        await self.open()
        await self._app.start()
        await self._app.updater.start_polling(
            timeout=self._poll_timeout,
            allowed_updates=ALLOWED_UPDATES,
        )
        self._polling = True
        logger.info("Telegram bot started")

    async def stop(self) -> None:
        """Stop polling and update processing."""
        if not self._polling:
            return

        self._polling = False
        await self._app.updater.stop()
        await self._app.stop()
        logger.info("Telegram bot stopped")

    # ==================== Update callbacks ====================

    async def _on_command(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        message = update.effective_message
        if user is None or message is None or not message.text:
            return

        command = message.text[1:].split()[0].split("@")[0]
        await self._handler.on_command(user.id, command)

    async def _on_callback(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        query = update.callback_query
        try:
            await query.answer()
        except TelegramError as e:
            logger.debug(f"Failed to answer callback query: {e}")
        await self._handler.on_callback(query.from_user.id, query.data or "")

    async def _on_my_chat_member(
        self, update: Update, context: ContextTypes.DEFAULT_TYPE
    ) -> None:
        member = update.my_chat_member
        if member.new_chat_member.status == ChatMember.MEMBER:
            await self._handler.on_member_joined(member.from_user.id)

    async def _on_error(self, update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
        logger.error(f"Bot handler error: {context.error}")
