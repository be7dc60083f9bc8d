"""Message templates for the Telegram bot (HTML parse mode)."""

import html

from wpair.delivery import Button, ButtonRows

COMMAND_START = "start"
CALLBACK_CONNECT_WALLET = "connect_wallet"
CALLBACK_RETRY = "retry"

METAMASK_URL = "https://metamask.io/download/"

CONNECT_BUTTON_TEXT = "Connect Wallet"


def start_text() -> str:
    return (
        "Hello! I am a bot for connecting Ethereum wallets.\n\n"
        "To get started, you need to:\n"
        f'• Install a crypto wallet like <a href="{METAMASK_URL}">Metamask</a> '
        "as a browser extension or mobile app\n"
        "• Connect your wallet using the button below\n\n"
        'Click the "Connect Wallet" button when you\'re ready to start.'
    )


def start_buttons() -> ButtonRows:
    return ((Button(CONNECT_BUTTON_TEXT, callback_data=CALLBACK_CONNECT_WALLET),),)


def pair_wallet_qr(raw_uri: str | None = None) -> str:
    """Caption for the pairing QR code.

    Args:
        raw_uri: Included for copying when no browser button can be offered.
    """
    caption = (
        "Scan the QR code with your mobile wallet or click the "
        '"Connect Wallet" button to connect via browser.'
    )
    if raw_uri:
        caption += (
            "\n\nOr copy this link to your wallet:\n"
            f"<code>{html.escape(raw_uri)}</code>"
        )
    return caption


def wallet_connected(address: str) -> str:
    return f"✅ Wallet successfully connected!\n\nAddress: <b>{html.escape(address)}</b>"


def wallet_error(reason: str) -> str:
    return f"❌ Error connecting wallet: {html.escape(reason)}\n\nPlease try again."


def retry_buttons() -> ButtonRows:
    return ((Button("Try again", callback_data=CALLBACK_RETRY),),)
