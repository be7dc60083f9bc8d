"""QR code rendering for pairing URIs.

Renders the wallet pairing URI as a PNG (sent to the chat) or as text for
terminal display.
"""

import io

import qrcode
from qrcode.main import QRCode


class QrRenderer:
    """Render a pairing URI as a QR code.

    High error correction keeps the code scannable from a phone screen
    photo of the chat.
    """

    def __init__(self, data: str):
        """Initialize renderer.

        Args:
            data: Text to encode, usually a wallet pairing URI.
        """
        self.data = data

    def _create_qr(self) -> QRCode:
        """Create QR code object.

        Returns:
            QRCode instance with payload data.
        """
        qr = qrcode.QRCode(
            version=None,  # Auto-size
            error_correction=qrcode.constants.ERROR_CORRECT_H,
            box_size=10,
            border=4,
        )
        qr.add_data(self.data)
        qr.make(fit=True)
        return qr

    def to_png_bytes(self) -> bytes:
        """Render as PNG image bytes."""
        qr = self._create_qr()
        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format="PNG")
        return buffer.getvalue()

    def to_terminal(self) -> str:
        """Render as ASCII art for terminal display."""
        qr = self._create_qr()

        output = io.StringIO()
        qr.print_ascii(out=output, invert=True)
        return output.getvalue()
