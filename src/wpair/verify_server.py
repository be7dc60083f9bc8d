"""HTTP server for the browser signing path.

Routes:
- GET /wallet_connect?id=&uri=  issues a nonce and serves a page that asks
  an injected wallet (e.g. MetaMask) to sign it, falling back to opening the
  raw pairing URI when no wallet extension is present.
- GET /verify?address=&signature=&id=  checks the signature and forwards the
  outcome to the user's pairing attempt.
- GET /health
"""

import binascii
import json
import logging
import time
from typing import TYPE_CHECKING, Dict, Optional

from aiohttp import web

from wpair.outcome import Success
from wpair.pairing import decode_uri

if TYPE_CHECKING:
    from wpair.pairing import PairingFacade

logger = logging.getLogger(__name__)


class RateLimiter:
    """Simple sliding window rate limiter."""

    def __init__(self, max_requests: int, window_seconds: int):
        """Initialize rate limiter.

        Args:
            max_requests: Maximum requests allowed in window.
            window_seconds: Window size in seconds.
        """
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.requests: Dict[str, list] = {}

    def is_allowed(self, key: str) -> bool:
        """Check if request is allowed.

        Args:
            key: Rate limit key (client IP).

        Returns:
            True if request is allowed, False if rate limited.
        """
        now = time.time()
        cutoff = now - self.window_seconds

        self._evict(cutoff)

        recent = self.requests.get(key, [])
        if len(recent) >= self.max_requests:
            return False

        self.requests[key] = recent + [now]
        return True

    def _evict(self, cutoff: float) -> None:
        """Drop expired timestamps and keys left with none."""
        for key in list(self.requests):
            recent = [t for t in self.requests[key] if t > cutoff]
            if recent:
                self.requests[key] = recent
            else:
                del self.requests[key]


def _js_string(value: str) -> str:
    """Encode a value as a JavaScript string literal safe inside <script>."""
    return json.dumps(value).replace("</", "<\\/")


def render_connect_page(user_id: int, uri: str, challenge_hex: str) -> str:
    """Build the browser signing page."""
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>Connect Wallet</title>
</head>
<body>
<script>
  (async () => {{
    const userId = {_js_string(str(user_id))};
    const pairingUri = {_js_string(uri)};
    const challenge = {_js_string(challenge_hex)};

    if (!window.ethereum) {{
      window.location.href = pairingUri;
      return;
    }}

    try {{
      const accounts = await window.ethereum.request({{
        method: "eth_requestAccounts"
      }});
      const signature = await window.ethereum.request({{
        method: "personal_sign",
        params: [challenge, accounts[0]]
      }});
      const query = new URLSearchParams({{
        address: accounts[0],
        signature: signature,
        id: userId
      }});
      window.location.href = "/verify?" + query.toString();
    }} catch (error) {{
      console.error("Error:", error);
      alert("Signature required for login");
      window.location.href = "/verify?" + new URLSearchParams({{ id: userId }}).toString();
    }}
  }})();
</script>
</body>
</html>
"""


class VerifyServer:
    """aiohttp application for the browser signing path.

    Rate limits by client IP.
    """

    def __init__(
        self,
        pairing: "PairingFacade",
        rate_limit_requests: int = 30,
        rate_limit_window: int = 60,
    ):
        """Initialize verify server.

        Args:
            pairing: Pairing facade to issue nonces and submit outcomes.
            rate_limit_requests: Requests allowed per IP per window.
            rate_limit_window: Window size in seconds.
        """
        self.pairing = pairing
        self.ip_limiter = RateLimiter(
            max_requests=rate_limit_requests, window_seconds=rate_limit_window
        )
        self.app = web.Application()
        self._runner: Optional[web.AppRunner] = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes."""
        self.app.router.add_get("/health", self._handle_health)
        self.app.router.add_get("/wallet_connect", self._handle_wallet_connect)
        self.app.router.add_get("/verify", self._handle_verify)

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.Response(text="OK")

    def _rate_limited(self, request: web.Request) -> bool:
        client_ip = request.remote or "unknown"
        if self.ip_limiter.is_allowed(client_ip):
            return False
        logger.warning(f"Rate limited {client_ip} on {request.path}")
        return True

    @staticmethod
    def _parse_user_id(request: web.Request) -> Optional[int]:
        try:
            return int(request.query.get("id", ""))
        except ValueError:
            return None

    async def _handle_wallet_connect(self, request: web.Request) -> web.Response:
        """Issue a nonce and serve the signing page.

        Args:
            request: HTTP request with id and base64 uri query parameters.

        Returns:
            HTML page, or 400 for a malformed request.
        """
        if self._rate_limited(request):
            return web.Response(status=429, text="Too many requests")

        user_id = self._parse_user_id(request)
        if user_id is None:
            return web.Response(status=400, text="Invalid id")

        try:
            uri = decode_uri(request.query.get("uri", ""))
        except (binascii.Error, ValueError, UnicodeDecodeError):
            return web.Response(status=400, text="Invalid uri")
        if not uri:
            return web.Response(status=400, text="Invalid uri")

        nonce = self.pairing.issue_nonce(user_id)
        html = render_connect_page(
            user_id, uri, self.pairing.verifier.challenge_hex(nonce)
        )
        return web.Response(text=html, content_type="text/html")

    async def _handle_verify(self, request: web.Request) -> web.Response:
        """Verify a browser signature.

        Args:
            request: HTTP request with address, signature and id.

        Returns:
            200 on a valid signature, 401 otherwise.
        """
        if self._rate_limited(request):
            return web.Response(status=429, text="Too many requests")

        user_id = self._parse_user_id(request)
        if user_id is None:
            return web.Response(status=400, text="Invalid id")

        outcome = self.pairing.verify_browser_signature(
            user_id,
            request.query.get("address"),
            request.query.get("signature"),
        )

        if isinstance(outcome, Success):
            return web.Response(text="Signature verified!")
        return web.Response(status=401, text="Invalid signature")

    async def start(self, host: str, port: int) -> web.AppRunner:
        """Start the verify server.

        Args:
            host: Host to bind to.
            port: Port to bind to.

        Returns:
            App runner (for cleanup).
        """
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, host, port)
        await site.start()
        self._runner = runner
        logger.info(f"Verify server started on {host}:{port}")
        return runner

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Verify server stopped")
