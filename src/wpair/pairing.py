"""Pairing facade used by the bot and the verify server."""

import base64
import logging
from typing import Optional
from urllib.parse import urlencode, urlparse

from wpair.challenge import ChallengeVerifier
from wpair.correlator import SessionCorrelator
from wpair.delivery import DeliveryQueue, OutboundMessage
from wpair.outcome import VerificationOutcome

logger = logging.getLogger(__name__)

WEB_SCHEMES = ("http", "https")


def encode_uri(uri: str) -> str:
    """URL-safe base64 of a pairing URI, for the browser fallback link."""
    return base64.urlsafe_b64encode(uri.encode("utf-8")).decode("ascii")


def decode_uri(encoded: str) -> str:
    """Inverse of encode_uri. Accepts standard or URL-safe alphabets.

    Raises:
        ValueError: If the value is not valid base64 or not UTF-8.
    """
    normalized = encoded.replace("+", "-").replace("/", "_")
    normalized += "=" * (-len(normalized) % 4)
    return base64.urlsafe_b64decode(normalized.encode("ascii")).decode("utf-8")


def is_web_navigable(uri: str) -> bool:
    """Check if a browser can open the URI directly."""
    return urlparse(uri).scheme.lower() in WEB_SCHEMES


class PairingFacade:
    """Single entry point into wallet pairing.

    Composes the session correlator, the challenge verifier and the
    delivery queue.
    """

    def __init__(
        self,
        correlator: SessionCorrelator,
        verifier: ChallengeVerifier,
        queue: DeliveryQueue,
        backend_url: str,
    ):
        """Initialize facade.

        Args:
            correlator: Owns pairing attempts and outcomes.
            verifier: Nonce store for the browser path.
            queue: Outbound message queue.
            backend_url: Public base URL of the verify server.
        """
        self._correlator = correlator
        self._verifier = verifier
        self._queue = queue
        self._backend_url = backend_url.rstrip("/")

    @property
    def correlator(self) -> SessionCorrelator:
        return self._correlator

    @property
    def verifier(self) -> ChallengeVerifier:
        return self._verifier

    async def connect(self, user_id: int) -> Optional[str]:
        """Open a pairing attempt. Returns the pairing URI or None."""
        return await self._correlator.connect(user_id)

    async def get_result(self, user_id: int) -> VerificationOutcome:
        """Wait for and consume the user's outcome."""
        return await self._correlator.get_result(user_id)

    def browser_url(self, user_id: int, uri: str) -> str:
        """Link to the browser signing page for a pairing URI."""
        query = urlencode({"id": user_id, "uri": encode_uri(uri)})
        return f"{self._backend_url}/wallet_connect?{query}"

    def issue_nonce(self, user_id: int) -> str:
        return self._verifier.issue_nonce(user_id)

    def verify_browser_signature(
        self,
        user_id: int,
        address: Optional[str],
        signature: Optional[str],
    ) -> VerificationOutcome:
        """Verify a browser signature and forward it to the user's attempt.

        Requests without an issued nonce are answered but never forwarded,
        so they cannot end another user's attempt.

        Returns:
            The verifier's outcome, whether or not the attempt accepted it.
        """
        solicited = self._verifier.has_nonce(user_id)
        outcome = self._verifier.verify(user_id, address, signature)
        if not solicited:
            return outcome

        if not self._correlator.submit_verification(user_id, outcome):
            logger.debug(f"Browser outcome for user {user_id} not recorded")
        return outcome

    def enqueue(self, message: OutboundMessage) -> None:
        self._queue.enqueue(message)
