"""Signature challenges and their verification.

Two challenges exist:

- The wallet-session path signs a payload derived from the user id. The
  user id is hex-encoded, then the resulting hex string is hex-encoded again
  and handed to ``personal_sign``; the wallet signs the inner hex string as
  text.
- The browser path signs a random nonce issued when the user opens the
  pairing page. Nonces are single-use.

Both are EIP-191 personal messages, recovered with eth_account.
"""

import logging
import secrets
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct

from wpair.outcome import Failure, FailureReason, Success, VerificationOutcome

logger = logging.getLogger(__name__)


def to_hex_text(text: str) -> str:
    """Hex-encode UTF-8 text with a 0x prefix."""
    return "0x" + text.encode("utf-8").hex()


def user_challenge(user_id: int) -> tuple[str, str]:
    """Build the signing payload for a user.

    Returns:
        (inner, outer): ``inner`` is the text the wallet ends up signing,
        ``outer`` is the parameter passed to ``personal_sign``.
    """
    inner = to_hex_text(str(user_id))
    return inner, to_hex_text(inner)


def recover_signer(message: str, signature: str) -> str:
    """Recover the address that signed a personal message.

    Raises:
        Exception: Whatever eth_account raises for a malformed signature.
    """
    return Account.recover_message(encode_defunct(text=message), signature=signature)


def addresses_match(recovered: str, claimed: str) -> bool:
    """Compare two addresses ignoring checksum casing."""
    return recovered.lower() == claimed.lower()


class ChallengeVerifier:
    """Per-user nonce store for the browser signature path."""

    NONCE_BYTES = 16  # 32 hex chars

    def __init__(self):
        self._nonces: dict[int, str] = {}

    def issue_nonce(self, user_id: int) -> str:
        """Generate a nonce for the user, replacing any unconsumed one."""
        nonce = secrets.token_hex(self.NONCE_BYTES)
        self._nonces[user_id] = nonce
        logger.debug(f"Issued nonce for user {user_id}")
        return nonce

    def has_nonce(self, user_id: int) -> bool:
        return user_id in self._nonces

    @staticmethod
    def challenge_hex(nonce: str) -> str:
        """Hex form of the nonce passed to the wallet's personal_sign."""
        return to_hex_text(nonce)

    def verify(
        self,
        user_id: int,
        claimed_address: Optional[str],
        signature: Optional[str],
    ) -> VerificationOutcome:
        """Check a browser signature against the user's pending nonce.

        The nonce is consumed whether or not the signature is valid. Without
        a pending nonce the request is unsolicited and counts as a mismatch.
        """
        nonce = self._nonces.pop(user_id, None)
        if nonce is None:
            logger.warning(f"Verify without pending nonce for user {user_id}")
            return Failure(FailureReason.SIGNATURE_MISMATCH)

        if not claimed_address or not signature:
            logger.info(f"User {user_id} declined to sign")
            return Failure(FailureReason.SIGNATURE_MISMATCH)

        try:
            recovered = recover_signer(nonce, signature)
        except Exception as e:
            logger.warning(f"Error verifying signature for user {user_id}: {e}")
            return Failure(FailureReason.SIGNATURE_MISMATCH)

        if not addresses_match(recovered, claimed_address):
            logger.warning(
                f"Signature mismatch for user {user_id}: "
                f"claimed {claimed_address}, recovered {recovered}"
            )
            return Failure(FailureReason.SIGNATURE_MISMATCH)

        logger.info(f"Browser signature verified for user {user_id}")
        return Success(claimed_address)
