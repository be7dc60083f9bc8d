"""Tests for signature challenges."""

import pytest

from tests.conftest import sign_text
from wpair.challenge import (
    ChallengeVerifier,
    addresses_match,
    recover_signer,
    to_hex_text,
    user_challenge,
)
from wpair.outcome import Failure, FailureReason, Success


class TestEncoding:
    """Tests for challenge payload encoding."""

    def test_to_hex_text(self):
        """Text is hex-encoded with a 0x prefix."""
        assert to_hex_text("42") == "0x3432"

    def test_user_challenge_is_double_encoded(self):
        """Outer payload is the hex of the inner hex string."""
        inner, outer = user_challenge(42)

        assert inner == "0x3432"
        assert outer == "0x" + "0x3432".encode().hex()
        assert bytes.fromhex(outer[2:]).decode() == inner

    def test_user_challenge_is_deterministic(self):
        """Same user gives the same payload."""
        assert user_challenge(7) == user_challenge(7)
        assert user_challenge(7) != user_challenge(8)


class TestRecovery:
    """Tests for signer recovery."""

    def test_recovers_signer(self, wallet_account):
        """Recovered address is the signing account."""
        signature = sign_text(wallet_account, "hello")
        assert recover_signer("hello", signature) == wallet_account.address

    def test_different_message_recovers_other_address(self, wallet_account):
        """Signature over another message recovers a different address."""
        signature = sign_text(wallet_account, "hello")
        assert recover_signer("goodbye", signature) != wallet_account.address

    def test_malformed_signature_raises(self):
        """Garbage signatures raise."""
        with pytest.raises(Exception):
            recover_signer("hello", "0x1234")

    def test_addresses_match_ignores_case(self, wallet_account):
        """Checksum and lowercase forms match."""
        address = wallet_account.address
        assert addresses_match(address, address.lower())
        assert addresses_match(address.upper().replace("0X", "0x"), address)
        assert not addresses_match(address, "0x" + "0" * 40)


class TestChallengeVerifier:
    """Tests for the browser nonce store."""

    @pytest.fixture
    def verifier(self):
        return ChallengeVerifier()

    def test_issue_nonce_is_random_hex(self, verifier):
        """Nonces are 32 hex chars and unpredictable."""
        first = verifier.issue_nonce(1)
        second = verifier.issue_nonce(2)

        assert len(first) == 32
        int(first, 16)
        assert first != second

    def test_issue_overwrites_previous(self, verifier, wallet_account):
        """A new nonce replaces an unconsumed one."""
        old = verifier.issue_nonce(1)
        verifier.issue_nonce(1)

        outcome = verifier.verify(1, wallet_account.address, sign_text(wallet_account, old))
        assert outcome == Failure(FailureReason.SIGNATURE_MISMATCH)

    def test_challenge_hex(self, verifier):
        """Challenge hex encodes the nonce text."""
        assert verifier.challenge_hex("ab") == "0x6162"

    def test_valid_signature(self, verifier, wallet_account):
        """Signature over the nonce by the claimed address succeeds."""
        nonce = verifier.issue_nonce(1)
        signature = sign_text(wallet_account, nonce)

        outcome = verifier.verify(1, wallet_account.address, signature)

        assert outcome == Success(wallet_account.address)

    def test_case_insensitive_claim(self, verifier, wallet_account):
        """Lowercase claim matches a checksummed signer."""
        nonce = verifier.issue_nonce(1)
        claimed = wallet_account.address.lower()

        outcome = verifier.verify(1, claimed, sign_text(wallet_account, nonce))

        assert outcome == Success(claimed)

    def test_nonce_is_single_use(self, verifier, wallet_account):
        """Replaying a verified signature fails."""
        nonce = verifier.issue_nonce(1)
        signature = sign_text(wallet_account, nonce)

        assert isinstance(verifier.verify(1, wallet_account.address, signature), Success)
        assert verifier.verify(1, wallet_account.address, signature) == Failure(
            FailureReason.SIGNATURE_MISMATCH
        )

    def test_signature_over_other_nonce(self, verifier, wallet_account):
        """Signature over a different nonce is a mismatch and consumes the nonce."""
        verifier.issue_nonce(7)
        signature = sign_text(wallet_account, "f" * 32)

        outcome = verifier.verify(7, wallet_account.address, signature)

        assert outcome == Failure(FailureReason.SIGNATURE_MISMATCH)
        assert not verifier.has_nonce(7)

    def test_wrong_claimed_address(self, verifier, wallet_account, other_account):
        """Claim for a different account is a mismatch."""
        nonce = verifier.issue_nonce(1)

        outcome = verifier.verify(1, other_account.address, sign_text(wallet_account, nonce))

        assert outcome == Failure(FailureReason.SIGNATURE_MISMATCH)

    def test_without_nonce(self, verifier, wallet_account):
        """Unsolicited verify fails without side effects."""
        verifier.issue_nonce(2)

        outcome = verifier.verify(1, wallet_account.address, "0x00")

        assert outcome == Failure(FailureReason.SIGNATURE_MISMATCH)
        assert verifier.has_nonce(2)

    def test_rejected_signature_consumes_nonce(self, verifier):
        """User declining to sign (no address) still consumes the nonce."""
        verifier.issue_nonce(1)

        outcome = verifier.verify(1, None, None)

        assert outcome == Failure(FailureReason.SIGNATURE_MISMATCH)
        assert not verifier.has_nonce(1)

    def test_malformed_signature(self, verifier, wallet_account):
        """Malformed signature is a mismatch, not an error."""
        verifier.issue_nonce(1)

        outcome = verifier.verify(1, wallet_account.address, "not-a-signature")

        assert outcome == Failure(FailureReason.SIGNATURE_MISMATCH)
