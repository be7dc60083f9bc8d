"""Tests for the pairing facade and URI helpers."""

from unittest.mock import Mock
from urllib.parse import parse_qs, urlparse

import pytest

from tests.conftest import sign_text
from wpair.challenge import ChallengeVerifier
from wpair.correlator import SessionCorrelator
from wpair.delivery import TextMessage
from wpair.outcome import Failure, FailureReason, Success
from wpair.pairing import PairingFacade, decode_uri, encode_uri, is_web_navigable


@pytest.fixture
def queue():
    return Mock()


@pytest.fixture
def pairing(session_factory, queue):
    """Facade over a real correlator and verifier."""
    return PairingFacade(
        correlator=SessionCorrelator(session_factory),
        verifier=ChallengeVerifier(),
        queue=queue,
        backend_url="https://pair.example.com/",
    )


class TestUriHelpers:
    """Test URI encoding helpers."""

    def test_encode_decode(self):
        """A pairing URI survives the browser link encoding."""
        uri = "wc:7f6e@2?relay-protocol=irn&symKey=587d"
        assert decode_uri(encode_uri(uri)) == uri

    def test_encoded_is_url_safe(self):
        """Encoded value needs no further escaping."""
        encoded = encode_uri("wc:\xff\xfe??>>")
        assert "+" not in encoded
        assert "/" not in encoded

    def test_decode_accepts_standard_alphabet_without_padding(self):
        """Standard base64 and stripped padding are tolerated."""
        assert decode_uri("d2M6YWI") == "wc:ab"
        assert decode_uri("Pz8/") == "???"

    def test_decode_invalid_raises(self):
        """Invalid input raises ValueError."""
        with pytest.raises(ValueError):
            decode_uri("abc")

    @pytest.mark.parametrize(
        "uri,expected",
        [
            ("https://wallet.example/wc?uri=x", True),
            ("http://localhost/x", True),
            ("wc:abc@2?relay-protocol=irn", False),
            ("metamask://wc?uri=x", False),
        ],
    )
    def test_is_web_navigable(self, uri, expected):
        """Only http(s) URIs get a browser button."""
        assert is_web_navigable(uri) is expected


class TestPairingFacade:
    """Test PairingFacade class."""

    def test_browser_url(self, pairing):
        """Browser link points at /wallet_connect with id and encoded uri."""
        url = urlparse(pairing.browser_url(42, "wc:abc"))
        query = parse_qs(url.query)

        assert f"{url.scheme}://{url.netloc}{url.path}" == (
            "https://pair.example.com/wallet_connect"
        )
        assert query["id"] == ["42"]
        assert decode_uri(query["uri"][0]) == "wc:abc"

    async def test_connect_and_get_result(self, pairing):
        """connect and get_result delegate to the correlator."""
        assert await pairing.connect(42) == "wc:abc"

        pairing.correlator.submit_verification(42, Success("0xabc"))

        assert await pairing.get_result(42) == Success("0xabc")

    async def test_verify_browser_signature_resolves_attempt(self, pairing, wallet_account):
        """A valid browser signature completes the pending attempt."""
        await pairing.connect(42)
        nonce = pairing.issue_nonce(42)

        outcome = pairing.verify_browser_signature(
            42, wallet_account.address, sign_text(wallet_account, nonce)
        )

        assert outcome == Success(wallet_account.address)
        assert await pairing.get_result(42) == Success(wallet_account.address)

    async def test_verify_browser_failure_resolves_attempt(self, pairing, wallet_account):
        """A declined browser signature ends the attempt as a mismatch."""
        await pairing.connect(42)
        pairing.issue_nonce(42)

        outcome = pairing.verify_browser_signature(42, None, None)

        assert outcome == Failure(FailureReason.SIGNATURE_MISMATCH)
        assert await pairing.get_result(42) == outcome

    async def test_verify_without_nonce_keeps_attempt_pending(self, pairing, wallet_session):
        """A verify with no issued nonce cannot end someone else's attempt."""
        await pairing.connect(42)

        outcome = pairing.verify_browser_signature(42, None, None)

        assert outcome == Failure(FailureReason.SIGNATURE_MISMATCH)
        assert pairing.correlator.is_pending(42)
        assert pairing.correlator.peek_outcome(42) is None
        assert not wallet_session.disconnected

        await pairing.correlator.close()

    def test_verify_without_attempt_returns_outcome(self, pairing, wallet_account):
        """Outcome is returned even when no attempt accepts it."""
        nonce = pairing.issue_nonce(9)

        outcome = pairing.verify_browser_signature(
            9, wallet_account.address, sign_text(wallet_account, nonce)
        )

        assert outcome == Success(wallet_account.address)
        assert pairing.correlator.peek_outcome(9) is None

    def test_enqueue(self, pairing, queue):
        """Messages go to the delivery queue."""
        message = TextMessage(chat_id=1, text="hi")

        pairing.enqueue(message)

        queue.enqueue.assert_called_once_with(message)
