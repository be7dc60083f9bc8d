"""Session correlator drives each pairing attempt to a single outcome.

Three flows may finish an attempt for a user:

1. The wallet session: the wallet connects, signs the user challenge, and
   the recovered signer is compared with the offered account.
2. The browser path: the verify server checks a nonce signature and submits
   the result here.
3. The timeout watcher: no outcome within the pairing budget.

Whichever writes first wins. Writing ends the attempt: the user stops being
pending, the remaining watchers are cancelled and the session is
disconnected.
"""

import asyncio
import logging
from typing import Optional

from wpair.challenge import addresses_match, recover_signer, user_challenge
from wpair.outcome import (
    Failure,
    FailureReason,
    OutcomeStore,
    Success,
    VerificationOutcome,
)
from wpair.session import (
    EVENT_CONNECT,
    EVENT_DISPLAY_URI,
    PendingSession,
    SessionFactory,
)

logger = logging.getLogger(__name__)


class SessionCorrelator:
    """Orchestrates wallet pairing attempts, one per user.

    Owns the pending-attempt registry and the outcome store. The verify
    server and the bot reach it through the pairing facade.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        timeout: float = 300.0,
    ):
        """Initialize correlator.

        Args:
            session_factory: Async callable producing a new wallet session.
            timeout: Seconds an attempt may stay open without an outcome.
        """
        self._session_factory = session_factory
        self._timeout = timeout
        self._pending: dict[int, PendingSession] = {}
        self._outcomes = OutcomeStore()
        self._background: set[asyncio.Task] = set()

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, user_id: int) -> bool:
        """Check if the user has an open pairing attempt."""
        return user_id in self._pending

    def get_pending(self, user_id: int) -> Optional[PendingSession]:
        return self._pending.get(user_id)

    def peek_outcome(self, user_id: int) -> Optional[VerificationOutcome]:
        """Return a recorded, unread outcome without consuming it."""
        return self._outcomes.peek(user_id)

    async def connect(self, user_id: int) -> Optional[str]:
        """Open a pairing attempt and return its pairing URI.

        Args:
            user_id: Requesting user.

        Returns:
            The pairing URI, or None if an attempt is already pending or the
            session could not produce a URI.
        """
        if user_id in self._pending:
            logger.info(f"Pairing already pending for user {user_id}")
            return None

        # Registered before the first await so a racing connect is rejected
        pending = PendingSession(user_id=user_id)
        self._pending[user_id] = pending

        # Unread outcome of an earlier attempt
        if self._outcomes.consume(user_id) is not None:
            logger.debug(f"Discarded unread outcome for user {user_id}")

        try:
            session = await self._session_factory()
        except asyncio.CancelledError:
            self._pending.pop(user_id, None)
            raise
        except Exception as e:
            logger.error(f"Failed to create wallet session for user {user_id}: {e}")
            self._pending.pop(user_id, None)
            return None

        pending.session = session
        loop = asyncio.get_running_loop()
        uri_future: asyncio.Future = loop.create_future()

        def on_display_uri(uri: str, *args) -> None:
            if not uri_future.done():
                uri_future.set_result(uri)

        def on_connect(*args) -> None:
            if self._pending.get(user_id) is pending:
                self._spawn(pending, self._sign_challenge(pending))

        session.on(EVENT_DISPLAY_URI, on_display_uri)
        session.on(EVENT_CONNECT, on_connect)
        self._spawn(pending, self._run_session(pending, uri_future))

        try:
            uri = await asyncio.wait_for(
                asyncio.shield(uri_future), timeout=self._timeout
            )
        except asyncio.CancelledError:
            self._abandon(pending)
            raise
        except asyncio.TimeoutError:
            logger.warning(f"Wallet session emitted no URI for user {user_id}")
            self._abandon(pending)
            return None
        except Exception as e:
            logger.error(f"Wallet connect failed for user {user_id}: {e}")
            self._abandon(pending)
            return None

        pending.uri = uri
        if self._pending.get(user_id) is pending:
            self._spawn(pending, self._watch_timeout(pending))
        elif not self._outcomes.has_outcome(user_id):
            # Closed while waiting for the URI
            return None

        logger.info(f"Pairing session opened for user {user_id}")
        return uri

    async def get_result(self, user_id: int) -> VerificationOutcome:
        """Wait for the user's outcome and consume it.

        Args:
            user_id: User to wait for.

        Returns:
            The recorded outcome. A second call before a new attempt waits
            for the next attempt.
        """
        outcome = await self._outcomes.wait(user_id)
        self._outcomes.consume(user_id)
        return outcome

    def submit_verification(
        self, user_id: int, outcome: VerificationOutcome
    ) -> bool:
        """Record an outcome produced outside the wallet session.

        Accepted only while an attempt is pending for the user.

        Returns:
            True if the outcome was recorded.
        """
        pending = self._pending.get(user_id)
        if pending is None:
            logger.warning(f"Verification for user {user_id} with no pending attempt")
            return False
        return self._resolve(pending, outcome)

    async def close(self) -> None:
        """Cancel all attempts and disconnect their sessions."""
        for pending in list(self._pending.values()):
            self._abandon(pending)

        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

        logger.info("Session correlator closed")

    # ==================== Watchers ====================

    async def _run_session(
        self, pending: PendingSession, uri_future: asyncio.Future
    ) -> None:
        """Drive the session's connect call."""
        try:
            await pending.session.connect()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not uri_future.done():
                uri_future.set_exception(e)
                return
            logger.error(f"Wallet session for user {pending.user_id} failed: {e}")
            self._resolve(pending, Failure(FailureReason.SIGNING_FAILED))

    async def _sign_challenge(self, pending: PendingSession) -> None:
        """Ask the connected wallet to sign the user challenge."""
        user_id = pending.user_id
        accounts = list(pending.session.accounts or [])
        if not accounts:
            logger.warning(f"Wallet offered no accounts for user {user_id}")
            self._resolve(pending, Failure(FailureReason.NO_ACCOUNTS))
            return

        account = accounts[0]
        inner, outer = user_challenge(user_id)

        try:
            signature = await pending.session.request(
                "personal_sign", [outer, account]
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Wallet failed to confirm request for user {user_id}: {e}")
            self._resolve(pending, Failure(FailureReason.SIGNING_FAILED))
            return

        if not signature:
            self._resolve(pending, Failure(FailureReason.SIGNING_FAILED))
            return

        try:
            recovered = recover_signer(inner, signature)
        except Exception as e:
            logger.warning(f"Unrecoverable signature from user {user_id}: {e}")
            self._resolve(pending, Failure(FailureReason.SIGNATURE_MISMATCH))
            return

        if not addresses_match(recovered, account):
            logger.warning(
                f"Signature mismatch for user {user_id}: "
                f"offered {account}, recovered {recovered}"
            )
            self._resolve(pending, Failure(FailureReason.SIGNATURE_MISMATCH))
            return

        self._resolve(pending, Success(account))

    async def _watch_timeout(self, pending: PendingSession) -> None:
        """Fail the attempt if nothing resolves it within the budget."""
        try:
            await asyncio.wait_for(
                self._outcomes.wait(pending.user_id), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            logger.info(f"Pairing timed out for user {pending.user_id}")
            self._resolve(pending, Failure(FailureReason.TIMEOUT))

    # ==================== Attempt lifecycle ====================

    def _spawn(self, pending: PendingSession, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        pending.tasks.append(task)
        self._track(task)
        return task

    def _track(self, task: asyncio.Task) -> None:
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _resolve(self, pending: PendingSession, outcome: VerificationOutcome) -> bool:
        """Record the attempt's outcome if it is still open.

        No await between the checks and the write.
        """
        user_id = pending.user_id
        if self._pending.get(user_id) is not pending:
            return False
        if not self._outcomes.record(user_id, outcome):
            return False

        logger.info(f"Pairing outcome for user {user_id}: {outcome}")
        self._end(pending)
        return True

    def _abandon(self, pending: PendingSession) -> None:
        """End an attempt without recording an outcome."""
        if self._pending.get(pending.user_id) is pending:
            self._end(pending)

    def _end(self, pending: PendingSession) -> None:
        del self._pending[pending.user_id]

        current = asyncio.current_task()
        for task in pending.tasks:
            if task is not current and not task.done():
                task.cancel()

        if pending.session is not None:
            self._track(asyncio.create_task(self._disconnect(pending)))

    async def _disconnect(self, pending: PendingSession) -> None:
        try:
            await pending.session.disconnect()
        except Exception as e:
            logger.warning(
                f"Failed to disconnect wallet session for user {pending.user_id}: {e}"
            )
