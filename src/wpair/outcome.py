"""Verification outcomes and the per-user outcome slot store."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class FailureReason(Enum):
    """Why a pairing attempt failed.

    Values are the user-facing explanations sent back to the chat.
    """

    NO_ACCOUNTS = "Failed to get any accounts"
    SIGNATURE_MISMATCH = (
        "Signature verification error, "
        "you must verify the signature only with your account"
    )
    TIMEOUT = "Wallet verification time expired, please try again"
    SIGNING_FAILED = "Failed to sign with your wallet"


@dataclass(frozen=True)
class Success:
    """Recovered signer matched the claimed address."""

    address: str


@dataclass(frozen=True)
class Failure:
    """Attempt ended without proof of ownership."""

    reason: FailureReason

    @property
    def message(self) -> str:
        return self.reason.value


VerificationOutcome = Union[Success, Failure]


class OutcomeStore:
    """Write-once outcome slots keyed by user id.

    Each slot is a one-shot future. ``record`` is an insert-if-absent: the
    first writer resolves the slot and every later write for the same user
    is rejected until the slot is consumed. There is no suspension point
    between the check and the write.
    """

    def __init__(self):
        self._slots: dict[int, asyncio.Future] = {}

    def _slot(self, user_id: int) -> asyncio.Future:
        slot = self._slots.get(user_id)
        if slot is None:
            slot = asyncio.get_running_loop().create_future()
            self._slots[user_id] = slot
        return slot

    def record(self, user_id: int, outcome: VerificationOutcome) -> bool:
        """Record an outcome unless one is already present.

        Returns:
            True if this call wrote the slot, False if it was already set.
        """
        slot = self._slot(user_id)
        if slot.done():
            return False
        slot.set_result(outcome)
        return True

    def has_outcome(self, user_id: int) -> bool:
        slot = self._slots.get(user_id)
        return slot is not None and slot.done()

    def peek(self, user_id: int) -> Optional[VerificationOutcome]:
        """Return the recorded outcome without consuming it."""
        if not self.has_outcome(user_id):
            return None
        return self._slots[user_id].result()

    async def wait(self, user_id: int) -> VerificationOutcome:
        """Suspend until an outcome is recorded for the user."""
        return await asyncio.shield(self._slot(user_id))

    def consume(self, user_id: int) -> Optional[VerificationOutcome]:
        """Remove and return a recorded outcome."""
        if not self.has_outcome(user_id):
            return None
        return self._slots.pop(user_id).result()

    def __contains__(self, user_id: int) -> bool:
        return self.has_outcome(user_id)

    def __len__(self) -> int:
        return sum(1 for slot in self._slots.values() if slot.done())
