"""Error taxonomy for the distribution engine.

Every error is terminal for the operation that raised it and leaves no
partial state behind. Each one carries the period, recipient and amount
it concerns (where known) so callers can decide whether to fetch a fresh
proof, wait, or give up.
"""

from __future__ import annotations

from typing import Any, Optional


class DistributionError(Exception):
    """Base class for all distribution failures."""

    def __init__(
        self,
        message: str,
        *,
        period_index: Optional[int] = None,
        recipient: Optional[str] = None,
        amount: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.period_index = period_index
        self.recipient = recipient
        self.amount = amount

    def context(self) -> dict[str, Any]:
        """Identifying fields, omitting the ones that don't apply."""
        data = {
            "error": type(self).__name__,
            "message": str(self),
            "period_index": self.period_index,
            "recipient": self.recipient,
            "amount": self.amount,
        }
        return {k: v for k, v in data.items() if v is not None}


class UnauthorizedError(DistributionError):
    """Caller lacks the controller capability."""


class NotFoundError(DistributionError):
    """Unknown period index."""


class InvalidProofError(DistributionError):
    """Merkle proof does not link the leaf to the period root."""


class AlreadyClaimedError(DistributionError):
    """The recipient already claimed this period."""


class SupplyExceededError(DistributionError):
    """Paying the amount would breach the effective supply ceiling."""


class OutOfOrderError(DistributionError):
    """A period timing rule was violated."""


class TooEarlyError(DistributionError):
    """Recovery attempted before the policy allows it."""


class PayoutFailedError(DistributionError):
    """The external ledger refused or failed a payout."""
