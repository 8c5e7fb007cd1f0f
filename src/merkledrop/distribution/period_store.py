"""Period store — append-only sequence of periods and their claim ledgers.

Periods are indexed by a monotonically increasing integer and never
reference each other. The store owns all mutable distribution state:
period roots, per-recipient claimed amounts, and period-level recoveries.

The store does no locking of its own. The distribution engine serializes
every writer (create, record, recover) behind a single lock; readers may
call ``get_period`` and the query methods at any time.

Timing rules:
- The first period may not be created before ``start_time``.
- Each later period must be at least ``period_length`` after the previous
  period's creation time.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from merkledrop.config import DropConfig
from merkledrop.crypto.hashing import BytesLike, to_bytes32, validate_amount
from merkledrop.errors import (
    AlreadyClaimedError,
    NotFoundError,
    OutOfOrderError,
    SupplyExceededError,
)
from merkledrop.models.distribution import Period


class PeriodStore:
    """In-memory arena of periods.

    Usage:
        store = PeriodStore(config)
        period = store.create_period(root, now)
        store.record_claim(period.index, recipient, 600)
    """

    def __init__(self, config: DropConfig) -> None:
        self._config = config
        self._periods: List[Period] = []

    def create_period(
        self,
        root: BytesLike,
        timestamp: datetime,
        allocation: Optional[int] = None,
    ) -> Period:
        """Append a new period with the next sequential index."""
        return self.append_period(self.build_period(root, timestamp, allocation))

    def append_period(self, period: Period) -> Period:
        """Append a period produced by ``build_period``.

        The index must still be the next one, i.e. nothing was appended
        in between.
        """
        if period.index != len(self._periods):
            raise OutOfOrderError(
                f"Period index {period.index} is stale (next index is {len(self._periods)})",
                period_index=period.index,
            )
        self._periods.append(period)
        return period

    def build_period(
        self,
        root: BytesLike,
        timestamp: datetime,
        allocation: Optional[int] = None,
    ) -> Period:
        """Validate timing and construct the next period without appending it."""
        root_bytes = to_bytes32(root)
        if timestamp.tzinfo is None:
            raise ValueError(
                f"Period timestamp must be timezone-aware, got {timestamp.isoformat()}"
            )
        if allocation is not None:
            validate_amount(allocation)
            if allocation > self._config.total_supply:
                raise ValueError(
                    f"Period allocation {allocation} exceeds total supply "
                    f"{self._config.total_supply}"
                )
        next_index = len(self._periods)

        previous = self.latest
        if previous is None:
            if timestamp < self._config.start_time:
                raise OutOfOrderError(
                    f"First period cannot start before {self._config.start_time.isoformat()} "
                    f"(requested {timestamp.isoformat()})",
                    period_index=next_index,
                )
        else:
            earliest = previous.created_utc + self._config.period_length
            if timestamp < earliest:
                raise OutOfOrderError(
                    f"Period {next_index} cannot be created before {earliest.isoformat()} "
                    f"(previous period {previous.index} at {previous.created_utc.isoformat()}, "
                    f"requested {timestamp.isoformat()})",
                    period_index=next_index,
                )

        return Period(
            index=next_index,
            root=root_bytes,
            created_utc=timestamp,
            allocation=allocation,
        )

    def get_period(self, index: int) -> Period:
        """Return the period at ``index``."""
        if isinstance(index, bool) or not isinstance(index, int):
            raise NotFoundError(f"Invalid period index: {index!r}")
        if index < 0 or index >= len(self._periods):
            raise NotFoundError(
                f"Unknown period {index} ({len(self._periods)} periods exist)",
                period_index=index,
            )
        return self._periods[index]

    def check_claimable(self, index: int, recipient: str, amount: int) -> Period:
        """Raise if a claim for this key could not be recorded right now.

        Covers the per-period rules only: the global supply ceiling is the
        engine's concern.
        """
        period = self.get_period(index)
        if period.has_claimed(recipient):
            raise AlreadyClaimedError(
                f"{recipient} already claimed {period.claimed_amount(recipient)} "
                f"in period {index}",
                period_index=index,
                recipient=recipient,
                amount=amount,
            )
        if period.is_swept:
            raise SupplyExceededError(
                f"Period {index} unclaimed allocation was recovered",
                period_index=index,
                recipient=recipient,
                amount=amount,
            )
        if period.allocation is not None and period.total_claimed + amount > period.allocation:
            raise SupplyExceededError(
                f"Claim of {amount} would exceed period {index} allocation "
                f"({period.total_claimed} of {period.allocation} claimed)",
                period_index=index,
                recipient=recipient,
                amount=amount,
            )
        return period

    def record_claim(self, index: int, recipient: str, amount: int) -> Period:
        """Set the recipient's ledger entry for the period.

        Raises AlreadyClaimedError if the entry is already nonzero.
        """
        validate_amount(amount)
        period = self.check_claimable(index, recipient, amount)
        period._record(recipient, amount)
        return period

    def record_recovery(self, index: int, amount: int) -> Period:
        """Mark a period's unclaimed allocation as swept."""
        period = self.get_period(index)
        period._mark_recovered(amount)
        return period

    def has_claimed(self, index: int, recipient: str) -> bool:
        return self.get_period(index).has_claimed(recipient)

    def periods(self) -> List[Period]:
        return list(self._periods)

    @property
    def count(self) -> int:
        return len(self._periods)

    @property
    def latest(self) -> Optional[Period]:
        return self._periods[-1] if self._periods else None

    @property
    def total_claimed(self) -> int:
        """Aggregate amount claimed across every period."""
        return sum(p.total_claimed for p in self._periods)
