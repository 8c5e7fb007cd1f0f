"""Distribution models — periods, claim records, recovery records.

All token amounts are plain ints (uint256 base units). No floats in finance.

Invariants enforced by these models:
- A period's index, root and creation time never change.
- A claim ledger entry moves from 0 to a fixed nonzero amount exactly once.
- Ledger entries are never deleted or reset.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional


class PayoutTarget(str, enum.Enum):
    """Fund classes a distribution can pay into.

    SHARES and LOOT are the DAO's voting and non-voting units; TOKEN is a
    designated external ERC-20 (requires ``token_address`` in the config).
    """
    SHARES = "shares"
    LOOT = "loot"
    TOKEN = "token"


class RecoveryScope(str, enum.Enum):
    """What a recovery sweeps."""
    DISTRIBUTION = "distribution"
    PERIOD = "period"


@dataclass(frozen=True)
class Period:
    """One distribution round with its own root and claim ledger.

    Fields are read-only. The claim ledger and ``recovered`` change only
    through ``_record`` and ``_mark_recovered``, which the period store
    calls while holding the engine's writer lock.
    """
    index: int
    root: bytes
    created_utc: datetime
    allocation: Optional[int] = None
    recovered: int = 0
    _claims: Dict[str, int] = field(default_factory=dict, repr=False, compare=False)

    def claimed_amount(self, recipient: str) -> int:
        """Amount paid to ``recipient`` in this period (0 = unclaimed)."""
        return self._claims.get(recipient, 0)

    def has_claimed(self, recipient: str) -> bool:
        return self._claims.get(recipient, 0) != 0

    @property
    def total_claimed(self) -> int:
        return sum(self._claims.values())

    @property
    def claim_count(self) -> int:
        return len(self._claims)

    @property
    def is_swept(self) -> bool:
        """True once a period-scope recovery consumed the remainder."""
        return self.recovered > 0

    def unclaimed_allocation(self) -> int:
        """Declared allocation minus claims and recoveries (0 if undeclared)."""
        if self.allocation is None:
            return 0
        return max(0, self.allocation - self.total_claimed - self.recovered)

    def _record(self, recipient: str, amount: int) -> None:
        if amount <= 0:
            raise ValueError(f"Claim amount must be positive, got {amount}")
        if self.has_claimed(recipient):
            raise ValueError(f"Ledger entry already set for {recipient}")
        self._claims[recipient] = amount

    def _mark_recovered(self, amount: int) -> None:
        object.__setattr__(self, "recovered", self.recovered + amount)

    @property
    def root_hex(self) -> str:
        return "0x" + self.root.hex()

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "root": self.root_hex,
            "created_utc": self.created_utc.isoformat(),
            "allocation": self.allocation,
            "total_claimed": self.total_claimed,
            "claim_count": self.claim_count,
            "recovered": self.recovered,
        }


@dataclass(frozen=True)
class ClaimRecord:
    """A committed claim. Immutable once created."""
    period_index: int
    recipient: str
    amount: int
    claimed_utc: datetime


@dataclass(frozen=True)
class RecoveryRecord:
    """A committed sweep of unclaimed funds."""
    recipient: str
    amount: int
    scope: RecoveryScope
    recovered_utc: datetime
    period_index: Optional[int] = None
