"""External ledger boundary — where claimed funds actually move.

The distribution engine never holds balances. It instructs a ledger to
mint, transfer or burn on its behalf. Settlement is a pluggable backend
behind this interface: a DAO shaman minting shares and loot, an ERC-20
transfer, or the in-memory ledger below.

Contract:
- ``payout`` returns True on success, False (or raises) on failure. A
  failure is never silent and never partially applied within one call.
- ``reverse`` undoes a successful payout. The engine only calls it to
  unwind a multi-target or batch payout that failed part-way, before any
  claim record is written.
- The engine invokes ``payout`` at most once per committed claim per
  target and never retries.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from merkledrop.models.distribution import PayoutTarget


@runtime_checkable
class ExternalLedger(Protocol):
    """Abstract contract for token movement."""

    def payout(self, recipient: str, amount: int, target: PayoutTarget) -> bool:
        """Credit ``amount`` of ``target`` to ``recipient``."""
        ...

    def reverse(self, recipient: str, amount: int, target: PayoutTarget) -> bool:
        """Debit a previously credited payout."""
        ...


@dataclass(frozen=True)
class LedgerOperation:
    """One call observed by the in-memory ledger."""
    kind: str  # "payout" | "reverse"
    recipient: str
    amount: int
    target: PayoutTarget


FailurePredicate = Callable[[str, int, PayoutTarget], bool]


class InMemoryLedger:
    """Balances per (target, recipient), for tests and local dry runs.

    Usage:
        ledger = InMemoryLedger()
        ledger.payout("0xabc...", 600, PayoutTarget.LOOT)
        ledger.balance_of("0xabc...", PayoutTarget.LOOT)  # 600

    ``fail_when`` makes selected payouts fail (return False), which is how
    tests exercise the engine's rollback paths.
    """

    def __init__(self, fail_when: Optional[FailurePredicate] = None) -> None:
        self._balances: Dict[Tuple[PayoutTarget, str], int] = {}
        self._operations: List[LedgerOperation] = []
        self.fail_when = fail_when

    def payout(self, recipient: str, amount: int, target: PayoutTarget) -> bool:
        if amount <= 0:
            return False
        if self.fail_when is not None and self.fail_when(recipient, amount, target):
            return False
        key = (target, recipient)
        self._balances[key] = self._balances.get(key, 0) + amount
        self._operations.append(LedgerOperation("payout", recipient, amount, target))
        return True

    def reverse(self, recipient: str, amount: int, target: PayoutTarget) -> bool:
        key = (target, recipient)
        balance = self._balances.get(key, 0)
        if amount <= 0 or amount > balance:
            return False
        self._balances[key] = balance - amount
        self._operations.append(LedgerOperation("reverse", recipient, amount, target))
        return True

    def balance_of(self, recipient: str, target: PayoutTarget) -> int:
        return self._balances.get((target, recipient), 0)

    def total_issued(self, target: Optional[PayoutTarget] = None) -> int:
        """Sum of outstanding balances, optionally for one target class."""
        return sum(
            amount for (t, _), amount in self._balances.items()
            if target is None or t == target
        )

    @property
    def operations(self) -> List[LedgerOperation]:
        return list(self._operations)
