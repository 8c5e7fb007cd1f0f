"""Distribution engine — periods, proof-gated claims, and recovery.

The engine is the only component that talks to the external ledger. It
enforces, across the period store:

1. A (period, recipient) pair is paid at most once, for exactly the
   amount encoded in that period's Merkle leaf.
2. The aggregate paid out never exceeds the effective ceiling
   (``total_supply`` minus everything recovered).
3. Either the claim record and the payout both happen, or neither does.
4. Recovered funds can never be claimed afterwards.

Concurrency: a single writer lock serializes add_period, claim, claim_all
and recover. The supply check, the per-entry claim check, the ledger
calls and the record write all happen inside it, so every check sees the
latest committed total. Proof verification is pure and runs before the
lock is taken. Readers never lock.

Commit order inside the lock: check → pay out → append audit event →
write claim record. Any failure before the record write reverses the
payouts already made, so nothing is left paid-but-unrecorded.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple
from uuid import uuid4

from merkledrop.config import DropConfig, parse_timestamp
from merkledrop.crypto.hashing import (
    BytesLike,
    leaf_hash,
    normalize_address,
    to_bytes32,
    validate_amount,
)
from merkledrop.crypto.merkle import verify
from merkledrop.distribution.guard import ControllerGuard, StaticControllerGuard
from merkledrop.distribution.ledger import ExternalLedger
from merkledrop.distribution.period_store import PeriodStore
from merkledrop.errors import (
    AlreadyClaimedError,
    InvalidProofError,
    PayoutFailedError,
    SupplyExceededError,
    TooEarlyError,
    UnauthorizedError,
)
from merkledrop.models.distribution import (
    ClaimRecord,
    PayoutTarget,
    Period,
    RecoveryRecord,
    RecoveryScope,
)
from merkledrop.persistence.event_log import EventKind, EventLog, EventRecord

logger = logging.getLogger(__name__)

Proof = Sequence[BytesLike]
_Payout = Tuple[str, int, PayoutTarget]


def _resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        raise ValueError(f"Timestamp must be timezone-aware, got {now.isoformat()}")
    return now


class DistributionEngine:
    """Merkle drop engine over a fixed token supply.

    Every configured payout target receives the full leaf amount, and the
    amount counts once toward ``total_supply``. A drop paying both shares
    and loot therefore has the ledger issue up to twice ``total_supply``
    units in total: the supply bounds entitlements, not units minted.

    Usage:
        engine = DistributionEngine(config, ledger)
        period = engine.add_period(root, requester=config.controller)
        record = engine.claim(period.index, recipient, amount, proof)
        records = engine.claim_all([0, 1], recipient, [100, 250], [proof0, proof1])
        sweep = engine.recover(config.controller, treasury)

    Persistence (optional):
        engine = DistributionEngine(config, ledger, event_log=log)
        # ... after a restart:
        engine = DistributionEngine.restore(config, ledger, log)
    """

    def __init__(
        self,
        config: DropConfig,
        ledger: ExternalLedger,
        guard: Optional[ControllerGuard] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._config = config
        self._ledger = ledger
        self._guard = guard if guard is not None else StaticControllerGuard(config.controller)
        self._store = PeriodStore(config)
        self._lock = threading.Lock()
        self._total_paid = 0
        self._recovered = 0
        self._recoveries: List[RecoveryRecord] = []
        self._event_log: Optional[EventLog] = None
        if event_log is not None:
            self._attach_log(event_log)

    # ------------------------------------------------------------------
    # Period lifecycle
    # ------------------------------------------------------------------

    def add_period(
        self,
        root: BytesLike,
        requester: str,
        now: Optional[datetime] = None,
        allocation: Optional[int] = None,
    ) -> Period:
        """Publish a new period root. Claimable immediately on success.

        ``allocation`` declares the period's total entitlement; it is only
        needed for period-scope recovery and caps that period's claims.
        """
        self._authorize(requester, "add a period")
        now = _resolve_now(now)
        root_bytes = to_bytes32(root)

        with self._lock:
            period = self._store.build_period(root_bytes, now, allocation)
            self._log(
                EventKind.PERIOD_ADDED,
                requester,
                {
                    "index": period.index,
                    "root": period.root_hex,
                    "created_utc": period.created_utc.isoformat(),
                    "allocation": allocation,
                },
                now,
            )
            self._store.append_period(period)

        logger.info("Period %d added with root %s", period.index, period.root_hex)
        return period

    def get_period(self, index: int) -> Period:
        return self._store.get_period(index)

    def periods(self) -> List[Period]:
        return self._store.periods()

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def claim(
        self,
        period_index: int,
        recipient: str,
        amount: int,
        proof: Proof,
        now: Optional[datetime] = None,
    ) -> ClaimRecord:
        """Redeem one recipient's entitlement for one period."""
        recipient = normalize_address(recipient)
        validate_amount(amount)
        now = _resolve_now(now)

        self._verify_entry(period_index, recipient, amount, proof)

        with self._lock:
            self._store.check_claimable(period_index, recipient, amount)
            self._check_supply(amount, pending=0, period_index=period_index, recipient=recipient)

            paid = self._pay(recipient, amount, period_index=period_index)
            payload = {
                "period_index": period_index,
                "recipient": recipient,
                "amount": amount,
                "targets": [t.value for t in self._config.sorted_targets()],
            }
            self._log_or_unwind(EventKind.CLAIM_RECORDED, recipient, payload, now, paid)

            self._store.record_claim(period_index, recipient, amount)
            self._total_paid += amount

        logger.info("Claim committed: period=%d recipient=%s amount=%d", period_index, recipient, amount)
        return ClaimRecord(
            period_index=period_index,
            recipient=recipient,
            amount=amount,
            claimed_utc=now,
        )

    def claim_all(
        self,
        period_indices: Sequence[int],
        recipient: str,
        amounts: Sequence[int],
        proofs: Sequence[Proof],
        now: Optional[datetime] = None,
    ) -> List[ClaimRecord]:
        """Claim several periods at once, all-or-nothing.

        Phase 1 validates every entry (periods exist, proofs verify, no
        duplicate periods) without touching state. Phase 2, under the
        writer lock, re-checks claim state and the aggregate supply, pays
        out every entry, and only then records the claims. Any failure
        leaves no claim recorded and no payout standing.
        """
        if not (len(period_indices) == len(amounts) == len(proofs)):
            raise ValueError(
                f"Batch length mismatch: {len(period_indices)} periods, "
                f"{len(amounts)} amounts, {len(proofs)} proofs"
            )
        if not period_indices:
            raise ValueError("Batch must contain at least one claim")
        recipient = normalize_address(recipient)
        now = _resolve_now(now)

        entries = list(zip(period_indices, amounts, proofs))
        seen: set[int] = set()
        for period_index, amount, proof in entries:
            validate_amount(amount)
            if period_index in seen:
                raise AlreadyClaimedError(
                    f"Period {period_index} appears more than once in the batch",
                    period_index=period_index,
                    recipient=recipient,
                    amount=amount,
                )
            seen.add(period_index)
            self._verify_entry(period_index, recipient, amount, proof)

        with self._lock:
            pending = 0
            for period_index, amount, _ in entries:
                self._store.check_claimable(period_index, recipient, amount)
                self._check_supply(
                    amount, pending=pending, period_index=period_index, recipient=recipient
                )
                pending += amount

            paid: List[_Payout] = []
            for period_index, amount, _ in entries:
                try:
                    paid.extend(self._pay(recipient, amount, period_index=period_index))
                except PayoutFailedError:
                    self._unwind(paid)
                    raise

            payload = {
                "recipient": recipient,
                "claims": [
                    {"period_index": period_index, "amount": amount}
                    for period_index, amount, _ in entries
                ],
                "targets": [t.value for t in self._config.sorted_targets()],
            }
            self._log_or_unwind(EventKind.BATCH_CLAIMED, recipient, payload, now, paid)

            for period_index, amount, _ in entries:
                self._store.record_claim(period_index, recipient, amount)
            self._total_paid += pending

        logger.info(
            "Batch claim committed: recipient=%s periods=%s total=%d",
            recipient, [e[0] for e in entries], pending,
        )
        return [
            ClaimRecord(period_index=i, recipient=recipient, amount=a, claimed_utc=now)
            for i, a, _ in entries
        ]

    def verify_claim(
        self,
        period_index: int,
        recipient: str,
        amount: int,
        proof: Proof,
    ) -> bool:
        """Check a proof against a period root without claiming."""
        period = self._store.get_period(period_index)
        leaf = leaf_hash(normalize_address(recipient), amount)
        return verify(leaf, proof, period.root)

    def is_claimed(self, period_index: int, recipient: str) -> bool:
        return self._store.has_claimed(period_index, normalize_address(recipient))

    def claimed_amount(self, period_index: int, recipient: str) -> int:
        return self._store.get_period(period_index).claimed_amount(normalize_address(recipient))

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    def recover(
        self,
        requester: str,
        target_recipient: str,
        now: Optional[datetime] = None,
        period_index: Optional[int] = None,
    ) -> RecoveryRecord:
        """Sweep unclaimed funds to ``target_recipient``.

        Scope and timing follow ``config.recovery``. The swept amount is
        consumed permanently: it lowers the effective ceiling, so no later
        claim can be paid from it. A zero remainder returns a zero-amount
        record and moves nothing.
        """
        self._authorize(requester, "recover unclaimed funds")
        target_recipient = normalize_address(target_recipient)
        now = _resolve_now(now)
        policy = self._config.recovery

        with self._lock:
            if policy.scope == RecoveryScope.DISTRIBUTION:
                if period_index is not None:
                    raise ValueError("Distribution-scope recovery does not take a period index")
                latest = self._store.latest
                reference = latest.created_utc if latest is not None else self._config.start_time
                eligible = reference + policy.delay
                amount = self.remaining
            else:
                if period_index is None:
                    raise ValueError("Period-scope recovery requires a period index")
                period = self._store.get_period(period_index)
                eligible = period.created_utc + policy.delay
                amount = min(period.unclaimed_allocation(), self.remaining)

            if now < eligible:
                raise TooEarlyError(
                    f"Recovery not allowed before {eligible.isoformat()} "
                    f"(requested {now.isoformat()})",
                    period_index=period_index,
                    recipient=target_recipient,
                )

            record = RecoveryRecord(
                recipient=target_recipient,
                amount=amount,
                scope=policy.scope,
                recovered_utc=now,
                period_index=period_index,
            )
            if amount == 0:
                logger.info("Recovery requested with nothing left to sweep")
                return record

            paid = self._pay(target_recipient, amount, period_index=period_index)
            payload = {
                "recipient": target_recipient,
                "amount": amount,
                "scope": policy.scope.value,
                "period_index": period_index,
            }
            self._log_or_unwind(EventKind.SUPPLY_RECOVERED, requester, payload, now, paid)

            self._apply_recovery(record)

        logger.info(
            "Recovered %d (%s scope) to %s", amount, policy.scope.value, target_recipient
        )
        return record

    @property
    def recoveries(self) -> List[RecoveryRecord]:
        return list(self._recoveries)

    # ------------------------------------------------------------------
    # Accounting queries
    # ------------------------------------------------------------------

    @property
    def config(self) -> DropConfig:
        return self._config

    @property
    def total_paid(self) -> int:
        """Aggregate amount paid out to claimants."""
        return self._total_paid

    @property
    def recovered(self) -> int:
        """Aggregate amount swept by recoveries."""
        return self._recovered

    @property
    def ceiling(self) -> int:
        """Effective claim ceiling: total supply minus recovered funds."""
        return self._config.total_supply - self._recovered

    @property
    def remaining(self) -> int:
        """Amount still claimable under the effective ceiling."""
        return max(0, self.ceiling - self._total_paid)

    def status(self) -> dict[str, Any]:
        return {
            "controller": self._config.controller,
            "total_supply": self._config.total_supply,
            "total_paid": self._total_paid,
            "recovered": self._recovered,
            "remaining": self.remaining,
            "payout_targets": [t.value for t in self._config.sorted_targets()],
            "period_count": self._store.count,
            "periods": [p.to_dict() for p in self._store.periods()],
        }

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    @classmethod
    def restore(
        cls,
        config: DropConfig,
        ledger: ExternalLedger,
        event_log: EventLog,
        guard: Optional[ControllerGuard] = None,
    ) -> DistributionEngine:
        """Rebuild engine state from an event log without touching the ledger.

        The log must have been produced under the same configuration.
        """
        engine = cls(config, ledger, guard=guard)
        for event in event_log.events():
            engine._apply_event(event)
        engine._attach_log(event_log)
        logger.info(
            "Restored %d periods, total paid %d, recovered %d from %d events",
            engine._store.count, engine._total_paid, engine._recovered, event_log.count,
        )
        return engine

    def _apply_event(self, event: EventRecord) -> None:
        payload = event.payload
        if event.event_kind == EventKind.DISTRIBUTION_CONFIGURED:
            if payload != self._config.to_dict():
                raise ValueError("Event log was written under a different configuration")
        elif event.event_kind == EventKind.PERIOD_ADDED:
            period = self._store.create_period(
                payload["root"],
                parse_timestamp(payload["created_utc"]),
                payload.get("allocation"),
            )
            if period.index != payload["index"]:
                raise ValueError(
                    f"Replayed period index {period.index} != logged {payload['index']}"
                )
        elif event.event_kind == EventKind.CLAIM_RECORDED:
            self._store.record_claim(payload["period_index"], payload["recipient"], payload["amount"])
            self._total_paid += payload["amount"]
        elif event.event_kind == EventKind.BATCH_CLAIMED:
            for item in payload["claims"]:
                self._store.record_claim(item["period_index"], payload["recipient"], item["amount"])
                self._total_paid += item["amount"]
        elif event.event_kind == EventKind.SUPPLY_RECOVERED:
            self._apply_recovery(
                RecoveryRecord(
                    recipient=payload["recipient"],
                    amount=payload["amount"],
                    scope=RecoveryScope(payload["scope"]),
                    recovered_utc=event.timestamp,
                    period_index=payload.get("period_index"),
                )
            )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _authorize(self, requester: str, action: str) -> None:
        if not self._guard.is_controller(requester):
            logger.warning("Unauthorized attempt to %s by %s", action, requester)
            raise UnauthorizedError(
                f"{requester} is not permitted to {action}",
                recipient=requester,
            )

    def _verify_entry(self, period_index: int, recipient: str, amount: int, proof: Proof) -> None:
        period = self._store.get_period(period_index)
        leaf = leaf_hash(recipient, amount)
        if not verify(leaf, proof, period.root):
            logger.warning(
                "Invalid proof: period=%d recipient=%s amount=%d", period_index, recipient, amount
            )
            raise InvalidProofError(
                f"Proof does not match period {period_index} root for "
                f"{recipient} / {amount}",
                period_index=period_index,
                recipient=recipient,
                amount=amount,
            )

    def _check_supply(
        self,
        amount: int,
        pending: int,
        period_index: Optional[int],
        recipient: str,
    ) -> None:
        committed = self._total_paid + pending
        if committed + amount > self.ceiling:
            raise SupplyExceededError(
                f"Claim of {amount} would exceed supply ceiling {self.ceiling} "
                f"({committed} already paid or pending)",
                period_index=period_index,
                recipient=recipient,
                amount=amount,
            )

    def _pay(
        self,
        recipient: str,
        amount: int,
        period_index: Optional[int],
    ) -> List[_Payout]:
        """Pay ``amount`` into every configured target, or nothing at all."""
        paid: List[_Payout] = []
        for target in self._config.sorted_targets():
            try:
                ok = self._ledger.payout(recipient, amount, target)
            except Exception as exc:
                self._unwind(paid)
                logger.warning("Ledger raised on %s payout to %s: %s", target.value, recipient, exc)
                raise PayoutFailedError(
                    f"Ledger error paying {amount} {target.value} to {recipient}: {exc}",
                    period_index=period_index,
                    recipient=recipient,
                    amount=amount,
                ) from exc
            if not ok:
                self._unwind(paid)
                logger.warning("Ledger refused %s payout of %d to %s", target.value, amount, recipient)
                raise PayoutFailedError(
                    f"Ledger refused paying {amount} {target.value} to {recipient}",
                    period_index=period_index,
                    recipient=recipient,
                    amount=amount,
                )
            paid.append((recipient, amount, target))
        return paid

    def _unwind(self, paid: Iterable[_Payout]) -> None:
        """Reverse payouts in LIFO order. Failures are logged, not hidden."""
        for recipient, amount, target in reversed(list(paid)):
            try:
                ok = self._ledger.reverse(recipient, amount, target)
            except Exception:
                logger.exception(
                    "Ledger raised reversing %d %s for %s", amount, target.value, recipient
                )
                continue
            if not ok:
                logger.error(
                    "Ledger refused reversing %d %s for %s", amount, target.value, recipient
                )

    def _log_or_unwind(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        now: datetime,
        paid: List[_Payout],
    ) -> None:
        """Append the audit event; if that fails, undo the payouts."""
        try:
            self._log(kind, actor_id, payload, now)
        except Exception:
            self._unwind(paid)
            raise

    def _log(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        now: datetime,
    ) -> None:
        if self._event_log is None:
            return
        event = EventRecord.create(
            event_id=f"{kind.value}_{uuid4().hex[:12]}",
            event_kind=kind,
            actor_id=actor_id,
            payload=payload,
            timestamp_utc=now,
        )
        self._event_log.append(event)

    def _attach_log(self, event_log: EventLog) -> None:
        self._event_log = event_log
        if event_log.count == 0:
            self._log(
                EventKind.DISTRIBUTION_CONFIGURED,
                self._config.controller,
                self._config.to_dict(),
                datetime.now(timezone.utc),
            )

    def _apply_recovery(self, record: RecoveryRecord) -> None:
        if record.scope == RecoveryScope.PERIOD and record.period_index is not None:
            self._store.record_recovery(record.period_index, record.amount)
        self._recovered += record.amount
        self._recoveries.append(record)
