"""Distribution configuration — set once at creation, immutable thereafter.

Mirrors the deployment parameters of a Merkle drop: the controller (the
DAO that may add periods and recover funds), period spacing, start time,
total supply, and which fund classes the drop pays into.

Loaded from a JSON document or from ``MERKLEDROP_*`` environment variables
(a ``.env`` file is honoured via python-dotenv). Validation happens in
``__post_init__`` so every construction path is checked the same way.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, FrozenSet, Mapping, Optional, Union

from dotenv import load_dotenv

from merkledrop.crypto.hashing import MAX_AMOUNT, normalize_address
from merkledrop.models.distribution import PayoutTarget, RecoveryScope

ENV_PREFIX = "MERKLEDROP_"


@dataclass(frozen=True)
class RecoveryPolicy:
    """When and what the controller may sweep.

    DISTRIBUTION scope: the whole unclaimed supply, once ``delay`` has
    elapsed since the latest period was created (or since ``start_time``
    if no period exists yet).

    PERIOD scope: one period's declared allocation minus its claims, once
    ``delay`` has elapsed since that period was created. Periods added
    without an allocation have nothing to recover.
    """
    scope: RecoveryScope = RecoveryScope.DISTRIBUTION
    delay: timedelta = timedelta(0)

    def __post_init__(self) -> None:
        if self.delay < timedelta(0):
            raise ValueError(f"Recovery delay cannot be negative, got {self.delay}")


@dataclass(frozen=True)
class DropConfig:
    """Immutable distribution configuration.

    Usage:
        config = DropConfig(
            controller="0x...",
            period_length=timedelta(days=30),
            start_time=datetime(2026, 1, 1, tzinfo=timezone.utc),
            total_supply=1_000_000,
            payout_targets=frozenset({PayoutTarget.LOOT}),
        )
    """
    controller: str
    period_length: timedelta
    start_time: datetime
    total_supply: int
    payout_targets: FrozenSet[PayoutTarget]
    token_address: Optional[str] = None
    recovery: RecoveryPolicy = field(default_factory=RecoveryPolicy)

    def __post_init__(self) -> None:
        object.__setattr__(self, "controller", normalize_address(self.controller))
        object.__setattr__(self, "payout_targets", frozenset(self.payout_targets))

        if self.period_length < timedelta(0):
            raise ValueError(f"Period length cannot be negative, got {self.period_length}")
        if self.start_time.tzinfo is None:
            raise ValueError("start_time must be timezone-aware")
        if isinstance(self.total_supply, bool) or not isinstance(self.total_supply, int):
            raise ValueError("total_supply must be an integer")
        if not 0 < self.total_supply <= MAX_AMOUNT:
            raise ValueError(f"total_supply must be a positive uint256, got {self.total_supply}")
        if not self.payout_targets:
            raise ValueError("At least one payout target is required")

        if PayoutTarget.TOKEN in self.payout_targets:
            if not self.token_address:
                raise ValueError("Payout target 'token' requires token_address")
            object.__setattr__(self, "token_address", normalize_address(self.token_address))
        elif self.token_address:
            raise ValueError("token_address given but 'token' is not a payout target")

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DropConfig:
        """Build from the flat deployment-style mapping.

        Keys: controller, period_length_seconds, start_time, total_supply,
        drop_shares, drop_loot, token_address, recovery_scope,
        recovery_delay_seconds.
        """
        missing = [
            k for k in ("controller", "period_length_seconds", "start_time", "total_supply")
            if data.get(k) in (None, "")
        ]
        if missing:
            raise ValueError(f"Missing configuration keys: {', '.join(missing)}")

        token_address = data.get("token_address") or None
        targets = set()
        if _as_bool(data.get("drop_shares", False)):
            targets.add(PayoutTarget.SHARES)
        if _as_bool(data.get("drop_loot", False)):
            targets.add(PayoutTarget.LOOT)
        if token_address:
            targets.add(PayoutTarget.TOKEN)

        recovery = RecoveryPolicy(
            scope=RecoveryScope(data.get("recovery_scope") or RecoveryScope.DISTRIBUTION.value),
            delay=timedelta(seconds=int(data.get("recovery_delay_seconds") or 0)),
        )
        return cls(
            controller=str(data["controller"]),
            period_length=timedelta(seconds=int(data["period_length_seconds"])),
            start_time=parse_timestamp(data["start_time"]),
            total_supply=int(data["total_supply"]),
            payout_targets=frozenset(targets),
            token_address=token_address,
            recovery=recovery,
        )

    @classmethod
    def from_json(cls, path: Path) -> DropConfig:
        """Load from a JSON configuration file."""
        return cls.from_dict(json.loads(Path(path).read_text(encoding="utf-8")))

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> DropConfig:
        """Load from ``MERKLEDROP_*`` environment variables.

        ``env_file`` (or a ``.env`` found from the working directory) is
        read first; variables already set in the environment win.
        """
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()
        data = {
            key[len(ENV_PREFIX):].lower(): value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }
        return cls.from_dict(data)

    def to_dict(self) -> dict[str, Any]:
        return {
            "controller": self.controller,
            "period_length_seconds": int(self.period_length.total_seconds()),
            "start_time": self.start_time.isoformat(),
            "total_supply": self.total_supply,
            "drop_shares": PayoutTarget.SHARES in self.payout_targets,
            "drop_loot": PayoutTarget.LOOT in self.payout_targets,
            "token_address": self.token_address,
            "recovery_scope": self.recovery.scope.value,
            "recovery_delay_seconds": int(self.recovery.delay.total_seconds()),
        }

    def sorted_targets(self) -> list[PayoutTarget]:
        """Payout targets in a stable order (declaration order of the enum)."""
        return [t for t in PayoutTarget if t in self.payout_targets]


def parse_timestamp(value: Union[int, float, str, datetime]) -> datetime:
    """Parse unix seconds or ISO 8601 into an aware UTC datetime.

    Naive ISO strings are taken to be UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return datetime.fromtimestamp(int(text), tz=timezone.utc)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    else:
        raise ValueError(f"Unsupported timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)
