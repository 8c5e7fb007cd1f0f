"""Core data models for merkledrop."""

from merkledrop.models.distribution import (
    ClaimRecord,
    PayoutTarget,
    Period,
    RecoveryRecord,
    RecoveryScope,
)

__all__ = [
    "ClaimRecord",
    "PayoutTarget",
    "Period",
    "RecoveryRecord",
    "RecoveryScope",
]
