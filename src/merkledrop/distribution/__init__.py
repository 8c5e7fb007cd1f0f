"""Distribution subsystem — period store, engine, and its external boundaries."""

from merkledrop.distribution.engine import DistributionEngine
from merkledrop.distribution.guard import ControllerGuard, StaticControllerGuard
from merkledrop.distribution.ledger import ExternalLedger, InMemoryLedger
from merkledrop.distribution.period_store import PeriodStore

__all__ = [
    "ControllerGuard",
    "DistributionEngine",
    "ExternalLedger",
    "InMemoryLedger",
    "PeriodStore",
    "StaticControllerGuard",
]
