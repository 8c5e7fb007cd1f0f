"""Shared fixtures and an independent Merkle tree builder.

The builder stands in for the off-line tool that publishes period roots
and per-recipient proofs. It deliberately shares no code with
``merkledrop.crypto``: leaves come from ``Web3.solidity_keccak`` and
nodes are hashed directly, so a passing round-trip proves the engine
matches the external contract rather than itself.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Sequence, Tuple

import pytest
from eth_account import Account
from web3 import Web3

from merkledrop.config import DropConfig, RecoveryPolicy
from merkledrop.distribution.engine import DistributionEngine
from merkledrop.distribution.ledger import InMemoryLedger
from merkledrop.models.distribution import PayoutTarget, RecoveryScope


def _address(name: str) -> str:
    return Account.from_key(Web3.keccak(text=name)).address


CONTROLLER = _address("controller")
ALICE = _address("alice")
BOB = _address("bob")
CAROL = _address("carol")
TREASURY = _address("treasury")

START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
PERIOD_LENGTH = timedelta(days=30)


def _now(offset: timedelta = timedelta(0)) -> datetime:
    return START + offset


class DropTree:
    """Sorted-pair Merkle tree over (address, amount) entries.

    Leaves are sorted; an odd node at the end of a layer is carried up
    unchanged (the OpenZeppelin-compatible layout).
    """

    def __init__(self, entries: Sequence[Tuple[str, int]]) -> None:
        if not entries:
            raise ValueError("Tree needs at least one entry")
        self._leaf_of: Dict[Tuple[str, int], bytes] = {
            (addr, amount): bytes(Web3.solidity_keccak(["address", "uint256"], [addr, amount]))
            for addr, amount in entries
        }
        self._layers: List[List[bytes]] = [sorted(self._leaf_of.values())]
        while len(self._layers[-1]) > 1:
            layer = self._layers[-1]
            nxt = []
            for i in range(0, len(layer), 2):
                if i + 1 < len(layer):
                    nxt.append(_node(layer[i], layer[i + 1]))
                else:
                    nxt.append(layer[i])
            self._layers.append(nxt)

    @property
    def root(self) -> bytes:
        return self._layers[-1][0]

    def leaf(self, addr: str, amount: int) -> bytes:
        return self._leaf_of[(addr, amount)]

    def proof(self, addr: str, amount: int) -> List[bytes]:
        idx = self._layers[0].index(self._leaf_of[(addr, amount)])
        path: List[bytes] = []
        for layer in self._layers[:-1]:
            sibling = idx ^ 1
            if sibling < len(layer):
                path.append(layer[sibling])
            idx //= 2
        return path

    def hex_proof(self, addr: str, amount: int) -> List[str]:
        return ["0x" + p.hex() for p in self.proof(addr, amount)]


def _node(a: bytes, b: bytes) -> bytes:
    lo, hi = sorted((a, b))
    return bytes(Web3.keccak(lo + hi))


def make_config(
    total_supply: int = 1000,
    targets: Sequence[PayoutTarget] = (PayoutTarget.LOOT,),
    token_address: str | None = None,
    recovery_scope: RecoveryScope = RecoveryScope.DISTRIBUTION,
    recovery_delay: timedelta = timedelta(days=60),
) -> DropConfig:
    return DropConfig(
        controller=CONTROLLER,
        period_length=PERIOD_LENGTH,
        start_time=START,
        total_supply=total_supply,
        payout_targets=frozenset(targets),
        token_address=token_address,
        recovery=RecoveryPolicy(scope=recovery_scope, delay=recovery_delay),
    )


@pytest.fixture
def config() -> DropConfig:
    return make_config()


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger()


@pytest.fixture
def engine(config: DropConfig, ledger: InMemoryLedger) -> DistributionEngine:
    return DistributionEngine(config, ledger)


@pytest.fixture
def ab_tree() -> DropTree:
    """Two-entry period from the reference scenario: A=600, B=500."""
    return DropTree([(ALICE, 600), (BOB, 500)])
