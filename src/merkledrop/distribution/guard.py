"""Controller guard — the capability check for privileged operations.

The engine never compares identities itself. It asks an injected guard,
so the authorization policy (a fixed DAO address, a role registry, a
multisig check) can be swapped without touching distribution logic.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from merkledrop.crypto.hashing import normalize_address


@runtime_checkable
class ControllerGuard(Protocol):
    """Decides who may add periods and trigger recovery."""

    def is_controller(self, identity: str) -> bool:
        ...


class StaticControllerGuard:
    """Authorizes exactly one address (case-insensitive, checksum-normalized)."""

    def __init__(self, controller: str) -> None:
        self._controller = normalize_address(controller)

    @property
    def controller(self) -> str:
        return self._controller

    def is_controller(self, identity: str) -> bool:
        try:
            return normalize_address(identity) == self._controller
        except ValueError:
            return False
