"""Merkle proof verification using sorted-pair hashing.

Each step orders the running hash and the sibling numerically (smaller
first) before hashing their concatenation, so proofs carry no left/right
markers. This is the convention of OpenZeppelin's ``MerkleProof`` and of
the common off-line drop tree builders; proofs from a tool using another
convention will not verify.

The verifier is stateless and may be called concurrently.
"""

from __future__ import annotations

from typing import Iterable

from merkledrop.crypto.hashing import BytesLike, keccak256, to_bytes32


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Hash two 32-byte nodes in ascending order.

    Equal-length big-endian byte strings compare the same way as the
    integers they encode, so byte comparison is the numeric ordering.
    """
    lo, hi = (a, b) if a <= b else (b, a)
    return keccak256(lo + hi)


def process_proof(leaf: BytesLike, proof: Iterable[BytesLike]) -> bytes:
    """Fold the proof into ``leaf`` and return the recomputed root."""
    current = to_bytes32(leaf)
    for sibling in proof:
        current = hash_pair(current, to_bytes32(sibling))
    return current


def verify(leaf: BytesLike, proof: Iterable[BytesLike], root: BytesLike) -> bool:
    """Return True if ``proof`` links ``leaf`` to ``root``.

    An empty proof is a single-entry tree: the leaf must equal the root.
    """
    return process_proof(leaf, proof) == to_bytes32(root)
