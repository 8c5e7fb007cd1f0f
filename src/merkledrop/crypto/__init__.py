"""Cryptographic primitives — Keccak-256 hashing, leaf encoding, proof verification."""

from merkledrop.crypto.hashing import keccak256, leaf_hash, normalize_address
from merkledrop.crypto.merkle import process_proof, verify

__all__ = ["keccak256", "leaf_hash", "normalize_address", "process_proof", "verify"]
