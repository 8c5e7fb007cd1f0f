"""Hashing primitive and leaf construction.

Keccak-256 (the Ethereum variant, not NIST SHA3-256) is the only hash the
drop uses. Leaves and internal nodes are both hashed with it, and off-line
tree builders must use the same algorithm for their proofs to verify.

Leaf encoding matches Solidity's ``abi.encodePacked(address, uint256)``:

    leaf = keccak256(recipient[20 bytes] || amount[32 bytes, big-endian])
"""

from __future__ import annotations

from typing import Union

from eth_abi.packed import encode_packed
from web3 import Web3

HASH_LENGTH = 32
MAX_AMOUNT = 2**256 - 1

BytesLike = Union[bytes, bytearray, str]


def keccak256(data: bytes) -> bytes:
    """Return the 32-byte Keccak-256 digest of ``data``."""
    return bytes(Web3.keccak(primitive=bytes(data)))


def normalize_address(identity: str) -> str:
    """Return the checksummed form of an Ethereum address.

    Raises ValueError for anything that is not a 20-byte hex address
    (including mixed-case input with a bad checksum).
    """
    if not isinstance(identity, str) or not Web3.is_address(identity):
        raise ValueError(f"Invalid recipient address: {identity!r}")
    checksummed = Web3.to_checksum_address(identity)
    body = identity[-40:]
    if body not in (body.lower(), body.upper()) and body != checksummed[2:]:
        raise ValueError(f"Invalid recipient address checksum: {identity!r}")
    return checksummed


def validate_amount(amount: int) -> int:
    """Amounts are positive uint256 integers. No floats, no Decimals."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"Amount must be an integer, got {type(amount).__name__}")
    if amount <= 0:
        raise ValueError(f"Amount must be positive, got {amount}")
    if amount > MAX_AMOUNT:
        raise ValueError(f"Amount exceeds uint256: {amount}")
    return amount


def to_bytes32(value: BytesLike) -> bytes:
    """Coerce a root, leaf, or proof node into 32 raw bytes.

    Accepts raw bytes or a hex string with or without the ``0x`` prefix.
    """
    if isinstance(value, str):
        text = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            raw = bytes.fromhex(text)
        except ValueError as exc:
            raise ValueError(f"Invalid hex hash: {value!r}") from exc
    elif isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    else:
        raise ValueError(f"Expected bytes or hex string, got {type(value).__name__}")
    if len(raw) != HASH_LENGTH:
        raise ValueError(f"Hash must be {HASH_LENGTH} bytes, got {len(raw)}")
    return raw


def encode_leaf(recipient: str, amount: int) -> bytes:
    """Packed encoding of one (recipient, amount) entry."""
    address = normalize_address(recipient)
    validate_amount(amount)
    return encode_packed(["address", "uint256"], [address, amount])


def leaf_hash(recipient: str, amount: int) -> bytes:
    """Compute the Merkle leaf for a (recipient, amount) entry."""
    return keccak256(encode_leaf(recipient, amount))
