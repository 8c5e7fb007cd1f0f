"""merkledrop CLI — operator tooling for a Merkle drop.

Usage:
    python -m merkledrop.cli leaf --recipient 0xabc... --amount 600
    python -m merkledrop.cli verify --leaf 0x... --root 0x... --proof 0x... --proof 0x...
    python -m merkledrop.cli status --config drop.json --events data/events.jsonl

Without ``--config``, ``status`` reads ``MERKLEDROP_*`` variables (and a
``.env`` file, if present).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from merkledrop.config import DropConfig
from merkledrop.crypto.hashing import leaf_hash
from merkledrop.crypto.merkle import process_proof, verify
from merkledrop.distribution.engine import DistributionEngine
from merkledrop.distribution.ledger import InMemoryLedger
from merkledrop.errors import DistributionError
from merkledrop.persistence.event_log import EventLog


DEFAULT_EVENTS = Path("data") / "events.jsonl"


def cmd_leaf(args: argparse.Namespace) -> int:
    try:
        leaf = leaf_hash(args.recipient, args.amount)
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    print("0x" + leaf.hex())
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    proof = args.proof or []
    try:
        ok = verify(args.leaf, proof, args.root)
        computed = process_proof(args.leaf, proof)
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    print(json.dumps({"valid": ok, "computed_root": "0x" + computed.hex()}, indent=2))
    return 0 if ok else 1


def cmd_status(args: argparse.Namespace) -> int:
    """Replay the event log and print distribution status."""
    if not args.events.exists():
        print(f"Failed: event log not found: {args.events}", file=sys.stderr)
        return 1
    try:
        config = DropConfig.from_json(args.config) if args.config else DropConfig.from_env()
        event_log = EventLog(storage_path=args.events)
        engine = DistributionEngine.restore(config, InMemoryLedger(), event_log)
    except (ValueError, DistributionError) as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    print(json.dumps(engine.status(), indent=2, default=str))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="merkledrop",
        description="Merkle drop distribution engine CLI",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    # leaf
    p_leaf = sub.add_parser("leaf", help="Compute the leaf hash for an entry")
    p_leaf.add_argument("--recipient", required=True, help="Recipient address")
    p_leaf.add_argument("--amount", required=True, type=int, help="Amount in base units")

    # verify
    p_verify = sub.add_parser("verify", help="Verify a Merkle proof")
    p_verify.add_argument("--leaf", required=True, help="Leaf hash (hex)")
    p_verify.add_argument("--root", required=True, help="Period root (hex)")
    p_verify.add_argument(
        "--proof", action="append", help="Sibling hash (hex); repeat in proof order",
    )

    # status
    p_status = sub.add_parser("status", help="Replay the event log and show status")
    p_status.add_argument("--config", type=Path, help="Path to JSON configuration")
    p_status.add_argument(
        "--events", type=Path, default=DEFAULT_EVENTS,
        help=f"Path to the JSONL event log (default: {DEFAULT_EVENTS})",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    commands = {
        "leaf": cmd_leaf,
        "verify": cmd_verify,
        "status": cmd_status,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
