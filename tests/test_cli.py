"""Tests for the merkledrop CLI — proves CLI dispatches correctly."""

import json

from merkledrop.cli import build_parser, main
from merkledrop.crypto.hashing import keccak256
from merkledrop.distribution.engine import DistributionEngine
from merkledrop.distribution.ledger import InMemoryLedger
from merkledrop.persistence.event_log import EventLog

from conftest import ALICE, BOB, CONTROLLER, DropTree, _now, make_config


class TestCLIParsing:
    def test_leaf_command(self) -> None:
        args = build_parser().parse_args(["leaf", "--recipient", ALICE, "--amount", "600"])
        assert args.command == "leaf"
        assert args.amount == 600

    def test_verify_collects_repeated_proofs(self) -> None:
        args = build_parser().parse_args([
            "verify", "--leaf", "0x01", "--root", "0x02",
            "--proof", "0xaa", "--proof", "0xbb",
        ])
        assert args.proof == ["0xaa", "0xbb"]

    def test_status_default_events_path(self) -> None:
        args = build_parser().parse_args(["status"])
        assert args.events.name == "events.jsonl"
        assert args.config is None


class TestCLIExecution:
    def test_no_command_shows_help(self, capsys) -> None:
        assert main([]) == 0

    def test_leaf_prints_hash(self, capsys) -> None:
        tree = DropTree([(ALICE, 600)])
        assert main(["leaf", "--recipient", ALICE, "--amount", "600"]) == 0
        assert capsys.readouterr().out.strip() == "0x" + tree.leaf(ALICE, 600).hex()

    def test_leaf_rejects_bad_address(self, capsys) -> None:
        assert main(["leaf", "--recipient", "0x1234", "--amount", "600"]) == 1
        assert "Failed" in capsys.readouterr().err

    def test_verify_valid_proof(self, capsys) -> None:
        tree = DropTree([(ALICE, 600), (BOB, 500)])
        argv = ["verify", "--leaf", "0x" + tree.leaf(ALICE, 600).hex(),
                "--root", "0x" + tree.root.hex()]
        for sibling in tree.hex_proof(ALICE, 600):
            argv += ["--proof", sibling]
        assert main(argv) == 0
        result = json.loads(capsys.readouterr().out)
        assert result["valid"] is True
        assert result["computed_root"] == "0x" + tree.root.hex()

    def test_verify_invalid_proof(self, capsys) -> None:
        tree = DropTree([(ALICE, 600), (BOB, 500)])
        argv = ["verify", "--leaf", "0x" + tree.leaf(ALICE, 600).hex(),
                "--root", "0x" + keccak256(b"other").hex()]
        for sibling in tree.hex_proof(ALICE, 600):
            argv += ["--proof", sibling]
        assert main(argv) == 1
        assert json.loads(capsys.readouterr().out)["valid"] is False

    def test_status_replays_event_log(self, tmp_path, capsys) -> None:
        config = make_config()
        config_path = tmp_path / "drop.json"
        config_path.write_text(json.dumps(config.to_dict()))
        events_path = tmp_path / "events.jsonl"

        engine = DistributionEngine(config, InMemoryLedger(), event_log=EventLog(events_path))
        tree = DropTree([(ALICE, 600), (BOB, 300)])
        engine.add_period(tree.root, CONTROLLER, now=_now())
        engine.claim(0, ALICE, 600, tree.proof(ALICE, 600), now=_now())

        exit_code = main(["status", "--config", str(config_path), "--events", str(events_path)])
        assert exit_code == 0
        status = json.loads(capsys.readouterr().out)
        assert status["total_paid"] == 600
        assert status["remaining"] == 400
        assert status["period_count"] == 1

    def test_status_missing_event_log(self, tmp_path, capsys) -> None:
        config_path = tmp_path / "drop.json"
        config_path.write_text(json.dumps(make_config().to_dict()))
        exit_code = main([
            "status", "--config", str(config_path), "--events", str(tmp_path / "none.jsonl"),
        ])
        assert exit_code == 1
        assert "not found" in capsys.readouterr().err
        assert not (tmp_path / "none.jsonl").exists()
