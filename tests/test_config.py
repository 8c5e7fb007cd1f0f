"""Tests for DropConfig loading and validation."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from merkledrop.config import DropConfig, RecoveryPolicy, parse_timestamp
from merkledrop.models.distribution import PayoutTarget, RecoveryScope

from conftest import CONTROLLER, START, TREASURY, make_config

ENV_KEYS = (
    "MERKLEDROP_CONTROLLER",
    "MERKLEDROP_PERIOD_LENGTH_SECONDS",
    "MERKLEDROP_START_TIME",
    "MERKLEDROP_TOTAL_SUPPLY",
    "MERKLEDROP_DROP_SHARES",
    "MERKLEDROP_DROP_LOOT",
    "MERKLEDROP_TOKEN_ADDRESS",
    "MERKLEDROP_RECOVERY_SCOPE",
    "MERKLEDROP_RECOVERY_DELAY_SECONDS",
)


def _deployment(**overrides) -> dict:
    data = {
        "controller": CONTROLLER.lower(),
        "period_length_seconds": 2592000,
        "start_time": "2026-03-01T12:00:00Z",
        "total_supply": "1000",
        "drop_shares": False,
        "drop_loot": True,
    }
    data.update(overrides)
    return data


@pytest.fixture
def clean_env(monkeypatch):
    """Clear MERKLEDROP_* and restore them after the test, including keys a .env sets."""
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


class TestFromDict:
    def test_deployment_mapping(self) -> None:
        config = DropConfig.from_dict(_deployment())
        assert config.controller == CONTROLLER
        assert config.period_length == timedelta(days=30)
        assert config.start_time == START
        assert config.total_supply == 1000
        assert config.payout_targets == frozenset({PayoutTarget.LOOT})
        assert config.recovery == RecoveryPolicy()

    def test_token_address_enables_token_target(self) -> None:
        config = DropConfig.from_dict(
            _deployment(drop_shares="true", token_address=TREASURY.lower())
        )
        assert config.sorted_targets() == [
            PayoutTarget.SHARES, PayoutTarget.LOOT, PayoutTarget.TOKEN,
        ]
        assert config.token_address == TREASURY

    def test_recovery_policy(self) -> None:
        config = DropConfig.from_dict(
            _deployment(recovery_scope="period", recovery_delay_seconds="86400")
        )
        assert config.recovery.scope == RecoveryScope.PERIOD
        assert config.recovery.delay == timedelta(days=1)

    def test_missing_keys(self) -> None:
        data = _deployment()
        del data["controller"]
        data["total_supply"] = ""
        with pytest.raises(ValueError, match="controller, total_supply"):
            DropConfig.from_dict(data)

    def test_no_payout_target(self) -> None:
        with pytest.raises(ValueError, match="payout target"):
            DropConfig.from_dict(_deployment(drop_loot=False))

    def test_to_dict_round_trip(self) -> None:
        config = make_config(
            targets=(PayoutTarget.SHARES, PayoutTarget.TOKEN),
            token_address=TREASURY,
            recovery_scope=RecoveryScope.PERIOD,
        )
        assert DropConfig.from_dict(config.to_dict()) == config


class TestLoaders:
    def test_from_json(self, tmp_path) -> None:
        path = tmp_path / "drop.json"
        path.write_text(json.dumps(_deployment()))
        assert DropConfig.from_json(path) == DropConfig.from_dict(_deployment())

    def test_from_env_variables(self, clean_env, tmp_path) -> None:
        clean_env.setenv("MERKLEDROP_CONTROLLER", CONTROLLER)
        clean_env.setenv("MERKLEDROP_PERIOD_LENGTH_SECONDS", "3600")
        clean_env.setenv("MERKLEDROP_START_TIME", str(int(START.timestamp())))
        clean_env.setenv("MERKLEDROP_TOTAL_SUPPLY", "5000")
        clean_env.setenv("MERKLEDROP_DROP_SHARES", "yes")
        config = DropConfig.from_env(env_file=tmp_path / "absent.env")
        assert config.period_length == timedelta(hours=1)
        assert config.start_time == START
        assert config.total_supply == 5000
        assert config.payout_targets == frozenset({PayoutTarget.SHARES})

    def test_from_env_file(self, clean_env, tmp_path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(
            f"MERKLEDROP_CONTROLLER={CONTROLLER}\n"
            "MERKLEDROP_PERIOD_LENGTH_SECONDS=60\n"
            "MERKLEDROP_START_TIME=2026-03-01T12:00:00+00:00\n"
            "MERKLEDROP_TOTAL_SUPPLY=42\n"
            "MERKLEDROP_DROP_LOOT=1\n"
        )
        clean_env.setenv("MERKLEDROP_TOTAL_SUPPLY", "99")
        config = DropConfig.from_env(env_file=env_file)
        assert config.total_supply == 99
        assert config.period_length == timedelta(minutes=1)
        assert config.payout_targets == frozenset({PayoutTarget.LOOT})


class TestValidation:
    def test_naive_start_time_rejected(self) -> None:
        with pytest.raises(ValueError, match="timezone-aware"):
            DropConfig(
                controller=CONTROLLER,
                period_length=timedelta(days=1),
                start_time=datetime(2026, 3, 1),
                total_supply=10,
                payout_targets=frozenset({PayoutTarget.LOOT}),
            )

    @pytest.mark.parametrize("supply", [0, -1, 2**256, True])
    def test_bad_total_supply(self, supply) -> None:
        with pytest.raises(ValueError, match="total_supply"):
            make_config(total_supply=supply)

    def test_token_target_needs_address(self) -> None:
        with pytest.raises(ValueError, match="token_address"):
            make_config(targets=(PayoutTarget.TOKEN,))

    def test_address_without_token_target(self) -> None:
        with pytest.raises(ValueError, match="not a payout target"):
            make_config(token_address=TREASURY)

    def test_bad_controller(self) -> None:
        with pytest.raises(ValueError, match="Invalid recipient address"):
            DropConfig.from_dict(_deployment(controller="dao.eth"))

    def test_negative_recovery_delay(self) -> None:
        with pytest.raises(ValueError, match="negative"):
            RecoveryPolicy(delay=timedelta(seconds=-1))


class TestParseTimestamp:
    @pytest.mark.parametrize(
        "value",
        [
            int(START.timestamp()),
            str(int(START.timestamp())),
            "2026-03-01T12:00:00Z",
            "2026-03-01T12:00:00",
            "2026-03-01T14:00:00+02:00",
            START,
        ],
    )
    def test_equivalent_forms(self, value) -> None:
        assert parse_timestamp(value) == START

    def test_result_is_aware(self) -> None:
        assert parse_timestamp("2026-03-01T12:00:00").tzinfo == timezone.utc

    def test_unsupported_type(self) -> None:
        with pytest.raises(ValueError):
            parse_timestamp(None)
