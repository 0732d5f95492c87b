"""
Tests for ledger configuration.
"""

import sys

sys.path.insert(0, "src")

import pytest

from ledger_config import LedgerConfig
from ledger_errors import InvalidInputError
from split_calculator import RemainderPolicy

ENV_VARS = [
    "LEDGER_FEE_BPS",
    "LEDGER_TREASURY_ACCOUNT",
    "LEDGER_FEE_ACCOUNT",
    "LEDGER_REMAINDER_POLICY",
    "LEDGER_TREASURY_BALANCE",
    "LEDGER_HISTORY_LIMIT",
    "LEDGER_DATA_FILE",
    "DATABASE_URL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("STORAGE_BACKEND", raising=False)
    return monkeypatch


class TestDefaults:
    def test_defaults(self):
        config = LedgerConfig()

        assert config.fee_bps == 250
        assert config.treasury_account == "treasury"
        assert config.fee_account == "platform-fees"
        assert config.remainder_policy is RemainderPolicy.RETAIN
        assert config.history_limit == 10

    def test_from_env_defaults(self, clean_env):
        config = LedgerConfig.from_env()

        assert config.fee_bps == 250
        assert config.storage_backend == "json"
        assert config.database_url is None


class TestFromEnv:
    def test_reads_environment(self, clean_env):
        clean_env.setenv("LEDGER_FEE_BPS", "100")
        clean_env.setenv("LEDGER_TREASURY_ACCOUNT", "vault")
        clean_env.setenv("LEDGER_FEE_ACCOUNT", "fees")
        clean_env.setenv("LEDGER_REMAINDER_POLICY", "last_holder")
        clean_env.setenv("LEDGER_TREASURY_BALANCE", "5000")
        clean_env.setenv("LEDGER_HISTORY_LIMIT", "25")
        clean_env.setenv("STORAGE_BACKEND", "PostgreSQL")
        clean_env.setenv("DATABASE_URL", "postgresql://user:secret@db/ledger")

        config = LedgerConfig.from_env()

        assert config.fee_bps == 100
        assert config.treasury_account == "vault"
        assert config.fee_account == "fees"
        assert config.remainder_policy is RemainderPolicy.LAST_HOLDER
        assert config.treasury_opening_balance == 5000
        assert config.history_limit == 25
        assert config.storage_backend == "postgresql"
        assert config.database_url == "postgresql://user:secret@db/ledger"

    @pytest.mark.parametrize(
        "name,field",
        [
            ("LEDGER_FEE_BPS", "fee_bps"),
            ("LEDGER_TREASURY_BALANCE", "treasury_opening_balance"),
            ("LEDGER_HISTORY_LIMIT", "history_limit"),
        ],
    )
    def test_malformed_integer(self, clean_env, name, field):
        clean_env.setenv(name, "2.5%")

        with pytest.raises(InvalidInputError) as exc_info:
            LedgerConfig.from_env()
        assert exc_info.value.field == field

    def test_blank_integer_uses_default(self, clean_env):
        clean_env.setenv("LEDGER_FEE_BPS", "  ")
        assert LedgerConfig.from_env().fee_bps == 250

    def test_unknown_remainder_policy(self, clean_env):
        clean_env.setenv("LEDGER_REMAINDER_POLICY", "carry_forward")
        with pytest.raises(InvalidInputError):
            LedgerConfig.from_env()


class TestValidate:
    @pytest.mark.parametrize(
        "overrides,field",
        [
            ({"fee_bps": -1}, "fee_bps"),
            ({"fee_bps": 10_001}, "fee_bps"),
            ({"treasury_account": ""}, "treasury_account"),
            ({"fee_account": ""}, "fee_account"),
            ({"fee_account": "treasury"}, "fee_account"),
            ({"treasury_opening_balance": -5}, "treasury_opening_balance"),
            ({"history_limit": 0}, "history_limit"),
        ],
    )
    def test_invalid_settings(self, overrides, field):
        with pytest.raises(InvalidInputError) as exc_info:
            LedgerConfig(**overrides).validate()
        assert exc_info.value.field == field

    def test_valid_returns_self(self):
        config = LedgerConfig(fee_bps=0)
        assert config.validate() is config

    def test_string_policy_is_parsed(self):
        config = LedgerConfig(remainder_policy="last_holder").validate()
        assert config.remainder_policy is RemainderPolicy.LAST_HOLDER


def test_to_dict_hides_connection_string():
    data = LedgerConfig(database_url="postgresql://user:secret@db/ledger").to_dict()

    assert "database_url" not in data
    assert data["remainder_policy"] == "retain"
