"""
RevLedger - Configuration

Environment Variables:
    LEDGER_FEE_BPS=250                  Platform fee in basis points
    LEDGER_TREASURY_ACCOUNT=treasury    Account distributions are paid from
    LEDGER_FEE_ACCOUNT=platform-fees    Account receiving the platform fee
    LEDGER_REMAINDER_POLICY=retain      retain | last_holder
    LEDGER_TREASURY_BALANCE=0           Opening treasury balance (in-memory transfers)
    LEDGER_HISTORY_LIMIT=10             Default page size for distribution history
    STORAGE_BACKEND=json                json | postgresql | memory
    LEDGER_DATA_FILE=ledger_data.json   JSON backend file
    DATABASE_URL=                       PostgreSQL connection URL
"""

import os
from dataclasses import dataclass
from typing import Any

from ledger_errors import InvalidInputError
from split_calculator import BPS_DENOMINATOR, DEFAULT_FEE_BPS, RemainderPolicy

__version__ = "0.1.0"


def _env_int(name: str, default: int, field_name: str) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidInputError(f"{name} must be an integer, got {raw!r}", field=field_name) from None


@dataclass
class LedgerConfig:
    """Runtime configuration for the distribution ledger."""

    # Fees and accounts
    fee_bps: int = DEFAULT_FEE_BPS
    treasury_account: str = "treasury"
    fee_account: str = "platform-fees"
    remainder_policy: RemainderPolicy = RemainderPolicy.RETAIN
    treasury_opening_balance: int = 0

    # Queries
    history_limit: int = 10

    # Storage
    storage_backend: str = "json"
    data_file: str = "ledger_data.json"
    database_url: str | None = None

    @classmethod
    def from_env(cls) -> "LedgerConfig":
        """
        Create configuration from environment variables.

        Raises:
            InvalidInputError: a numeric variable is not an integer, or the
                remainder policy is unknown
        """
        return cls(
            fee_bps=_env_int("LEDGER_FEE_BPS", DEFAULT_FEE_BPS, "fee_bps"),
            treasury_account=os.getenv("LEDGER_TREASURY_ACCOUNT", "treasury"),
            fee_account=os.getenv("LEDGER_FEE_ACCOUNT", "platform-fees"),
            remainder_policy=RemainderPolicy.parse(os.getenv("LEDGER_REMAINDER_POLICY", "retain")),
            treasury_opening_balance=_env_int("LEDGER_TREASURY_BALANCE", 0, "treasury_opening_balance"),
            history_limit=_env_int("LEDGER_HISTORY_LIMIT", 10, "history_limit"),
            storage_backend=os.getenv("STORAGE_BACKEND", "json").lower(),
            data_file=os.getenv("LEDGER_DATA_FILE", "ledger_data.json"),
            database_url=os.getenv("DATABASE_URL") or None,
        )

    def validate(self) -> "LedgerConfig":
        """
        Check value ranges.

        Raises:
            InvalidInputError: on the first invalid setting
        """
        if not 0 <= self.fee_bps <= BPS_DENOMINATOR:
            raise InvalidInputError(
                f"fee_bps must be between 0 and {BPS_DENOMINATOR}", field="fee_bps"
            )
        if not self.treasury_account:
            raise InvalidInputError("treasury_account must be set", field="treasury_account")
        if not self.fee_account:
            raise InvalidInputError("fee_account must be set", field="fee_account")
        if self.fee_account == self.treasury_account:
            raise InvalidInputError(
                "fee_account must differ from treasury_account", field="fee_account"
            )
        if self.treasury_opening_balance < 0:
            raise InvalidInputError(
                "treasury_opening_balance must not be negative", field="treasury_opening_balance"
            )
        if self.history_limit < 1:
            raise InvalidInputError("history_limit must be positive", field="history_limit")
        self.remainder_policy = RemainderPolicy.parse(self.remainder_policy)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Settings safe to expose (no connection strings)."""
        return {
            "fee_bps": self.fee_bps,
            "treasury_account": self.treasury_account,
            "fee_account": self.fee_account,
            "remainder_policy": self.remainder_policy.value,
            "history_limit": self.history_limit,
            "storage_backend": self.storage_backend,
        }
