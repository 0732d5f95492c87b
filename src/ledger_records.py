"""
RevLedger - Ledger Records

Record types persisted by the ledger record store:
- Distributor: the deployment-wide singleton holding the authority and totals
- CollectionConfig: one per registered collection
- DistributionEvent: append-only audit trail, one per committed distribution

Records are plain dataclasses that serialize to JSON-compatible dicts.
Store keys are derived from semantic identifiers so a lookup never needs
a scan and two collections can never collide.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ledger_errors import ArithmeticOverflowError, InvalidInputError

# =============================================================================
# Constants
# =============================================================================

U64_MAX = 2**64 - 1

DISTRIBUTOR_KEY = "distributor"
COLLECTION_KEY_PREFIX = "collection:"

MAX_COLLECTION_ID_LENGTH = 128
MAX_PAYOUT_ENDPOINT_LENGTH = 256


def collection_key(collection_id: str) -> str:
    """Store key for a collection's configuration record."""
    return f"{COLLECTION_KEY_PREFIX}{collection_id}"


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


# =============================================================================
# Unsigned 64-bit helpers
# =============================================================================


def require_u64(value: Any, field_name: str) -> int:
    """
    Validate that a value is an unsigned 64-bit integer.

    Raises:
        InvalidInputError: not an integer, or negative
        ArithmeticOverflowError: larger than U64_MAX
    """
    # bool is an int subclass; True is not an amount
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{field_name} must be an integer", field=field_name)
    if value < 0:
        raise InvalidInputError(f"{field_name} must not be negative", field=field_name)
    if value > U64_MAX:
        raise ArithmeticOverflowError(
            f"{field_name} exceeds the unsigned 64-bit range",
            details={"field": field_name, "value": str(value)},
        )
    return value


def checked_add(left: int, right: int, field_name: str = "value") -> int:
    """Add two u64 values, failing instead of exceeding U64_MAX."""
    total = left + right
    if total > U64_MAX:
        raise ArithmeticOverflowError(
            f"{field_name} would overflow",
            details={"field": field_name, "left": str(left), "right": str(right)},
            action="update_aggregates",
        )
    return total


# =============================================================================
# Enums
# =============================================================================


class RevenueModel(Enum):
    """Split algorithm selected by a collection."""

    EQUAL = "equal"  # Equal split among all holders
    WEIGHTED = "weighted"  # Weighted by per-holder weights
    CREATOR_SPLIT = "creator_split"  # Fixed share to creator, rest to holders

    @classmethod
    def parse(cls, value: "RevenueModel | str") -> "RevenueModel":
        """Accept an enum member, its value, or its name ("Equal", "CreatorSplit")."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value.strip():
            raise InvalidInputError("revenue_model must be a non-empty string", field="revenue_model")

        normalized = value.strip().replace("-", "_")
        for member in cls:
            if normalized.lower() == member.value:
                return member
            if normalized.lower().replace("_", "") == member.value.replace("_", ""):
                return member
        raise InvalidInputError(f"Unknown revenue_model: {value}", field="revenue_model")


# =============================================================================
# Records
# =============================================================================


@dataclass
class Distributor:
    """Deployment-wide distributor state."""

    authority: str
    total_distributions: int = 0
    total_amount_distributed: int = 0
    created_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "authority": self.authority,
            "total_distributions": self.total_distributions,
            "total_amount_distributed": self.total_amount_distributed,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Distributor":
        return cls(
            authority=data["authority"],
            total_distributions=int(data.get("total_distributions", 0)),
            total_amount_distributed=int(data.get("total_amount_distributed", 0)),
            created_at=data.get("created_at") or _now_iso(),
        )


@dataclass
class CollectionConfig:
    """Distribution settings and aggregates for one collection."""

    collection_id: str
    payout_endpoint: str
    revenue_model: RevenueModel = RevenueModel.EQUAL
    total_distributed: int = 0
    distribution_count: int = 0
    is_active: bool = True
    created_at: str = field(default_factory=_now_iso)
    updated_at: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "collection_id": self.collection_id,
            "payout_endpoint": self.payout_endpoint,
            "revenue_model": self.revenue_model.value,
            "total_distributed": self.total_distributed,
            "distribution_count": self.distribution_count,
            "is_active": self.is_active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CollectionConfig":
        return cls(
            collection_id=data["collection_id"],
            payout_endpoint=data.get("payout_endpoint", ""),
            revenue_model=RevenueModel.parse(data.get("revenue_model", RevenueModel.EQUAL.value)),
            total_distributed=int(data.get("total_distributed", 0)),
            distribution_count=int(data.get("distribution_count", 0)),
            is_active=bool(data.get("is_active", True)),
            created_at=data.get("created_at") or _now_iso(),
            updated_at=data.get("updated_at") or _now_iso(),
        )


@dataclass(frozen=True)
class DistributionEvent:
    """Immutable audit record of one committed distribution."""

    sequence: int
    collection_id: str
    gross_amount: int
    holder_count: int
    amount_per_holder: int
    timestamp: int
    fee: int = 0
    distributable: int = 0
    remainder: int = 0
    revenue_model: str = RevenueModel.EQUAL.value

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "sequence": self.sequence,
            "collection_id": self.collection_id,
            "gross_amount": self.gross_amount,
            "holder_count": self.holder_count,
            "amount_per_holder": self.amount_per_holder,
            "timestamp": self.timestamp,
            "fee": self.fee,
            "distributable": self.distributable,
            "remainder": self.remainder,
            "revenue_model": self.revenue_model,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DistributionEvent":
        return cls(
            sequence=int(data["sequence"]),
            collection_id=data["collection_id"],
            gross_amount=int(data["gross_amount"]),
            holder_count=int(data["holder_count"]),
            amount_per_holder=int(data["amount_per_holder"]),
            timestamp=int(data["timestamp"]),
            fee=int(data.get("fee", 0)),
            distributable=int(data.get("distributable", 0)),
            remainder=int(data.get("remainder", 0)),
            revenue_model=data.get("revenue_model", RevenueModel.EQUAL.value),
        )
