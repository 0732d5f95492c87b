"""
RevLedger - Distribution Calculator

Pure functions that turn a gross payment into a platform fee and a list of
per-account allocations. Nothing here touches storage or transfers.

Fee and shares use integer floor division:
    fee           = floor(gross * fee_bps / 10000)
    distributable = gross - fee
    per_holder    = floor(distributable / holder_count)

Whatever floor division leaves over is the remainder. Under the default
RETAIN policy it is not paid out; LAST_HOLDER adds it to the final allocation.

Each RevenueModel has one SplitStrategy. Strategies share a single
split(gross_amount, context, fee_bps) capability; models that need more input
than a holder list (weights, creator share) read it from the HolderContext.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ledger_errors import DivisionByZeroError, InvalidInputError, NotImplementedModelError
from ledger_records import RevenueModel, require_u64

# =============================================================================
# Constants
# =============================================================================

BPS_DENOMINATOR = 10_000
DEFAULT_FEE_BPS = 250  # 2.5%


class RemainderPolicy(Enum):
    """What happens to the floor-division remainder."""

    RETAIN = "retain"  # Left undistributed in the treasury
    LAST_HOLDER = "last_holder"  # Added to the last allocation

    @classmethod
    def parse(cls, value: "RemainderPolicy | str") -> "RemainderPolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise InvalidInputError(
                f"Unknown remainder policy: {value}", field="remainder_policy"
            ) from None


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class Allocation:
    """Amount owed to one account."""

    account: str
    amount: int
    role: str = "holder"  # holder or creator

    def to_dict(self) -> dict[str, Any]:
        return {"account": self.account, "amount": self.amount, "role": self.role}


@dataclass
class HolderContext:
    """Everything a strategy may need besides the gross amount."""

    holders: Sequence[str]
    weights: Sequence[int] | None = None
    creator_account: str | None = None
    creator_share_bps: int | None = None


@dataclass
class SplitResult:
    """Outcome of splitting one gross payment."""

    gross_amount: int
    fee: int
    distributable: int
    amount_per_holder: int
    remainder: int
    allocations: list[Allocation] = field(default_factory=list)

    @property
    def holder_count(self) -> int:
        return sum(1 for a in self.allocations if a.role == "holder")

    @property
    def allocated_total(self) -> int:
        return sum(a.amount for a in self.allocations)

    def to_dict(self) -> dict[str, Any]:
        return {
            "gross_amount": self.gross_amount,
            "fee": self.fee,
            "distributable": self.distributable,
            "amount_per_holder": self.amount_per_holder,
            "remainder": self.remainder,
            "allocations": [a.to_dict() for a in self.allocations],
        }


# =============================================================================
# Core Arithmetic
# =============================================================================


def _validate_bps(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{field_name} must be an integer", field=field_name)
    if value < 0 or value > BPS_DENOMINATOR:
        raise InvalidInputError(
            f"{field_name} must be between 0 and {BPS_DENOMINATOR}", field=field_name
        )
    return value


def compute_fee(gross_amount: int, fee_bps: int = DEFAULT_FEE_BPS) -> tuple[int, int]:
    """
    Deduct the platform fee from a gross amount.

    Returns:
        Tuple of (fee, distributable)
    """
    require_u64(gross_amount, "gross_amount")
    _validate_bps(fee_bps, "fee_bps")
    fee = gross_amount * fee_bps // BPS_DENOMINATOR
    return fee, gross_amount - fee


def compute_split(
    gross_amount: int,
    holder_count: int,
    fee_bps: int = DEFAULT_FEE_BPS,
) -> tuple[int, int, int]:
    """
    Compute the equal-split figures for a gross payment.

    Args:
        gross_amount: Incoming amount in the smallest unit (u64)
        holder_count: Number of holders sharing the distributable amount
        fee_bps: Platform fee in basis points

    Returns:
        Tuple of (fee, distributable, per_holder)

    Raises:
        DivisionByZeroError: holder_count is zero
        ArithmeticOverflowError: gross_amount exceeds the u64 range
        InvalidInputError: negative or non-integer inputs, fee_bps out of range
    """
    require_u64(holder_count, "holder_count")
    if holder_count == 0:
        raise DivisionByZeroError()

    fee, distributable = compute_fee(gross_amount, fee_bps)
    per_holder = distributable // holder_count
    return fee, distributable, per_holder


def apply_remainder_policy(result: SplitResult, policy: RemainderPolicy) -> SplitResult:
    """Move the remainder onto the last holder allocation when asked to."""
    if policy is RemainderPolicy.RETAIN or result.remainder == 0:
        return result

    for i in range(len(result.allocations) - 1, -1, -1):
        allocation = result.allocations[i]
        if allocation.role == "holder":
            result.allocations[i] = Allocation(
                account=allocation.account,
                amount=allocation.amount + result.remainder,
                role=allocation.role,
            )
            result.remainder = 0
            break
    return result


# =============================================================================
# Strategies
# =============================================================================


class SplitStrategy(ABC):
    """Split capability implemented once per revenue model."""

    model: RevenueModel

    @abstractmethod
    def split(self, gross_amount: int, context: HolderContext, fee_bps: int) -> SplitResult:
        """Allocate a gross payment across the accounts in context."""


class EqualSplit(SplitStrategy):
    """Every holder receives the same floor share."""

    model = RevenueModel.EQUAL

    def split(self, gross_amount: int, context: HolderContext, fee_bps: int) -> SplitResult:
        holders = list(context.holders)
        fee, distributable, per_holder = compute_split(gross_amount, len(holders), fee_bps)
        return SplitResult(
            gross_amount=gross_amount,
            fee=fee,
            distributable=distributable,
            amount_per_holder=per_holder,
            remainder=distributable - per_holder * len(holders),
            allocations=[Allocation(account=h, amount=per_holder) for h in holders],
        )


class WeightedSplit(SplitStrategy):
    """Holder i receives floor(distributable * w_i / sum(w))."""

    model = RevenueModel.WEIGHTED

    def split(self, gross_amount: int, context: HolderContext, fee_bps: int) -> SplitResult:
        holders = list(context.holders)
        if not holders:
            raise DivisionByZeroError()
        if context.weights is None:
            raise InvalidInputError("weights are required for the weighted model", field="weights")

        weights = list(context.weights)
        if len(weights) != len(holders):
            raise InvalidInputError(
                f"Expected {len(holders)} weights, got {len(weights)}", field="weights"
            )
        for weight in weights:
            require_u64(weight, "weights")
            if weight == 0:
                raise InvalidInputError("weights must be positive", field="weights")

        fee, distributable = compute_fee(gross_amount, fee_bps)
        total_weight = sum(weights)
        allocations = [
            Allocation(account=h, amount=distributable * w // total_weight)
            for h, w in zip(holders, weights, strict=True)
        ]
        allocated = sum(a.amount for a in allocations)
        return SplitResult(
            gross_amount=gross_amount,
            fee=fee,
            distributable=distributable,
            amount_per_holder=allocated // len(holders),
            remainder=distributable - allocated,
            allocations=allocations,
        )


class CreatorSplitStrategy(SplitStrategy):
    """Creator takes a fixed share of the distributable amount, holders split the rest."""

    model = RevenueModel.CREATOR_SPLIT

    def split(self, gross_amount: int, context: HolderContext, fee_bps: int) -> SplitResult:
        holders = list(context.holders)
        if not holders:
            raise DivisionByZeroError()
        if not context.creator_account or not isinstance(context.creator_account, str):
            raise InvalidInputError(
                "creator_account is required for the creator split model", field="creator_account"
            )
        if context.creator_account in holders:
            raise InvalidInputError(
                "creator_account must not also be a holder", field="creator_account"
            )
        if context.creator_share_bps is None:
            raise InvalidInputError(
                "creator_share_bps is required for the creator split model",
                field="creator_share_bps",
            )
        creator_bps = _validate_bps(context.creator_share_bps, "creator_share_bps")

        fee, distributable = compute_fee(gross_amount, fee_bps)
        creator_amount = distributable * creator_bps // BPS_DENOMINATOR
        holder_pool = distributable - creator_amount
        per_holder = holder_pool // len(holders)

        allocations = [Allocation(account=context.creator_account, amount=creator_amount, role="creator")]
        allocations.extend(Allocation(account=h, amount=per_holder) for h in holders)
        return SplitResult(
            gross_amount=gross_amount,
            fee=fee,
            distributable=distributable,
            amount_per_holder=per_holder,
            remainder=holder_pool - per_holder * len(holders),
            allocations=allocations,
        )


DEFAULT_STRATEGIES: dict[RevenueModel, SplitStrategy] = {
    RevenueModel.EQUAL: EqualSplit(),
    RevenueModel.WEIGHTED: WeightedSplit(),
    RevenueModel.CREATOR_SPLIT: CreatorSplitStrategy(),
}


def get_split_strategy(
    model: RevenueModel,
    strategies: dict[RevenueModel, SplitStrategy] | None = None,
) -> SplitStrategy:
    """
    Look up the strategy for a revenue model.

    Raises:
        NotImplementedModelError: no strategy registered for the model
    """
    registry = DEFAULT_STRATEGIES if strategies is None else strategies
    strategy = registry.get(model)
    if strategy is None:
        raise NotImplementedModelError(model.value)
    return strategy


def split_payment(
    model: RevenueModel,
    gross_amount: int,
    context: HolderContext,
    fee_bps: int = DEFAULT_FEE_BPS,
    remainder_policy: RemainderPolicy = RemainderPolicy.RETAIN,
    strategies: dict[RevenueModel, SplitStrategy] | None = None,
) -> SplitResult:
    """Run the model's strategy and apply the remainder policy."""
    strategy = get_split_strategy(model, strategies)
    result = strategy.split(gross_amount, context, fee_bps)
    return apply_remainder_policy(result, remainder_policy)
