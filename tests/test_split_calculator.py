"""
Tests for the distribution calculator (src/split_calculator.py)

Tests cover:
- Fee and per-holder arithmetic
- Remainder handling and remainder policies
- Equal, Weighted and CreatorSplit strategies
- Strategy lookup (no silent fallback)
"""

import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from ledger_errors import (
    ArithmeticOverflowError,
    DivisionByZeroError,
    InvalidInputError,
    NotImplementedModelError,
)
from ledger_records import U64_MAX, RevenueModel
from split_calculator import (
    CreatorSplitStrategy,
    EqualSplit,
    HolderContext,
    RemainderPolicy,
    WeightedSplit,
    compute_fee,
    compute_split,
    get_split_strategy,
    split_payment,
)

# ============================================================
# Core Arithmetic
# ============================================================


class TestComputeSplit:
    """Tests for compute_split."""

    def test_thousand_across_three_holders(self):
        """1000 across 3 holders leaves no remainder."""
        fee, distributable, per_holder = compute_split(1000, 3)

        assert fee == 25
        assert distributable == 975
        assert per_holder == 325
        assert distributable - per_holder * 3 == 0

    def test_hundred_across_three_holders(self):
        """100 across 3 holders leaves a remainder of 2."""
        fee, distributable, per_holder = compute_split(100, 3)

        assert fee == 2
        assert distributable == 98
        assert per_holder == 32
        assert distributable - per_holder * 3 == 2

    @pytest.mark.parametrize("gross", [1, 39, 40, 41, 999, 123_456_789, U64_MAX])
    def test_fee_plus_distributable_is_gross(self, gross):
        """Fee is floor(gross * 250 / 10000) and nothing is lost."""
        fee, distributable, _ = compute_split(gross, 7)

        assert fee == gross * 250 // 10000
        assert fee + distributable == gross

    @pytest.mark.parametrize("holder_count", [1, 2, 3, 10, 997])
    def test_remainder_bound(self, holder_count):
        """per_holder * n <= distributable < per_holder * n + n."""
        _, distributable, per_holder = compute_split(1_000_003, holder_count)

        assert per_holder * holder_count <= distributable
        assert distributable < per_holder * holder_count + holder_count

    def test_zero_holders_fails(self):
        """Zero holders never divides."""
        with pytest.raises(DivisionByZeroError):
            compute_split(1000, 0)

    def test_max_u64_does_not_overflow(self):
        """The largest u64 gross amount is handled exactly."""
        fee, distributable, per_holder = compute_split(U64_MAX, 1)

        assert fee == U64_MAX * 250 // 10000
        assert per_holder == distributable

    def test_gross_above_u64_fails(self):
        """Amounts beyond u64 raise instead of wrapping."""
        with pytest.raises(ArithmeticOverflowError):
            compute_split(U64_MAX + 1, 3)

    def test_negative_gross_fails(self):
        with pytest.raises(InvalidInputError):
            compute_split(-1, 3)

    def test_bool_gross_fails(self):
        """True is not an amount."""
        with pytest.raises(InvalidInputError):
            compute_split(True, 3)

    def test_fee_bps_out_of_range(self):
        with pytest.raises(InvalidInputError):
            compute_split(1000, 3, fee_bps=10_001)

    def test_custom_fee_bps(self):
        """A 10% fee on 1000."""
        assert compute_fee(1000, 1000) == (100, 900)

    def test_zero_fee(self):
        assert compute_fee(1000, 0) == (0, 1000)


# ============================================================
# Strategies
# ============================================================


class TestEqualSplit:
    """Tests for the Equal strategy."""

    def test_allocations_in_holder_order(self):
        result = EqualSplit().split(1000, HolderContext(holders=["a", "b", "c"]), 250)

        assert [a.account for a in result.allocations] == ["a", "b", "c"]
        assert all(a.amount == 325 for a in result.allocations)
        assert result.holder_count == 3
        assert result.remainder == 0

    def test_retained_remainder(self):
        """Under RETAIN the remainder is not allocated."""
        result = split_payment(RevenueModel.EQUAL, 100, HolderContext(holders=["a", "b", "c"]))

        assert result.allocated_total == 96
        assert result.remainder == 2
        assert result.fee + result.allocated_total + result.remainder == 100

    def test_last_holder_remainder(self):
        """LAST_HOLDER moves the remainder onto the final holder."""
        result = split_payment(
            RevenueModel.EQUAL,
            100,
            HolderContext(holders=["a", "b", "c"]),
            remainder_policy=RemainderPolicy.LAST_HOLDER,
        )

        assert [a.amount for a in result.allocations] == [32, 32, 34]
        assert result.remainder == 0
        assert result.amount_per_holder == 32


class TestWeightedSplit:
    """Tests for the Weighted strategy."""

    def test_weighted_shares(self):
        """Holder i gets floor(distributable * w_i / sum(w))."""
        context = HolderContext(holders=["a", "b"], weights=[3, 1])
        result = WeightedSplit().split(10_000, context, 250)

        assert result.fee == 250
        assert result.distributable == 9750
        assert [a.amount for a in result.allocations] == [7312, 2437]
        assert result.remainder == 1
        assert result.amount_per_holder == 9749 // 2

    def test_weights_required(self):
        with pytest.raises(InvalidInputError) as exc_info:
            WeightedSplit().split(1000, HolderContext(holders=["a", "b"]), 250)
        assert exc_info.value.field == "weights"

    def test_weight_count_must_match(self):
        with pytest.raises(InvalidInputError):
            WeightedSplit().split(1000, HolderContext(holders=["a", "b"], weights=[1]), 250)

    def test_zero_weight_rejected(self):
        with pytest.raises(InvalidInputError):
            WeightedSplit().split(1000, HolderContext(holders=["a", "b"], weights=[1, 0]), 250)

    def test_no_holders(self):
        with pytest.raises(DivisionByZeroError):
            WeightedSplit().split(1000, HolderContext(holders=[], weights=[]), 250)


class TestCreatorSplit:
    """Tests for the CreatorSplit strategy."""

    def test_creator_then_holders(self):
        """Creator takes 10% of distributable, holders split the rest."""
        context = HolderContext(
            holders=["a", "b", "c"], creator_account="artist", creator_share_bps=1000
        )
        result = CreatorSplitStrategy().split(10_000, context, 250)

        creator = result.allocations[0]
        assert creator.account == "artist"
        assert creator.role == "creator"
        assert creator.amount == 975
        assert [a.amount for a in result.allocations[1:]] == [2925, 2925, 2925]
        assert result.holder_count == 3
        assert result.remainder == 0

    def test_creator_account_required(self):
        context = HolderContext(holders=["a"], creator_share_bps=1000)
        with pytest.raises(InvalidInputError):
            CreatorSplitStrategy().split(1000, context, 250)

    def test_creator_cannot_be_holder(self):
        """The creator is paid once, never again as a holder."""
        context = HolderContext(
            holders=["alice", "bob"], creator_account="alice", creator_share_bps=5000
        )
        with pytest.raises(InvalidInputError) as exc_info:
            CreatorSplitStrategy().split(1000, context, 250)
        assert exc_info.value.field == "creator_account"

    def test_creator_share_required(self):
        context = HolderContext(holders=["a"], creator_account="artist")
        with pytest.raises(InvalidInputError):
            CreatorSplitStrategy().split(1000, context, 250)

    def test_creator_share_out_of_range(self):
        context = HolderContext(holders=["a"], creator_account="artist", creator_share_bps=10_001)
        with pytest.raises(InvalidInputError):
            CreatorSplitStrategy().split(1000, context, 250)

    def test_last_holder_policy_skips_creator(self):
        """The remainder goes to the last holder, never the creator."""
        context = HolderContext(
            holders=["a", "b", "c"], creator_account="artist", creator_share_bps=0
        )
        result = split_payment(
            RevenueModel.CREATOR_SPLIT, 100, context, remainder_policy=RemainderPolicy.LAST_HOLDER
        )

        assert result.allocations[0].amount == 0
        assert result.allocations[-1].amount == 34


class TestStrategyLookup:
    """Tests for strategy selection."""

    def test_default_registry_covers_every_model(self):
        for model in RevenueModel:
            assert get_split_strategy(model).model is model

    def test_missing_strategy_is_not_implemented(self):
        """An unregistered model is rejected rather than treated as Equal."""
        with pytest.raises(NotImplementedModelError):
            split_payment(
                RevenueModel.WEIGHTED,
                1000,
                HolderContext(holders=["a"], weights=[1]),
                strategies={RevenueModel.EQUAL: EqualSplit()},
            )


class TestParsing:
    """Tests for enum parsing."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("equal", RevenueModel.EQUAL),
            ("Weighted", RevenueModel.WEIGHTED),
            ("CreatorSplit", RevenueModel.CREATOR_SPLIT),
            ("creator-split", RevenueModel.CREATOR_SPLIT),
        ],
    )
    def test_revenue_model_parse(self, raw, expected):
        assert RevenueModel.parse(raw) is expected

    def test_unknown_revenue_model(self):
        with pytest.raises(InvalidInputError):
            RevenueModel.parse("auction")

    def test_remainder_policy_parse(self):
        assert RemainderPolicy.parse("LAST_HOLDER") is RemainderPolicy.LAST_HOLDER
        with pytest.raises(InvalidInputError):
            RemainderPolicy.parse("carry")
