"""
Unit tests for allocation rules.

Tests cover:
1. OPERATE allocations (seller holds fees)
2. CLOSE allocations (seller also receives the price)
3. Conservation of the budget
4. Over-budget states
"""

from decimal import Decimal

import pytest

from penny.core.errors import ConservationViolation
from penny.core.session import (
    Allocation,
    AllocationCalculator,
    AllocationMode,
    Participants,
    SessionState,
    check_conservation,
    compute_allocations,
    opening_allocations,
    seller_amount,
)

SELLER = "0x" + "11" * 20
BIDDER = "0x" + "22" * 20
OPERATOR = "0x" + "33" * 20


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def participants():
    return Participants(SELLER, BIDDER, OPERATOR)


def make_state(bid_count: int, fee: str = "1.00", start: str = "0.05", step: str = "0.01") -> SessionState:
    return SessionState(
        current_price=Decimal(start) + bid_count * Decimal(step),
        time_left=15,
        last_bidder=BIDDER,
        bid_count=bid_count,
        total_fees=bid_count * Decimal(fee),
    )


# =============================================================================
# Seller Amount Tests
# =============================================================================


class TestSellerAmount:
    """Tests for the seller's share."""

    def test_operate_is_fees(self):
        """In-flight states credit the seller with fees only."""
        assert seller_amount(make_state(5), Decimal("100.00"), AllocationMode.OPERATE) == Decimal("5.00")

    def test_close_adds_price(self):
        """Settlement credits fees plus the final price."""
        assert seller_amount(make_state(5), Decimal("100.00"), AllocationMode.CLOSE) == Decimal("5.10")

    def test_operate_over_budget_raises(self):
        """Fees above the budget cannot be funded."""
        with pytest.raises(ConservationViolation):
            seller_amount(make_state(4), Decimal("3.00"), AllocationMode.OPERATE)

    def test_close_capped_at_budget(self):
        """Settlement never pays the seller more than the budget."""
        assert seller_amount(make_state(3), Decimal("3.00"), AllocationMode.CLOSE) == Decimal("3.00")


# =============================================================================
# Compute Tests
# =============================================================================


class TestComputeAllocations:
    """Tests for full allocation sets."""

    def test_scenario_budget_100(self, participants):
        """Five accepted bids on 100.00: seller 5.00, bidder 95.00."""
        allocations = compute_allocations(
            make_state(5), Decimal("100.00"), AllocationMode.OPERATE, participants, "ytest.usd",
        )

        assert [a.participant for a in allocations] == [SELLER, BIDDER, OPERATOR]
        assert [a.amount for a in allocations] == [Decimal("5.00"), Decimal("95.00"), Decimal("0.00")]
        assert all(a.asset == "ytest.usd" for a in allocations)

    @pytest.mark.parametrize("bids", [0, 1, 7, 33, 99])
    def test_conserves_budget(self, participants, bids):
        """Allocations always sum to exactly the budget."""
        budget = Decimal("100.00")
        for mode in AllocationMode:
            allocations = compute_allocations(make_state(bids), budget, mode, participants, "ytest.usd")
            assert sum(a.amount for a in allocations) == budget
            assert all(a.amount >= 0 for a in allocations)

    def test_close_settlement(self, participants):
        """Settlement moves the price to the seller."""
        allocations = compute_allocations(
            make_state(5), Decimal("100.00"), AllocationMode.CLOSE, participants, "ytest.usd",
        )
        assert allocations[0].amount == Decimal("5.10")
        assert allocations[1].amount == Decimal("94.90")
        assert allocations[2].amount == Decimal("0.00")

    def test_close_over_budget_bidder_gets_nothing(self, participants):
        """A capped settlement leaves the bidder at zero."""
        allocations = compute_allocations(
            make_state(3), Decimal("3.00"), AllocationMode.CLOSE, participants, "ytest.usd",
        )
        assert allocations[0].amount == Decimal("3.00")
        assert allocations[1].amount == Decimal("0.00")

    def test_opening_puts_budget_on_bidder(self, participants):
        """Sessions open with the whole budget on the bidder."""
        allocations = opening_allocations(Decimal("25.00"), participants, "ytest.usd")
        assert [a.amount for a in allocations] == [Decimal("0.00"), Decimal("25.00"), Decimal("0.00")]

    def test_wire_form(self, participants):
        """Allocations serialize amounts as 2-decimal strings."""
        allocation = Allocation(SELLER, "ytest.usd", Decimal("5"))
        assert allocation.to_dict() == {"participant": SELLER, "asset": "ytest.usd", "amount": "5.00"}


# =============================================================================
# Conservation Tests
# =============================================================================


class TestConservation:
    """Tests for the conservation check."""

    def test_balanced(self):
        allocations = [
            Allocation(SELLER, "ytest.usd", Decimal("1.00")),
            Allocation(BIDDER, "ytest.usd", Decimal("9.00")),
            Allocation(OPERATOR, "ytest.usd", Decimal("0.00")),
        ]
        assert check_conservation(allocations, Decimal("10.00")) == (True, "")

    def test_mismatch(self):
        allocations = [
            Allocation(SELLER, "ytest.usd", Decimal("1.00")),
            Allocation(BIDDER, "ytest.usd", Decimal("9.50")),
        ]
        valid, err = check_conservation(allocations, Decimal("10.00"))
        assert not valid
        assert "Balance mismatch" in err

    def test_negative(self):
        allocations = [
            Allocation(SELLER, "ytest.usd", Decimal("11.00")),
            Allocation(BIDDER, "ytest.usd", Decimal("-1.00")),
        ]
        valid, err = check_conservation(allocations, Decimal("10.00"))
        assert not valid
        assert "Negative allocation" in err


# =============================================================================
# Calculator Tests
# =============================================================================


class TestAllocationCalculator:
    """Tests for the session-bound calculator."""

    def test_defaults_to_operate(self, participants):
        calculator = AllocationCalculator(participants, "10", "ytest.usd")
        assert calculator.budget == Decimal("10.00")
        assert calculator.compute(make_state(2))[0].amount == Decimal("2.00")

    def test_can_fund(self, participants):
        calculator = AllocationCalculator(participants, Decimal("3.00"), "ytest.usd")
        assert calculator.can_fund(make_state(3))
        assert not calculator.can_fund(make_state(4))
