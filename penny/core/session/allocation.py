"""
Allocation - Derives participant balances from auction state.

Rules:
------
OPERATE (every in-flight state):
    seller   = total_fees
    bidder   = budget - seller
    operator = 0

CLOSE (settlement):
    seller   = total_fees + current_price   (capped at budget)
    bidder   = budget - seller
    operator = 0

All amounts are cent-quantized. The bidder's amount is computed last as
the exact remainder so any rounding residual lands on the bidder and
seller + bidder + operator == budget holds exactly.
"""

from decimal import Decimal
from typing import List, Sequence, Tuple

from penny.core.errors import ConservationViolation
from penny.core.money import ZERO, to_amount
from penny.core.session.models import (
    Allocation,
    AllocationMode,
    Participants,
    SessionState,
)
from penny.utils.logger import get_logger

logger = get_logger("allocation")


def seller_amount(state: SessionState, budget: Decimal, mode: AllocationMode) -> Decimal:
    """
    Seller's share of the budget for a state.

    Raises:
        ConservationViolation: If OPERATE fees exceed the budget
    """
    budget = to_amount(budget)
    fees = to_amount(state.total_fees)

    if mode is AllocationMode.OPERATE:
        if fees > budget:
            raise ConservationViolation(f"Fees {fees} exceed budget {budget}")
        return fees

    owed = to_amount(fees + to_amount(state.current_price))
    if owed > budget:
        logger.warning(f"Settlement {owed} exceeds budget {budget}; capping seller at budget")
        return budget
    return owed


def compute_allocations(
    state: SessionState,
    budget: Decimal,
    mode: AllocationMode,
    participants: Participants,
    asset: str,
) -> List[Allocation]:
    """
    Compute [seller, bidder, operator] allocations for a state.

    Args:
        state: Auction fields to allocate for
        budget: Funds locked in the session
        mode: OPERATE for in-flight states, CLOSE for settlement
        participants: Session participant addresses
        asset: Asset symbol

    Returns:
        Three allocations that sum exactly to budget

    Raises:
        ConservationViolation: If the state cannot be funded from budget
    """
    budget = to_amount(budget)
    seller = seller_amount(state, budget, mode)
    operator = ZERO
    bidder = max(ZERO, budget - seller - operator)

    allocations = [
        Allocation(participants.seller, asset, seller),
        Allocation(participants.bidder, asset, bidder),
        Allocation(participants.operator, asset, operator),
    ]

    valid, err = check_conservation(allocations, budget)
    if not valid:
        raise ConservationViolation(err)
    return allocations


def opening_allocations(
    budget: Decimal,
    participants: Participants,
    asset: str,
) -> List[Allocation]:
    """Allocations a session opens with: the whole budget on the bidder."""
    budget = to_amount(budget)
    return [
        Allocation(participants.seller, asset, ZERO),
        Allocation(participants.bidder, asset, budget),
        Allocation(participants.operator, asset, ZERO),
    ]


def check_conservation(allocations: Sequence[Allocation], budget: Decimal) -> Tuple[bool, str]:
    """
    Check that allocations are non-negative and sum exactly to budget.

    Returns:
        (is_valid, error_message)
    """
    for allocation in allocations:
        if allocation.amount < 0:
            return False, f"Negative allocation for {allocation.participant}: {allocation.amount}"

    total = sum((to_amount(a.amount) for a in allocations), ZERO)
    if total != to_amount(budget):
        return False, f"Balance mismatch: {total} != {to_amount(budget)}"
    return True, ""


class AllocationCalculator:
    """
    Allocation rules bound to one session's participants, asset and budget.
    """

    def __init__(self, participants: Participants, budget: Decimal, asset: str):
        self.participants = participants
        self.budget = to_amount(budget)
        self.asset = asset

    def compute(self, state: SessionState, mode: AllocationMode = AllocationMode.OPERATE) -> List[Allocation]:
        """Allocations for a state under this session's budget."""
        return compute_allocations(state, self.budget, mode, self.participants, self.asset)

    def opening(self) -> List[Allocation]:
        """Allocations the session is opened with."""
        return opening_allocations(self.budget, self.participants, self.asset)

    def can_fund(self, state: SessionState) -> bool:
        """Whether an in-flight state keeps the seller within budget."""
        return to_amount(state.total_fees) <= self.budget
