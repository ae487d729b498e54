"""
Penny Session Module.

This module provides the auction session building blocks:
- Session, state and allocation data types
- Allocation rules under a fixed budget
- Version-ordered bid ledger
- Bidding window countdown

The controller and reconciler live in their own modules
(penny.core.session.controller, penny.core.session.reconciler) since they
depend on the network layer.
"""

from penny.core.session.models import (
    Allocation,
    AllocationMode,
    AuctionSession,
    BidEvent,
    EntryOrigin,
    LedgerEntry,
    Participants,
    SessionState,
    SessionStatus,
)

from penny.core.session.allocation import (
    AllocationCalculator,
    check_conservation,
    compute_allocations,
    opening_allocations,
    seller_amount,
)

from penny.core.session.ledger import BidLedger

from penny.core.session.countdown import (
    Countdown,
    CountdownState,
    DEFAULT_WINDOW,
)

__all__ = [
    # Models
    "Allocation",
    "AllocationMode",
    "AuctionSession",
    "BidEvent",
    "EntryOrigin",
    "LedgerEntry",
    "Participants",
    "SessionState",
    "SessionStatus",
    # Allocation
    "AllocationCalculator",
    "check_conservation",
    "compute_allocations",
    "opening_allocations",
    "seller_amount",
    # Ledger
    "BidLedger",
    # Countdown
    "Countdown",
    "CountdownState",
    "DEFAULT_WINDOW",
]
