"""
Session Models - Data types for an auction session.

Conceptual Background:
---------------------
An auction session is an off-chain channel among three participants:

1. **Seller**: receives one bid fee per accepted bid, plus the final price
   at settlement
2. **Bidder**: locks a budget when the session opens and keeps whatever
   the seller is not owed
3. **Operator**: co-signs every state; holds nothing

Every accepted state carries a version. Versions increase by exactly one
per accepted bid and are the only ordering key between participants.
"""

import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Deque, Dict, List, Optional, Tuple

from penny.core.money import format_amount


# =============================================================================
# Enums
# =============================================================================


class SessionStatus(IntEnum):
    """Lifecycle status of an auction session."""
    UNSTARTED = 0   # No session (never created, or discarded on disconnect)
    ACTIVE = 1      # Bidding window open
    ENDED = 2       # Countdown expired; awaiting settlement
    CLOSED = 3      # Settlement acknowledged


class AllocationMode(Enum):
    """Which allocation rule applies."""
    OPERATE = "operate"   # In-flight: seller holds accumulated fees
    CLOSE = "close"       # Final: seller also receives the winning price


class EntryOrigin(Enum):
    """Where a committed ledger entry came from."""
    LOCAL = "local"
    REMOTE = "remote"
    SETTLEMENT = "settlement"


# =============================================================================
# Data Structures
# =============================================================================


@dataclass(frozen=True)
class Participants:
    """Addresses of the three session participants."""
    seller: str
    bidder: str
    operator: str

    def as_list(self) -> List[str]:
        """Participants in allocation order: seller, bidder, operator."""
        return [self.seller, self.bidder, self.operator]


@dataclass(frozen=True)
class Allocation:
    """Amount of an asset attributed to one participant."""
    participant: str
    asset: str
    amount: Decimal

    def to_dict(self) -> Dict[str, str]:
        """Wire form with a fixed 2-decimal amount."""
        return {
            "participant": self.participant,
            "asset": self.asset,
            "amount": format_amount(self.amount),
        }


@dataclass(frozen=True)
class SessionState:
    """
    The auction fields carried inside every versioned session state.

    Invariants (for states produced locally):
        current_price = starting_price + bid_count * increment
        total_fees = bid_count * fee
    """
    current_price: Decimal
    time_left: int
    last_bidder: Optional[str]
    bid_count: int
    total_fees: Decimal


@dataclass(frozen=True)
class BidEvent:
    """An accepted bid, immutable once recorded."""
    id: str
    session_id: str
    version: int
    price_after: Decimal
    bidder: Optional[str]
    timestamp: float

    @classmethod
    def create(
        cls,
        session_id: str,
        version: int,
        price_after: Decimal,
        bidder: Optional[str],
    ) -> "BidEvent":
        return cls(
            id=uuid.uuid4().hex,
            session_id=session_id,
            version=version,
            price_after=price_after,
            bidder=bidder,
            timestamp=time.time(),
        )


@dataclass
class AuctionSession:
    """
    Live state of one auction session, owned by the controller that opened it.

    Attributes:
        id: Transport-assigned session id
        auction_id: Auction this session bids on
        participants: Seller, bidder and operator addresses
        budget: Funds the bidder locked into the session
        base_version: Version the transport assigned at open
        version: Latest committed version
        history: Most recent bid events, newest first
    """
    id: str
    auction_id: str
    participants: Participants
    budget: Decimal
    base_version: int
    version: int
    current_price: Decimal
    time_left: int = 0
    last_bidder: Optional[str] = None
    bid_count: int = 0
    total_fees: Decimal = Decimal("0.00")
    status: SessionStatus = SessionStatus.UNSTARTED
    history: Deque[BidEvent] = field(default_factory=lambda: deque(maxlen=8))

    def state(self) -> SessionState:
        """Current auction fields as an immutable state."""
        return SessionState(
            current_price=self.current_price,
            time_left=self.time_left,
            last_bidder=self.last_bidder,
            bid_count=self.bid_count,
            total_fees=self.total_fees,
        )

    def adopt(self, version: int, state: SessionState) -> None:
        """Replace auction fields wholesale with a committed state."""
        self.version = version
        self.current_price = state.current_price
        self.time_left = state.time_left
        self.last_bidder = state.last_bidder
        self.bid_count = state.bid_count
        self.total_fees = state.total_fees

    def record(self, event: BidEvent) -> None:
        """Push a bid event onto the recent history (newest first)."""
        if any(e.version == event.version for e in self.history):
            return
        self.history.appendleft(event)

    def to_dict(self) -> dict:
        """Plain view for display and logging."""
        return {
            "session_id": self.id,
            "auction_id": self.auction_id,
            "status": self.status.name,
            "version": self.version,
            "current_price": format_amount(self.current_price),
            "time_left": self.time_left,
            "last_bidder": self.last_bidder,
            "bid_count": self.bid_count,
            "total_fees": format_amount(self.total_fees),
            "budget": format_amount(self.budget),
        }


@dataclass(frozen=True)
class LedgerEntry:
    """A committed session state with the allocations it was accepted under."""
    version: int
    state: SessionState
    allocations: Tuple[Allocation, ...]
    origin: EntryOrigin
    timestamp: float = field(default_factory=time.time)

    def amount_for(self, participant: str) -> Decimal:
        """Allocated amount for a participant (0 if absent)."""
        for allocation in self.allocations:
            if allocation.participant.lower() == participant.lower():
                return allocation.amount
        return Decimal("0.00")
