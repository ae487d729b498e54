"""
Remote Update Reconciler - Merges pushed session states into the local session.

Other participants (or the operator) advance the session through the
transport; the transport pushes each accepted state to every subscriber.
The reconciler decides which pushes to adopt:

1. Frames that are not well-formed session updates are dropped
2. Updates for another session or auction are ignored
3. Updates at or below the local version are stale and dropped
4. Anything newer replaces the local auction state wholesale

The sole ordering key is the version: a higher version always wins over
an earlier one, whatever order the network delivered them in. Adopted
states go through the controller's commit point, which appends to the
ledger and resets the countdown.
"""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from penny.core.config import AuctionConfig
from penny.core.errors import ConservationViolation
from penny.core.money import to_amount
from penny.core.session.allocation import AllocationCalculator
from penny.core.session.models import (
    Allocation,
    AllocationMode,
    AuctionSession,
    BidEvent,
    EntryOrigin,
    SessionState,
)
from penny.network.protocol import SessionUpdateMessage, parse_push_message
from penny.network.transport import SessionTransport, Unsubscribe
from penny.utils.logger import get_logger

logger = get_logger("reconciler")


# (version, state, allocations, origin) -> recorded event or None
CommitFn = Callable[[int, SessionState, List[Allocation], EntryOrigin], Optional[BidEvent]]


@dataclass
class ReconcileStats:
    """Counters of what happened to pushed frames."""
    applied: int = 0
    stale: int = 0
    foreign: int = 0
    malformed: int = 0
    ignored: int = 0


class RemoteUpdateReconciler:
    """
    Adopts newer remote states for one session.

    Attributes:
        session: The session handle updates are reconciled into
        stats: Counters of applied/dropped frames
    """

    def __init__(
        self,
        session: AuctionSession,
        calculator: AllocationCalculator,
        commit: CommitFn,
        config: Optional[AuctionConfig] = None,
    ):
        self.session = session
        self.calculator = calculator
        self.config = config or AuctionConfig()
        self.stats = ReconcileStats()
        self._commit = commit
        self._unsubscribe: Optional[Unsubscribe] = None

    # =========================================================================
    # Subscription
    # =========================================================================

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    def attach(self, transport: SessionTransport) -> None:
        """Subscribe to the transport's push channel."""
        if self._unsubscribe is not None:
            return
        self._unsubscribe = transport.subscribe(self.handle_frame)
        logger.debug(f"Subscribed to updates for {self.session.id[:10]}")

    def detach(self) -> None:
        """Unsubscribe; safe to call more than once."""
        if self._unsubscribe is None:
            return
        self._unsubscribe()
        self._unsubscribe = None
        logger.debug(f"Unsubscribed from updates for {self.session.id[:10]}")

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def handle_frame(self, frame: Any) -> bool:
        """
        Push handler: parse a raw frame and reconcile it.

        Returns:
            True if the update was adopted
        """
        message = parse_push_message(frame)
        if message is None:
            self.stats.ignored += 1
            return False
        return self.on_remote_update(message)

    def on_remote_update(self, message: SessionUpdateMessage) -> bool:
        """
        Reconcile one session update.

        Returns:
            True if the update was adopted
        """
        session = self.session

        if message.session_id != session.id:
            self.stats.foreign += 1
            return False

        if message.session_data.auction_id != session.auction_id:
            self.stats.foreign += 1
            logger.debug(f"Ignoring update for auction {message.session_data.auction_id}")
            return False

        if message.version <= session.version:
            self.stats.stale += 1
            logger.debug(f"Dropping stale update v{message.version} (local v{session.version})")
            return False

        state = self._derive_state(message)
        try:
            allocations = self.calculator.compute(state, AllocationMode.OPERATE)
        except ConservationViolation as e:
            self.stats.malformed += 1
            logger.warning(f"Dropping update v{message.version}: {e}")
            return False

        event = self._commit(message.version, state, allocations, EntryOrigin.REMOTE)
        if event is None:
            return False

        self.stats.applied += 1
        logger.info(
            f"Adopted remote v{message.version}: price={state.current_price} "
            f"bids={state.bid_count} last={state.last_bidder}"
        )
        return True

    def _derive_state(self, message: SessionUpdateMessage) -> SessionState:
        """
        Build a full state from a pushed one.

        Fields a peer left out are derived from the version distance to the
        session's base version.
        """
        wire = message.session_data.state
        bids = max(0, message.version - self.session.base_version)

        bid_count = wire.bid_count if wire.bid_count is not None else bids
        total_fees = (
            wire.total_fees
            if wire.total_fees is not None
            else to_amount(bids * self.config.bid_fee)
        )
        current_price = (
            wire.current_price
            if wire.current_price is not None
            else to_amount(self.config.starting_price + bids * self.config.bid_increment)
        )

        return SessionState(
            current_price=current_price,
            time_left=self.config.countdown_window,
            last_bidder=wire.last_bidder,
            bid_count=bid_count,
            total_fees=total_fees,
        )

    def __repr__(self) -> str:
        return f"RemoteUpdateReconciler(session={self.session.id[:10]}, applied={self.stats.applied})"
