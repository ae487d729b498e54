"""
Session Controller - Drives one bidder's auction session.

State machine:
-------------
    UNSTARTED --create(budget ok)--> ACTIVE --countdown expires--> ENDED
    ENDED --close_order ok--> CLOSED
    ENDED --newer remote bid--> ACTIVE
    any --disconnect--> UNSTARTED

Commit Rules:
------------
1. A local bid is committed only after the transport acknowledges it; a
   failed submission leaves every field exactly as it was
2. At most one mutating submission is in flight; a concurrent call raises
   SubmissionInProgress instead of racing off the same base version
3. Remote updates commit as soon as they validate (they were already
   accepted elsewhere)
4. Local and remote commits share one commit point, and a version never
   goes backwards
5. Remote updates arriving while a close is pending are held; they are
   committed if the close fails and dropped once settlement is acknowledged

Teardown:
--------
Leaving ACTIVE/ENDED for CLOSED or UNSTARTED cancels the countdown task and
unsubscribes from pushes in one step, so no timer or handler outlives the
session.
"""

from collections import deque
from decimal import Decimal
from typing import List, Optional

from penny.core.config import AuctionConfig
from penny.core.errors import (
    ConservationViolation,
    SessionStateError,
    SubmissionInProgress,
    ValidationError,
)
from penny.core.money import format_amount, to_amount
from penny.core.session.allocation import AllocationCalculator
from penny.core.session.countdown import Countdown
from penny.core.session.ledger import BidLedger
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
from penny.core.session.reconciler import RemoteUpdateReconciler
from penny.network.protocol import encode_session_data
from penny.network.transport import SessionTransport, StateIntent
from penny.utils.logger import get_logger
from penny.utils.validation import validate_auction_id, validate_participants

logger = get_logger("session")


class SessionController:
    """
    Owns one auction session handle and every mutation of it.

    Attributes:
        transport: Signed-message transport
        participants: Seller, bidder (this client) and operator
        auction_id: Auction being bid on
        config: Protocol constants and governance parameters
        session: Current session handle (None while UNSTARTED)
        ledger: Committed history of the current session
        countdown: Bidding window timer
    """

    def __init__(
        self,
        transport: SessionTransport,
        participants: Participants,
        auction_id: str,
        config: Optional[AuctionConfig] = None,
    ):
        self.transport = transport
        self.participants = participants
        self.auction_id = auction_id
        self.config = config or AuctionConfig()

        self.session: Optional[AuctionSession] = None
        self.ledger: Optional[BidLedger] = None
        self.calculator: Optional[AllocationCalculator] = None
        self.reconciler: Optional[RemoteUpdateReconciler] = None
        self.countdown = Countdown(
            window=self.config.countdown_window,
            tick_interval=self.config.tick_interval,
            on_expire=self._on_expire,
            on_tick=self._on_tick,
        )

        self._in_flight = False
        self._receipt: Optional[str] = None
        self._epoch = 0  # bumped on every disconnect
        self._closing = False
        self._held: List[tuple] = []  # remote commits deferred while closing

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def status(self) -> SessionStatus:
        if self.session is None:
            return SessionStatus.UNSTARTED
        return self.session.status

    @property
    def version(self) -> int:
        return self.session.version if self.session else 0

    @property
    def in_flight(self) -> bool:
        """Whether a mutating submission is awaiting acknowledgment."""
        return self._in_flight

    @property
    def receipt(self) -> Optional[str]:
        return self._receipt

    @property
    def formatted_time(self) -> str:
        return self.countdown.formatted

    @property
    def history(self) -> List[BidEvent]:
        """Recent bid events, newest first."""
        return list(self.session.history) if self.session else []

    # =========================================================================
    # Create
    # =========================================================================

    async def create(self, budget: Optional[Decimal] = None) -> AuctionSession:
        """
        Open a session and submit the opening bid.

        Args:
            budget: Funds to lock; defaults to config.default_budget

        Returns:
            The ACTIVE session handle

        Raises:
            ValidationError: Budget too low or participants invalid
            SessionStateError: A session is already open
            SubmissionInProgress: Another mutation is pending
            TransportError: Opening or seeding failed
        """
        if self.session is not None:
            raise SessionStateError(f"Session already {self.session.status.name}")
        if self._in_flight:
            raise SubmissionInProgress("Another submission is pending")

        budget = self._validate_create(budget)
        participants = self.participants
        epoch = self._epoch
        calculator = AllocationCalculator(participants, budget, self.config.asset)

        self._in_flight = True
        try:
            handle = await self.transport.create_session(
                participants=participants.as_list(),
                allocations=calculator.opening(),
                weights=list(self.config.weights),
                quorum=self.config.quorum,
                application_id=self.config.application_id,
            )
            logger.info(f"Opened session {handle.session_id[:10]} for auction {self.auction_id} at v{handle.base_version}")

            seed = SessionState(
                current_price=to_amount(self.config.starting_price + self.config.bid_increment),
                time_left=self.config.countdown_window,
                last_bidder=participants.bidder,
                bid_count=1,
                total_fees=self.config.bid_fee,
            )
            seed_allocations = calculator.compute(seed, AllocationMode.OPERATE)
            seed_version = handle.base_version + 1

            await self.transport.submit_state(
                session_id=handle.session_id,
                version=seed_version,
                allocations=seed_allocations,
                intent=StateIntent.OPERATE,
                session_data=encode_session_data(self.auction_id, seed),
            )
        finally:
            self._in_flight = False

        if epoch != self._epoch:
            raise SessionStateError(f"Disconnected while opening session {handle.session_id[:10]}")

        session = AuctionSession(
            id=handle.session_id,
            auction_id=self.auction_id,
            participants=participants,
            budget=budget,
            base_version=handle.base_version,
            version=handle.base_version,
            current_price=self.config.starting_price,
            history=deque(maxlen=self.config.history_size),
        )
        self.session = session
        self.ledger = BidLedger(session.id, budget, handle.base_version)
        self.calculator = calculator
        self._receipt = None

        self._commit(seed_version, seed, seed_allocations, EntryOrigin.LOCAL)
        session.status = SessionStatus.ACTIVE
        self.countdown.start()

        self.reconciler = RemoteUpdateReconciler(session, calculator, self._commit, self.config)
        self.reconciler.attach(self.transport)

        logger.info(f"Session {session.id[:10]} active: budget={format_amount(budget)} v{session.version}")
        return session

    def _validate_create(self, budget: Optional[Decimal]) -> Decimal:
        valid, err = validate_participants(
            self.participants.seller,
            self.participants.bidder,
            self.participants.operator,
        )
        if not valid:
            raise ValidationError(err)

        valid, err = validate_auction_id(self.auction_id)
        if not valid:
            raise ValidationError(err)

        try:
            budget = to_amount(self.config.default_budget if budget is None else budget)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        if budget <= self.config.minimum_budget:
            raise ValidationError(
                f"Budget {format_amount(budget)} must exceed starting price plus fee "
                f"({format_amount(self.config.minimum_budget)})"
            )
        return budget

    # =========================================================================
    # Bid
    # =========================================================================

    async def place_bid(self) -> Optional[BidEvent]:
        """
        Submit the next bid.

        Returns:
            The recorded bid event, or None if the bid was not admissible
            (no session, not ACTIVE, countdown expired, or fees would exceed
            the budget) or was superseded while awaiting acknowledgment

        Raises:
            SubmissionInProgress: Another submission is pending
            TransportError: Submission failed; state is unchanged
        """
        session = self.session
        if session is None or session.status != SessionStatus.ACTIVE or self.countdown.is_expired:
            logger.debug(f"Bid ignored: status={self.status.name}")
            return None
        if self._in_flight:
            raise SubmissionInProgress(f"Bid at v{session.version + 1} already pending")

        next_state = SessionState(
            current_price=to_amount(session.current_price + self.config.bid_increment),
            time_left=self.config.countdown_window,
            last_bidder=self.participants.bidder,
            bid_count=session.bid_count + 1,
            total_fees=to_amount((session.bid_count + 1) * self.config.bid_fee),
        )
        try:
            allocations = self.calculator.compute(next_state, AllocationMode.OPERATE)
        except ConservationViolation as e:
            logger.info(f"Bid refused: {e}")
            return None

        next_version = session.version + 1

        self._in_flight = True
        try:
            await self.transport.submit_state(
                session_id=session.id,
                version=next_version,
                allocations=allocations,
                intent=StateIntent.OPERATE,
                session_data=encode_session_data(session.auction_id, next_state),
            )
        finally:
            self._in_flight = False

        if self.session is not session:
            logger.warning(f"Session {session.id[:10]} discarded while bid v{next_version} was pending")
            return None

        event = self._commit(next_version, next_state, allocations, EntryOrigin.LOCAL)
        if event is not None:
            logger.info(
                f"Bid v{next_version} accepted: price={format_amount(next_state.current_price)} "
                f"fees={format_amount(next_state.total_fees)}"
            )
        return event

    # =========================================================================
    # Close
    # =========================================================================

    async def close_order(self) -> Optional[str]:
        """
        Settle an ENDED session.

        Returns:
            Settlement receipt; the cached receipt if already CLOSED; None if
            the session is not ENDED

        Raises:
            SubmissionInProgress: Another submission is pending
            TransportError: Close failed; session stays ENDED
        """
        session = self.session
        if session is not None and session.status == SessionStatus.CLOSED:
            return self._receipt
        if session is None or session.status != SessionStatus.ENDED:
            logger.debug(f"Close ignored: status={self.status.name}")
            return None
        if self._in_flight:
            raise SubmissionInProgress("Another submission is pending")

        final_state = session.state()
        allocations = self.calculator.compute(final_state, AllocationMode.CLOSE)

        self._in_flight = True
        self._closing = True
        try:
            ack = await self.transport.close_session(session_id=session.id, allocations=allocations)
        except BaseException:
            self._replay_held()
            raise
        finally:
            self._in_flight = False
            self._closing = False

        if self._held:
            logger.info(f"Dropping {len(self._held)} remote update(s) superseded by settlement")
            self._held.clear()

        if self.session is not session:
            logger.warning(f"Session {session.id[:10]} discarded while close was pending")
            return None

        self.ledger.append(LedgerEntry(
            version=max(ack.version, self.ledger.version + 1),
            state=final_state,
            allocations=tuple(allocations),
            origin=EntryOrigin.SETTLEMENT,
        ))
        session.status = SessionStatus.CLOSED
        self._receipt = ack.receipt
        self._release()

        logger.info(
            f"Session {session.id[:10]} closed: seller={format_amount(allocations[0].amount)} "
            f"bidder={format_amount(allocations[1].amount)}"
        )
        return self._receipt

    def _replay_held(self) -> None:
        """Commit remote updates that arrived while a failed close was pending."""
        held, self._held = self._held, []
        self._closing = False
        for version, state, allocations, origin in held:
            self._commit(version, state, allocations, origin)

    # =========================================================================
    # Disconnect
    # =========================================================================

    def disconnect(self) -> None:
        """Hard reset to UNSTARTED, discarding the session."""
        if self.session is not None:
            logger.info(f"Discarding session {self.session.id[:10]} ({self.session.status.name})")
        self._release()
        self.session = None
        self.ledger = None
        self.calculator = None
        self._receipt = None
        self._held.clear()
        self._epoch += 1

    def _release(self) -> None:
        """Cancel the countdown and unsubscribe from pushes."""
        self.countdown.cancel()
        if self.reconciler is not None:
            self.reconciler.detach()
            self.reconciler = None

    # =========================================================================
    # Commit Point
    # =========================================================================

    def _commit(
        self,
        version: int,
        state: SessionState,
        allocations: List[Allocation],
        origin: EntryOrigin,
    ) -> Optional[BidEvent]:
        """
        Commit an accepted state: ledger, session fields, history, countdown.

        Returns:
            The recorded bid event, or None if the state was not committed
        """
        session = self.session
        if session is None or self.ledger is None:
            return None
        if session.status == SessionStatus.CLOSED:
            return None

        if version <= self.ledger.version:
            logger.debug(f"Skipping commit of v{version}; ledger already at v{self.ledger.version}")
            return None

        # Settlement is computed from the state committed before the close
        if self._closing and origin is EntryOrigin.REMOTE:
            self._held.append((version, state, allocations, origin))
            logger.info(f"Holding remote v{version} until settlement resolves")
            return None

        success, message = self.ledger.append(LedgerEntry(
            version=version,
            state=state,
            allocations=tuple(allocations),
            origin=origin,
        ))
        if not success:
            return None

        session.adopt(version, state)
        event = BidEvent.create(session.id, version, state.current_price, state.last_bidder)
        session.record(event)

        if session.status == SessionStatus.ENDED:
            session.status = SessionStatus.ACTIVE
            logger.info(f"Session {session.id[:10]} reopened by v{version}")
        if session.status == SessionStatus.ACTIVE:
            self.countdown.reset()

        return event

    def _on_tick(self, time_left: int) -> None:
        if self.session is not None:
            self.session.time_left = time_left

    def _on_expire(self) -> None:
        session = self.session
        if session is None or session.status != SessionStatus.ACTIVE:
            return
        session.status = SessionStatus.ENDED
        logger.info(
            f"Auction {session.auction_id} ended at v{session.version}: "
            f"price={format_amount(session.current_price)} winner={session.last_bidder}"
        )

    # =========================================================================
    # Utility
    # =========================================================================

    def snapshot(self) -> Optional[dict]:
        """Plain view of the current session."""
        return self.session.to_dict() if self.session else None

    def stats(self) -> dict:
        """Get controller statistics."""
        stats = {
            "status": self.status.name,
            "version": self.version,
            "in_flight": self._in_flight,
            "countdown": self.countdown.state.name,
            "time_left": self.countdown.time_left,
        }
        if self.ledger is not None:
            stats["ledger"] = self.ledger.stats()
        if self.reconciler is not None:
            stats["remote"] = vars(self.reconciler.stats).copy()
        return stats

    def __repr__(self) -> str:
        return f"SessionController(auction={self.auction_id}, status={self.status.name}, version={self.version})"
