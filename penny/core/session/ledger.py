"""
Bid Ledger - Version-ordered history of committed session states.

Conceptual Background:
---------------------
The ledger is the single record of what the session has agreed on. Each
entry is a full snapshot (auction fields plus allocations) at one version.

Append Rules:
------------
1. Versions strictly increase; an entry at or below the head is refused
2. Allocations must conserve the session budget exactly
3. Entries are never modified or removed

Local bids, adopted remote updates and the final settlement all land here
through the same append path.
"""

from decimal import Decimal
from typing import Iterator, List, Optional, Tuple

from penny.core.money import format_amount, to_amount
from penny.core.session.allocation import check_conservation
from penny.core.session.models import EntryOrigin, LedgerEntry
from penny.utils.logger import get_logger

logger = get_logger("ledger")


class BidLedger:
    """
    Append-only ledger of committed session states.

    Attributes:
        session_id: Session this ledger belongs to
        budget: Budget every entry must conserve
        base_version: Version the session opened at (before any entry)
        entries: Committed entries in version order
    """

    def __init__(self, session_id: str, budget: Decimal, base_version: int = 0):
        self.session_id = session_id
        self.budget = to_amount(budget)
        self.base_version = base_version
        self.entries: List[LedgerEntry] = []

    # =========================================================================
    # State Access
    # =========================================================================

    @property
    def version(self) -> int:
        """Version of the latest entry (base version when empty)."""
        if not self.entries:
            return self.base_version
        return self.entries[-1].version

    @property
    def latest(self) -> Optional[LedgerEntry]:
        """Most recent entry, if any."""
        return self.entries[-1] if self.entries else None

    @property
    def settlement(self) -> Optional[LedgerEntry]:
        """The settlement entry, once the session has closed."""
        latest = self.latest
        if latest is not None and latest.origin is EntryOrigin.SETTLEMENT:
            return latest
        return None

    def get(self, version: int) -> Optional[LedgerEntry]:
        """Entry at an exact version."""
        for entry in self.entries:
            if entry.version == version:
                return entry
        return None

    def entries_since(self, version: int) -> List[LedgerEntry]:
        """Entries with a version strictly greater than the given one."""
        return [entry for entry in self.entries if entry.version > version]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[LedgerEntry]:
        return iter(self.entries)

    # =========================================================================
    # Append
    # =========================================================================

    def validate_entry(self, entry: LedgerEntry) -> Tuple[bool, str]:
        """
        Validate an entry against the ledger head.

        Returns:
            (is_valid, error_message)
        """
        if self.settlement is not None:
            return False, "Ledger is settled"

        if entry.version <= self.version:
            return False, f"Version {entry.version} not above head {self.version}"

        valid, err = check_conservation(entry.allocations, self.budget)
        if not valid:
            return False, err

        return True, ""

    def append(self, entry: LedgerEntry) -> Tuple[bool, str]:
        """
        Append a committed entry.

        Returns:
            (success, message)
        """
        valid, err = self.validate_entry(entry)
        if not valid:
            logger.warning(f"Refused ledger entry v{entry.version} for {self.session_id[:10]}: {err}")
            return False, err

        self.entries.append(entry)
        logger.debug(
            f"Committed v{entry.version} ({entry.origin.value}) "
            f"price={format_amount(entry.state.current_price)} "
            f"fees={format_amount(entry.state.total_fees)}"
        )
        return True, f"Version {entry.version} committed"

    # =========================================================================
    # Utility
    # =========================================================================

    def __repr__(self) -> str:
        return f"BidLedger(session={self.session_id[:10]}, version={self.version}, entries={len(self.entries)})"

    def stats(self) -> dict:
        """Get ledger statistics."""
        by_origin = {origin.value: 0 for origin in EntryOrigin}
        for entry in self.entries:
            by_origin[entry.origin.value] += 1

        return {
            "session_id": self.session_id,
            "base_version": self.base_version,
            "version": self.version,
            "entries": len(self.entries),
            "by_origin": by_origin,
            "budget": format_amount(self.budget),
            "settled": self.settlement is not None,
        }
