"""
Session Transport - Contract between the session core and the signed-message transport.

The core never talks to a socket directly. Everything that leaves the
process goes through these four operations:

    create_session  -> open a multi-party session, get (session_id, base_version)
    submit_state    -> propose the next versioned state; ack or TransportError
    close_session   -> submit final allocations; ack or TransportError
    subscribe       -> register a push handler; returns an unsubscribe callable

Implementations raise TransportError for every failure (timeout, lost
connection, signature or quorum rejection, version conflict). They never
retry on the caller's behalf.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Sequence

from penny.core.session.models import Allocation


PushHandler = Callable[[Dict[str, Any]], None]
Unsubscribe = Callable[[], None]


class StateIntent(Enum):
    """Intent of a submitted state."""
    OPERATE = "operate"


@dataclass(frozen=True)
class SessionHandle:
    """Result of opening a session."""
    session_id: str
    base_version: int


@dataclass(frozen=True)
class StateAck:
    """Acknowledgment of an accepted state."""
    session_id: str
    version: int


@dataclass(frozen=True)
class CloseAck:
    """Acknowledgment of a settled session."""
    session_id: str
    version: int
    receipt: str


class SessionTransport(ABC):
    """Signed-message transport used by the session controller."""

    @abstractmethod
    async def create_session(
        self,
        participants: Sequence[str],
        allocations: Sequence[Allocation],
        weights: Sequence[int],
        quorum: int,
        application_id: str,
    ) -> SessionHandle:
        """Open a session among participants with initial allocations."""

    @abstractmethod
    async def submit_state(
        self,
        session_id: str,
        version: int,
        allocations: Sequence[Allocation],
        intent: StateIntent,
        session_data: str,
    ) -> StateAck:
        """Propose the state at `version`."""

    @abstractmethod
    async def close_session(
        self,
        session_id: str,
        allocations: Sequence[Allocation],
    ) -> CloseAck:
        """Settle the session with final allocations."""

    @abstractmethod
    def subscribe(self, handler: PushHandler) -> Unsubscribe:
        """Register a push handler; the returned callable removes it."""
