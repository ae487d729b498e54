"""
Session Protocol - Wire models and parsing for session updates.

The transport carries auction state opaquely inside each session state's
`session_data` field, as a JSON string:

    {"auctionId": "...",
     "state": {"currentPrice": "0.06", "timeLeft": 15, "lastBidder": "0x...",
               "bidCount": 1, "totalFees": "1.00"}}

Money is serialized as fixed 2-decimal strings; numbers are accepted on
input. Pushed updates reach subscribers in one of three shapes:

    {"method": "asu", "params": {"app_session": {...}}}
    {"res": [request_id, "asu", {...}, timestamp]}
    {"sessionId": "...", "version": 5, "sessionData": {...}}

parse_push_message() normalizes all of them to a SessionUpdateMessage.
"""

import json
import time
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from penny.core.money import format_amount, to_amount
from penny.core.session.models import SessionState
from penny.utils.logger import get_logger

logger = get_logger("protocol")


# Push method names for app session updates
APP_SESSION_UPDATE = "asu"
APP_SESSION_UPDATE_METHODS = frozenset({APP_SESSION_UPDATE, "app_session_update"})


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class WireState(_WireModel):
    """Auction fields as they travel inside session_data."""
    current_price: Optional[Decimal] = None
    time_left: int = 0
    last_bidder: Optional[str] = None
    bid_count: Optional[int] = Field(default=None, ge=0)
    total_fees: Optional[Decimal] = None

    @field_validator("current_price", "total_fees", mode="before")
    @classmethod
    def _parse_amount(cls, value: Any) -> Optional[Decimal]:
        if value is None:
            return None
        return to_amount(value)

    @field_serializer("current_price", "total_fees")
    def _dump_amount(self, value: Optional[Decimal]) -> Optional[str]:
        if value is None:
            return None
        return format_amount(value)

    @classmethod
    def from_state(cls, state: SessionState) -> "WireState":
        return cls(
            current_price=state.current_price,
            time_left=state.time_left,
            last_bidder=state.last_bidder,
            bid_count=state.bid_count,
            total_fees=state.total_fees,
        )


class SessionData(_WireModel):
    """The opaque payload carried in the transport's session_data field."""
    auction_id: str
    state: WireState

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class SessionUpdateMessage(_WireModel):
    """A pushed session state: {sessionId, version, sessionData}."""
    session_id: str
    version: int = Field(ge=0)
    session_data: SessionData

    @field_validator("session_data", mode="before")
    @classmethod
    def _decode_session_data(cls, value: Any) -> Any:
        if isinstance(value, (str, bytes)):
            return json.loads(value)
        return value


# =============================================================================
# Encoding
# =============================================================================


def encode_session_data(auction_id: str, state: SessionState) -> str:
    """Serialize auction state for the transport's session_data field."""
    return SessionData(auction_id=auction_id, state=WireState.from_state(state)).to_json()


def decode_session_data(raw: Any) -> Optional[SessionData]:
    """
    Parse a session_data payload (JSON string or dict).

    Returns:
        SessionData, or None if missing or malformed
    """
    if raw is None or raw == "":
        return None
    try:
        if isinstance(raw, (str, bytes)):
            raw = json.loads(raw)
        return SessionData.model_validate(raw)
    except (ValueError, ValidationError) as e:
        logger.debug(f"Malformed session data: {e}")
        return None


def create_update_frame(session_id: str, version: int, session_data: str, request_id: int = 0) -> Dict[str, Any]:
    """Build an `asu` push frame as the clearnode emits it."""
    return {
        "res": [
            request_id,
            APP_SESSION_UPDATE,
            {
                "app_session": {
                    "app_session_id": session_id,
                    "version": version,
                    "session_data": session_data,
                },
            },
            int(time.time() * 1000),
        ],
    }


# =============================================================================
# Parsing
# =============================================================================


def _frame_method_and_params(frame: Dict[str, Any]):
    if "method" in frame:
        return frame.get("method"), frame.get("params") or {}
    res = frame.get("res")
    if isinstance(res, (list, tuple)) and len(res) >= 3:
        return res[1], res[2] or {}
    return None, None


def parse_push_message(frame: Any) -> Optional[SessionUpdateMessage]:
    """
    Normalize a pushed frame to a SessionUpdateMessage.

    Returns:
        The update, or None if the frame is not a well-formed session update
    """
    if isinstance(frame, SessionUpdateMessage):
        return frame
    if isinstance(frame, (str, bytes)):
        try:
            frame = json.loads(frame)
        except ValueError:
            logger.debug("Dropping non-JSON frame")
            return None
    if not isinstance(frame, dict):
        return None

    # Already in {sessionId, version, sessionData} form
    if "sessionId" in frame or "session_id" in frame:
        try:
            return SessionUpdateMessage.model_validate(frame)
        except (ValueError, ValidationError) as e:
            logger.debug(f"Dropping malformed update: {e}")
            return None

    method, params = _frame_method_and_params(frame)
    if method not in APP_SESSION_UPDATE_METHODS or not isinstance(params, dict):
        return None

    app_session = params.get("app_session") or params.get("appSession") or params
    if not isinstance(app_session, dict):
        return None

    session_id = app_session.get("app_session_id") or app_session.get("appSessionId")
    raw_data = (
        app_session.get("session_data")
        or app_session.get("sessionData")
        or params.get("session_data")
    )
    session_data = decode_session_data(raw_data)
    if not session_id or session_data is None:
        logger.debug("Dropping session update without id or session data")
        return None

    version = app_session.get("version", params.get("version", 0))
    try:
        return SessionUpdateMessage(session_id=session_id, version=version, session_data=session_data)
    except ValidationError as e:
        logger.debug(f"Dropping session update with bad version: {e}")
        return None
