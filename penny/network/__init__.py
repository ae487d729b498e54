"""
Penny Network Module - Transport contract and wire protocol.

Provides the session transport interface, the session_data wire models and
an in-process clearnode for tests and simulations.
"""

from penny.network.protocol import (
    APP_SESSION_UPDATE,
    SessionData,
    SessionUpdateMessage,
    WireState,
    create_update_frame,
    decode_session_data,
    encode_session_data,
    parse_push_message,
)
from penny.network.transport import (
    CloseAck,
    SessionHandle,
    SessionTransport,
    StateAck,
    StateIntent,
)
from penny.network.clearnode import (
    AppSessionRecord,
    LocalClearnode,
    LocalTransport,
)

__all__ = [
    # Protocol
    "APP_SESSION_UPDATE",
    "SessionData",
    "SessionUpdateMessage",
    "WireState",
    "create_update_frame",
    "decode_session_data",
    "encode_session_data",
    "parse_push_message",
    # Transport
    "CloseAck",
    "SessionHandle",
    "SessionTransport",
    "StateAck",
    "StateIntent",
    # Clearnode
    "AppSessionRecord",
    "LocalClearnode",
    "LocalTransport",
]
