"""
Local Clearnode - In-process session transport hub.

Plays the role of the remote clearnode for tests and simulations:
- Opens app sessions among participants with weights and a quorum
- Sequences submitted states (each must be exactly current version + 1)
- Checks that allocations conserve the session total
- Recovers request signers and enforces the signature quorum
- Fans out `asu` push frames to every subscriber, once per handler

Requests use the signed envelope the real clearnode speaks:

    {"req": [request_id, method, params, timestamp], "sig": ["0x...", ...]}

Each participant connects through a LocalTransport bound to its own key;
co-signers (the operator, typically) sign the same envelope so the
combined weight can reach quorum.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Deque, Dict, List, Optional, Sequence, Set

from penny.core.errors import TransportError
from penny.core.money import ZERO, format_amount, to_amount
from penny.core.session.models import Allocation
from penny.crypto import (
    KeyPair,
    bytes_to_hex,
    canonical_dumps,
    hash_payload,
    hex_to_bytes,
    keccak256,
    recover_addresses,
    sign_payload,
)
from penny.network.protocol import create_update_frame
from penny.network.transport import (
    CloseAck,
    PushHandler,
    SessionHandle,
    SessionTransport,
    StateAck,
    StateIntent,
    Unsubscribe,
)
from penny.utils.logger import get_logger
from penny.utils.validation import (
    validate_amount,
    validate_participants,
    validate_version,
    validate_weights,
)

logger = get_logger("clearnode")


PROTOCOL_NAME = "NitroRPC/0.4"

METHOD_CREATE = "create_app_session"
METHOD_SUBMIT = "submit_app_state"
METHOD_CLOSE = "close_app_session"


@dataclass
class AppSessionRecord:
    """Clearnode-side record of an open or closed app session."""
    session_id: str
    participants: List[str]
    weights: List[int]
    quorum: int
    application_id: str
    allocations: List[Allocation]
    total: Decimal
    version: int
    status: str = "open"
    session_data: Optional[str] = None
    closed_at: Optional[float] = None

    def weight_of(self, address: str) -> int:
        try:
            return self.weights[self.participants.index(address.lower())]
        except ValueError:
            return 0


class LocalClearnode:
    """
    In-process clearnode.

    Attributes:
        sessions: app_session_id -> record
        initial_version: Version assigned to newly opened sessions
        latency: Seconds each request suspends before being handled
        online: When False every request fails as a lost connection
    """

    def __init__(self, initial_version: int = 1, latency: float = 0.0):
        self.sessions: Dict[str, AppSessionRecord] = {}
        self.initial_version = initial_version
        self.latency = latency
        self.online = True
        self.requests_handled = 0
        self._subscribers: Dict[int, PushHandler] = {}
        self._next_subscriber_id = 0
        self._failures: Deque[TransportError] = deque()

    # =========================================================================
    # Connections
    # =========================================================================

    def connect(self, signer: KeyPair, co_signers: Sequence[KeyPair] = ()) -> "LocalTransport":
        """Transport for a participant signing with `signer` plus any co-signers."""
        return LocalTransport(self, signer, co_signers)

    def subscribe(self, handler: PushHandler) -> Unsubscribe:
        """Register a push handler."""
        subscriber_id = self._next_subscriber_id
        self._next_subscriber_id += 1
        self._subscribers[subscriber_id] = handler

        def unsubscribe() -> None:
            self._subscribers.pop(subscriber_id, None)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def fail_next(self, error: Optional[TransportError] = None) -> None:
        """Make the next request fail with `error` (default: a timeout)."""
        self._failures.append(error or TransportError("Request timed out"))

    # =========================================================================
    # Request Handling
    # =========================================================================

    async def handle(self, envelope: Dict[str, Any]) -> Dict[str, Any]:
        """
        Handle a signed request envelope.

        Returns:
            Response params

        Raises:
            TransportError: On any rejection
        """
        await asyncio.sleep(self.latency)

        if not self.online:
            raise TransportError("Connection lost")
        if self._failures:
            raise self._failures.popleft()

        req = envelope.get("req")
        signatures = envelope.get("sig") or []
        if not isinstance(req, list) or len(req) != 4:
            raise TransportError("Malformed request envelope")

        request_id, method, params, _ = req
        signers = self._recover_signers(req, signatures)
        self.requests_handled += 1

        if method == METHOD_CREATE:
            return self._create(params, signers)
        if method == METHOD_SUBMIT:
            return self._submit(params, signers, request_id)
        if method == METHOD_CLOSE:
            return self._close(params, signers)
        raise TransportError(f"Unknown method: {method}")

    def _create(self, params: Dict[str, Any], signers: Set[str]) -> Dict[str, Any]:
        definition = params.get("definition") or {}
        participants = [str(p).lower() for p in definition.get("participants", [])]
        weights = list(definition.get("weights", []))
        quorum = definition.get("quorum")

        if len(participants) != 3:
            raise TransportError(f"Expected 3 participants, got {len(participants)}")
        valid, err = validate_participants(*participants)
        if not valid:
            raise TransportError(err)
        valid, err = validate_weights(weights, quorum)
        if not valid:
            raise TransportError(err)

        allocations = self._parse_allocations(params.get("allocations"), participants)
        total = sum((a.amount for a in allocations), ZERO)
        if total <= 0:
            raise TransportError("Session must be funded")

        funders = {a.participant.lower() for a in allocations if a.amount > 0}
        if not funders.issubset(signers):
            raise TransportError("Funding participants must sign session creation")

        session_id = bytes_to_hex(keccak256(canonical_dumps(params) + str(time.time_ns()).encode()))
        self.sessions[session_id] = AppSessionRecord(
            session_id=session_id,
            participants=participants,
            weights=weights,
            quorum=quorum,
            application_id=str(definition.get("application", "")),
            allocations=allocations,
            total=total,
            version=self.initial_version,
        )

        logger.info(f"Opened app session {session_id[:10]} total={format_amount(total)} v{self.initial_version}")
        return {"app_session_id": session_id, "version": self.initial_version, "status": "open"}

    def _submit(self, params: Dict[str, Any], signers: Set[str], request_id: int) -> Dict[str, Any]:
        record = self._open_record(params.get("app_session_id"))

        version = params.get("version")
        valid, err = validate_version(version)
        if not valid:
            raise TransportError(f"Bad state: {err}")
        if version != record.version + 1:
            raise TransportError(f"Version conflict: expected {record.version + 1}, got {version}")

        if params.get("intent") != StateIntent.OPERATE.value:
            raise TransportError(f"Unsupported intent: {params.get('intent')}")

        allocations = self._parse_allocations(params.get("allocations"), record.participants)
        self._check_total(record, allocations)
        self._check_quorum(record, signers)

        record.allocations = allocations
        record.version = version
        record.session_data = params.get("session_data")

        logger.debug(f"Accepted state v{version} for {record.session_id[:10]}")
        self._push(create_update_frame(record.session_id, version, record.session_data or "", request_id))
        return {"app_session_id": record.session_id, "version": version, "status": "open"}

    def _close(self, params: Dict[str, Any], signers: Set[str]) -> Dict[str, Any]:
        record = self._open_record(params.get("app_session_id"))

        allocations = self._parse_allocations(params.get("allocations"), record.participants)
        self._check_total(record, allocations)
        self._check_quorum(record, signers)

        record.allocations = allocations
        record.version += 1
        record.status = "closed"
        record.closed_at = time.time()

        receipt = bytes_to_hex(hash_payload({
            "app_session_id": record.session_id,
            "version": record.version,
            "allocations": [a.to_dict() for a in allocations],
        }))

        logger.info(f"Closed app session {record.session_id[:10]} at v{record.version}")
        return {"app_session_id": record.session_id, "version": record.version, "status": "closed", "receipt": receipt}

    # =========================================================================
    # Checks
    # =========================================================================

    def _open_record(self, session_id: Any) -> AppSessionRecord:
        record = self.sessions.get(session_id)
        if record is None:
            raise TransportError(f"Unknown app session: {session_id}")
        if record.status != "open":
            raise TransportError(f"App session {str(session_id)[:10]} is {record.status}")
        return record

    def _parse_allocations(self, raw: Any, participants: List[str]) -> List[Allocation]:
        if not isinstance(raw, list) or not raw:
            raise TransportError("Allocations missing")

        allocations = []
        for item in raw:
            if not isinstance(item, dict):
                raise TransportError("Malformed allocation")
            participant = str(item.get("participant", "")).lower()
            if participant not in participants:
                raise TransportError(f"Allocation for non-participant {participant}")
            valid, err = validate_amount(item.get("amount"))
            if not valid:
                raise TransportError(f"Bad allocation: {err}")
            allocations.append(Allocation(participant, str(item.get("asset", "")), to_amount(item["amount"])))
        return allocations

    def _check_total(self, record: AppSessionRecord, allocations: List[Allocation]) -> None:
        total = sum((a.amount for a in allocations), ZERO)
        if total != record.total:
            raise TransportError(
                f"Allocation total {format_amount(total)} != session total {format_amount(record.total)}"
            )

    def _check_quorum(self, record: AppSessionRecord, signers: Set[str]) -> None:
        weight = sum(record.weight_of(address) for address in signers)
        if weight < record.quorum:
            raise TransportError(f"Quorum not met: weight {weight} < {record.quorum}")

    def _recover_signers(self, req: List[Any], signatures: List[str]) -> Set[str]:
        message_hash = hash_payload(req)
        signers: Set[str] = set()
        for signature in signatures:
            try:
                raw = hex_to_bytes(signature)
            except (TypeError, ValueError, AttributeError):
                raise TransportError("Malformed signature") from None
            signers.update(recover_addresses(message_hash, raw))
        return signers

    # =========================================================================
    # Push
    # =========================================================================

    def _push(self, frame: Dict[str, Any]) -> None:
        """Schedule delivery of a frame to every current subscriber."""
        loop = asyncio.get_running_loop()
        for subscriber_id in list(self._subscribers):
            loop.call_soon(self._deliver, subscriber_id, frame)

    def _deliver(self, subscriber_id: int, frame: Dict[str, Any]) -> None:
        handler = self._subscribers.get(subscriber_id)
        if handler is None:
            return
        try:
            handler(frame)
        except Exception:
            logger.exception(f"Push handler {subscriber_id} failed")


@dataclass
class LocalTransport(SessionTransport):
    """
    A participant's connection to a LocalClearnode.

    Attributes:
        clearnode: Hub this transport talks to
        signer: Participant key signing every request
        co_signers: Additional keys signing every request (e.g. the operator)
    """
    clearnode: LocalClearnode
    signer: KeyPair
    co_signers: Sequence[KeyPair] = field(default_factory=tuple)
    _request_id: int = 0

    @property
    def address(self) -> str:
        return self.signer.address

    async def create_session(self, participants, allocations, weights, quorum, application_id) -> SessionHandle:
        params = {
            "definition": {
                "protocol": PROTOCOL_NAME,
                "participants": list(participants),
                "weights": list(weights),
                "quorum": quorum,
                "challenge": 0,
                "nonce": time.time_ns(),
                "application": application_id,
            },
            "allocations": [a.to_dict() for a in allocations],
        }
        response = await self._call(METHOD_CREATE, params)
        return SessionHandle(session_id=response["app_session_id"], base_version=response["version"])

    async def submit_state(self, session_id, version, allocations, intent, session_data) -> StateAck:
        params = {
            "app_session_id": session_id,
            "intent": intent.value,
            "version": version,
            "allocations": [a.to_dict() for a in allocations],
            "session_data": session_data,
        }
        response = await self._call(METHOD_SUBMIT, params)
        return StateAck(session_id=response["app_session_id"], version=response["version"])

    async def close_session(self, session_id, allocations) -> CloseAck:
        params = {
            "app_session_id": session_id,
            "allocations": [a.to_dict() for a in allocations],
        }
        response = await self._call(METHOD_CLOSE, params)
        return CloseAck(
            session_id=response["app_session_id"],
            version=response["version"],
            receipt=response["receipt"],
        )

    def subscribe(self, handler: PushHandler) -> Unsubscribe:
        return self.clearnode.subscribe(handler)

    async def _call(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        self._request_id += 1
        req = [self._request_id, method, params, int(time.time() * 1000)]
        signatures = [
            sign_payload(req, key.private_key)
            for key in (self.signer, *self.co_signers)
        ]
        return await self.clearnode.handle({"req": req, "sig": signatures})
