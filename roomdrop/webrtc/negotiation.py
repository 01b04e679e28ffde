"""
Per-peer negotiation state machine.

Each remote peer gets one :class:`NegotiationSession`. Signals for a
session are queued and applied by a single worker task, so an ICE
candidate that arrives while a description is still being applied is
always handled after it.
"""
import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from aiortc import RTCIceCandidate, RTCPeerConnection, RTCSessionDescription
from aiortc.sdp import candidate_from_sdp

from roomdrop.core.exceptions import NegotiationError
from roomdrop.core.logging import LoggerMixin
from roomdrop.core.validation_utils import ValidationUtils

SendSignal = Callable[[str, str, Any], Awaitable[Any]]


class Role(Enum):
    INITIATOR = "initiator"
    RESPONDER = "responder"


class NegotiationState(Enum):
    IDLE = "idle"
    AWAITING_LOCAL_DESCRIPTION = "awaiting_local_description"
    LOCAL_OFFER_SENT = "local_offer_sent"
    LOCAL_ANSWER_SENT = "local_answer_sent"
    REMOTE_DESCRIPTION_APPLIED = "remote_description_applied"
    ESTABLISHED = "established"
    CLOSED = "closed"
    FAILED = "failed"


TERMINAL_STATES = (NegotiationState.CLOSED, NegotiationState.FAILED)


@dataclass
class Signal:
    """One inbound negotiation event: offer_needed, offer, answer or ice_candidate."""
    kind: str
    payload: Any = None


def description_to_dict(description: RTCSessionDescription) -> Dict[str, str]:
    return {"type": description.type, "sdp": description.sdp}


def description_from_dict(data: Dict[str, Any], expected_type: str) -> RTCSessionDescription:
    error = ValidationUtils.validate_session_description(data)
    if error:
        raise NegotiationError(f"Malformed session description: {error}")
    if data["type"] != expected_type:
        raise NegotiationError("Unexpected session description type", {
            "expected": expected_type,
            "received": data["type"]
        })
    return RTCSessionDescription(sdp=data["sdp"], type=data["type"])


def candidate_from_dict(data: Dict[str, Any]) -> RTCIceCandidate:
    """Convert a browser RTCIceCandidateInit dict into an aiortc candidate."""
    sdp = data.get("candidate") or ""
    if sdp.startswith("candidate:"):
        sdp = sdp[len("candidate:"):]
    candidate = candidate_from_sdp(sdp)
    candidate.sdpMid = data.get("sdpMid")
    candidate.sdpMLineIndex = data.get("sdpMLineIndex")
    return candidate


def is_end_of_candidates(data: Optional[Dict[str, Any]]) -> bool:
    return data is None or not data.get("candidate")


class NegotiationSession(LoggerMixin):
    """Handshake state for one remote peer."""

    def __init__(self, remote_id: str, role: Role, peer_connection: RTCPeerConnection, send_signal: SendSignal):
        super().__init__()
        self.remote_id = remote_id
        self.role = role
        self.peer_connection = peer_connection
        self.send_signal = send_signal

        self.state = NegotiationState.IDLE
        self.remote_description_applied = False
        self.pending_remote_candidates: List[Dict[str, Any]] = []
        self.channel = None

        self._queue: "asyncio.Queue[Signal]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def submit(self, signal: Signal):
        """Queue a signal for in-order processing by the session worker."""
        if self._worker is None:
            self._worker = asyncio.ensure_future(self._run())
        self._queue.put_nowait(signal)

    async def drain(self):
        """Wait until every submitted signal has been processed."""
        await self._queue.join()

    async def _run(self):
        while True:
            signal = await self._queue.get()
            try:
                await self.process(signal)
            finally:
                self._queue.task_done()

    async def process(self, signal: Signal):
        """Apply one signal. Protocol errors move the session to FAILED."""
        if self.is_terminal:
            self.log_debug("Dropping signal for finished session", {
                "remote_id": self.remote_id,
                "kind": signal.kind,
                "state": self.state.value
            })
            return

        try:
            if signal.kind == "offer_needed":
                await self._create_offer()
            elif signal.kind == "offer":
                await self._accept_offer(signal.payload)
            elif signal.kind == "answer":
                await self._accept_answer(signal.payload)
            elif signal.kind == "ice_candidate":
                await self._add_remote_candidate(signal.payload)
            else:
                raise NegotiationError("Unknown negotiation signal", {"kind": signal.kind})
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.fail(e, signal.kind)

    async def _create_offer(self):
        self._require_state(NegotiationState.IDLE, "offer_needed")
        self._transition(NegotiationState.AWAITING_LOCAL_DESCRIPTION)

        offer = await self.peer_connection.createOffer()
        await self.peer_connection.setLocalDescription(offer)

        self._transition(NegotiationState.LOCAL_OFFER_SENT)
        await self.send_signal("offer", self.remote_id, description_to_dict(self.peer_connection.localDescription))

    async def _accept_offer(self, sdp: Dict[str, Any]):
        self._require_state(NegotiationState.IDLE, "offer")
        await self._apply_remote_description(description_from_dict(sdp, "offer"))

        self._transition(NegotiationState.AWAITING_LOCAL_DESCRIPTION)
        answer = await self.peer_connection.createAnswer()
        await self.peer_connection.setLocalDescription(answer)

        self._transition(NegotiationState.LOCAL_ANSWER_SENT)
        await self.send_signal("answer", self.remote_id, description_to_dict(self.peer_connection.localDescription))

    async def _accept_answer(self, sdp: Dict[str, Any]):
        if self.state != NegotiationState.LOCAL_OFFER_SENT:
            raise NegotiationError("Answer received without a pending local offer", {
                "remote_id": self.remote_id,
                "state": self.state.value
            })
        await self._apply_remote_description(description_from_dict(sdp, "answer"))

    async def _apply_remote_description(self, description: RTCSessionDescription):
        await self.peer_connection.setRemoteDescription(description)
        self.remote_description_applied = True
        self._transition(NegotiationState.REMOTE_DESCRIPTION_APPLIED)

        pending, self.pending_remote_candidates = self.pending_remote_candidates, []
        if pending:
            self.log_info("Applying queued ICE candidates", {
                "remote_id": self.remote_id,
                "count": len(pending)
            })
        for candidate in pending:
            await self._apply_candidate(candidate)

    async def _add_remote_candidate(self, candidate: Optional[Dict[str, Any]]):
        if is_end_of_candidates(candidate):
            self.log_debug("Remote peer finished sending ICE candidates", {"remote_id": self.remote_id})
            return

        if not self.remote_description_applied:
            self.pending_remote_candidates.append(candidate)
            self.log_debug("Queued ICE candidate until remote description is applied", {
                "remote_id": self.remote_id,
                "queued": len(self.pending_remote_candidates)
            })
            return

        await self._apply_candidate(candidate)

    async def _apply_candidate(self, candidate: Dict[str, Any]):
        try:
            await self.peer_connection.addIceCandidate(candidate_from_dict(candidate))
        except Exception as e:
            # Rejected candidates do not end the session
            self.log_warning("Failed to add ICE candidate", {
                "remote_id": self.remote_id,
                "candidate": candidate.get("candidate"),
                "error": str(e),
                "error_type": type(e).__name__
            })

    def mark_established(self):
        if self.is_terminal:
            return
        self._transition(NegotiationState.ESTABLISHED)

    def fail(self, error: Exception, kind: Optional[str] = None):
        self.log_error("Negotiation failed", {
            "remote_id": self.remote_id,
            "role": self.role.value,
            "state": self.state.value,
            "signal": kind,
            "error": str(error),
            "error_type": type(error).__name__
        })
        self.state = NegotiationState.FAILED

    def mark_closed(self):
        """Enter CLOSED and stop the worker. The peer connection is closed by the caller."""
        if self.state != NegotiationState.CLOSED:
            self._transition(NegotiationState.CLOSED)
        if self._worker is not None and self._worker is not asyncio.current_task():
            self._worker.cancel()
        self._worker = None
        self.pending_remote_candidates = []

    def _require_state(self, expected: NegotiationState, kind: str):
        if self.state != expected:
            raise NegotiationError(f"'{kind}' not valid in state {self.state.value}", {
                "remote_id": self.remote_id
            })

    def _transition(self, new_state: NegotiationState):
        self.log_debug("Negotiation state change", {
            "remote_id": self.remote_id,
            "from": self.state.value,
            "to": new_state.value
        })
        self.state = new_state
