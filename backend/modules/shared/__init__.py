"""Shared DTOs and error types used by both the server and the call client.

Only lightweight, common data models should live here. Do not place
transport or media logic (e.g., FastAPI, aiortc) in this package.
"""

from .dto import (
    EventType,
    SignalKind,
    Role,
    Frame,
    JoinRoomPayload,
    SignalEnvelope,
    CaptionPayload,
    make_frame,
)
from .errors import (
    SignalingError,
    RoomFull,
    AlreadyInRoom,
    PeerUnreachable,
    StaleNegotiationMessage,
    MediaAcquisitionFailure,
    TranslationFailure,
    TranscriptionServiceInterrupted,
)

__all__ = [
    # DTOs
    "EventType",
    "SignalKind",
    "Role",
    "Frame",
    "JoinRoomPayload",
    "SignalEnvelope",
    "CaptionPayload",
    "make_frame",
    # Errors
    "SignalingError",
    "RoomFull",
    "AlreadyInRoom",
    "PeerUnreachable",
    "StaleNegotiationMessage",
    "MediaAcquisitionFailure",
    "TranslationFailure",
    "TranscriptionServiceInterrupted",
]
