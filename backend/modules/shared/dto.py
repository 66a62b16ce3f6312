"""Lightweight shared DTOs for server/client signaling messages.

모든 WebSocket 프레임은 ``{"type": <event>, "data": {...}}`` 형태입니다.
서버와 클라이언트가 같은 모델을 사용하여 직렬화/검증합니다.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    """WebSocket 이벤트 이름."""

    CONNECTED = "connected"
    JOIN_ROOM = "join-room"
    LANGUAGE_ASSIGNED = "language-assigned"
    ROOM_FULL = "room-full"
    USER_JOINED = "user-joined"
    SIGNAL = "signal"
    SEND_CAPTION = "send-caption"
    NEW_CAPTION = "new-caption"
    END_CALL = "end-call"
    USER_LEFT = "user-left"
    ERROR = "error"


class SignalKind(str, Enum):
    """협상 메시지 종류."""

    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"


class Role(str, Enum):
    """입장 순서로 결정되는 참가자 역할."""

    INITIATOR = "initiator"
    RESPONDER = "responder"


class Frame(BaseModel):
    """WebSocket 프레임 (type + data)."""

    type: str
    data: Dict[str, Any] = Field(default_factory=dict)


class JoinRoomPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_key: Optional[str] = Field(default=None, alias="sessionKey")


class SignalEnvelope(BaseModel):
    """피어 간 협상 메시지.

    ``payload`` 는 서버가 해석하지 않는 불투명 데이터입니다 (SDP, ICE candidate).
    서버는 릴레이 시 ``sender`` 만 채워 넣습니다.
    """

    model_config = ConfigDict(populate_by_name=True)

    target: str
    sender: Optional[str] = None
    kind: SignalKind = Field(alias="type")
    payload: Any = Field(default=None, alias="data")

    def to_wire(self) -> Dict[str, Any]:
        """``signal`` 프레임의 data 부분으로 직렬화합니다."""
        return self.model_dump(by_alias=True, mode="json")


class CaptionPayload(BaseModel):
    """번역 자막 한 쌍."""

    original: str
    translated: str


def make_frame(event: EventType, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """전송용 프레임 딕셔너리를 만듭니다."""
    return {"type": event.value, "data": data or {}}
