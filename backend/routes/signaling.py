"""WebRTC 시그널링 WebSocket 라우터.

1:1 통화 시그널링을 위한 WebSocket 엔드포인트를 제공합니다.
룸 참가/퇴장, offer/answer/ICE candidate 중계, 번역 자막 중계를 담당합니다.
"""

import logging
import uuid
from typing import Optional, TYPE_CHECKING

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from modules.shared import (
    EventType,
    Frame,
    JoinRoomPayload,
    SignalEnvelope,
    CaptionPayload,
    RoomFull,
    AlreadyInRoom,
    make_frame,
)

if TYPE_CHECKING:
    from modules import RoomManager, SignalRelay, SessionLifecycleMonitor

logger = logging.getLogger(__name__)

router = APIRouter()

# 글로벌 매니저 참조 (app.py에서 설정됨)
_room_manager: Optional["RoomManager"] = None
_relay: Optional["SignalRelay"] = None
_lifecycle: Optional["SessionLifecycleMonitor"] = None


def init_managers(
    room_manager: "RoomManager",
    relay: "SignalRelay",
    lifecycle: "SessionLifecycleMonitor",
):
    """매니저 인스턴스를 초기화합니다.

    app.py에서 호출하여 글로벌 매니저 참조를 설정합니다.

    Args:
        room_manager: RoomManager 인스턴스
        relay: SignalRelay 인스턴스
        lifecycle: SessionLifecycleMonitor 인스턴스
    """
    global _room_manager, _relay, _lifecycle
    _room_manager = room_manager
    _relay = relay
    _lifecycle = lifecycle
    logger.info("시그널링 라우터 매니저 초기화 완료")


def get_room_manager() -> Optional["RoomManager"]:
    """현재 등록된 RoomManager 를 반환합니다."""
    return _room_manager


async def _send_error(websocket: WebSocket, message: str):
    await websocket.send_json(make_frame(EventType.ERROR, {"message": message}))


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """1:1 통화 시그널링을 위한 WebSocket 엔드포인트.

    처리하는 메시지 타입:
        - join-room: 룸 참가 (sessionKey)
        - signal: offer/answer/ice-candidate 를 상대에게 중계
        - send-caption: 번역 자막을 상대에게 중계
        - end-call: 통화 종료 (룸 퇴장, 연결은 유지)

    잘못된 프레임은 error 메시지로 응답하고 루프는 계속됩니다.

    Args:
        websocket: FastAPI WebSocket 연결 객체
    """
    if _room_manager is None or _relay is None or _lifecycle is None:
        logger.error("매니저가 초기화되지 않음")
        await websocket.close(code=1011, reason="Server not ready")
        return

    await websocket.accept()

    peer_id = str(uuid.uuid4())
    logger.info(f"피어 {peer_id} 연결됨")

    # 클라이언트에 peer ID 전송
    await websocket.send_json(make_frame(EventType.CONNECTED, {"peerId": peer_id}))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = Frame.model_validate_json(raw)
            except ValidationError as e:
                logger.warning(f"피어 {peer_id}의 잘못된 프레임: {e}")
                await _send_error(websocket, "Malformed frame")
                continue

            message_type = frame.type

            if message_type == EventType.JOIN_ROOM.value:
                await _handle_join_room(websocket, peer_id, frame.data)

            elif message_type == EventType.SIGNAL.value:
                await _handle_signal(websocket, peer_id, frame.data)

            elif message_type == EventType.SEND_CAPTION.value:
                await _handle_send_caption(websocket, peer_id, frame.data)

            elif message_type == EventType.END_CALL.value:
                await _lifecycle.handle_departure(peer_id, reason="end-call")

            else:
                logger.warning(f"알 수 없는 메시지 타입: {message_type}")
                await _send_error(websocket, f"Unknown message type: {message_type}")

    except WebSocketDisconnect:
        logger.info(f"피어 {peer_id} 연결 끊김")
    except Exception as e:
        logger.error(f"피어 {peer_id}의 WebSocket 연결 중 오류: {e}")
    finally:
        await _lifecycle.handle_departure(peer_id, reason="disconnect")
        logger.info(f"피어 {peer_id} 정리 완료")


async def _handle_join_room(websocket: WebSocket, peer_id: str, data: dict):
    """방 입장 처리.

    입장한 피어에게 language-assigned 를 보내고, 상대가 이미 있으면
    양쪽 모두에게 user-joined 를 한 번씩 보냅니다. user-joined 의 offerer 는
    먼저 입장해 있던 피어에게만 True 입니다 (initiator 가 나간 뒤 재입장한
    경우에도 offer 를 보낼 피어가 정확히 하나).
    """
    try:
        payload = JoinRoomPayload.model_validate(data)
    except ValidationError:
        await _send_error(websocket, "Invalid join-room payload")
        return

    room_name = payload.session_key or _room_manager.config.DEFAULT_SESSION_KEY

    try:
        result = _room_manager.join_room(room_name, peer_id, websocket)
    except RoomFull:
        await websocket.send_json(make_frame(EventType.ROOM_FULL))
        return
    except AlreadyInRoom as e:
        await _send_error(websocket, str(e))
        return

    await websocket.send_json(make_frame(EventType.LANGUAGE_ASSIGNED, {
        "language": result.language,
        "role": result.role.value,
        "peerLanguage": result.peer_language,
    }))

    if result.peer_id:
        # offer 는 룸에서 먼저 기다리던 피어가 보냄
        await websocket.send_json(make_frame(EventType.USER_JOINED, {
            "peerId": result.peer_id,
            "offerer": False,
        }))
        existing = _room_manager.lookup_peer(result.peer_id)
        if existing is not None:
            try:
                await existing.websocket.send_json(make_frame(EventType.USER_JOINED, {
                    "peerId": peer_id,
                    "offerer": True,
                }))
            except Exception as e:
                logger.warning(f"피어 {existing.peer_id}에 user-joined 전송 실패: {e}")

    logger.info(f"피어 {peer_id}가 방 '{room_name}'에 {result.role.value}로 입장함")


async def _handle_signal(websocket: WebSocket, peer_id: str, data: dict):
    """협상 메시지 중계. sender 는 서버가 덮어씁니다."""
    try:
        envelope = SignalEnvelope.model_validate({**data, "sender": peer_id})
    except ValidationError:
        await _send_error(websocket, "Invalid signal payload")
        return

    await _relay.relay(envelope)


async def _handle_send_caption(websocket: WebSocket, peer_id: str, data: dict):
    """자막 중계."""
    try:
        caption = CaptionPayload.model_validate(data)
    except ValidationError:
        await _send_error(websocket, "Invalid caption payload")
        return

    await _relay.relay_caption(peer_id, caption)
