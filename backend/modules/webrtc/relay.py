"""시그널 메시지 중계 모듈.

같은 룸의 상대 피어에게 협상 메시지(offer/answer/ICE candidate)와 자막을
그대로 전달합니다. payload 는 해석하지 않으며, 대상이 없으면 조용히 버립니다.
"""
import logging
from typing import Optional

from ..shared import EventType, SignalEnvelope, CaptionPayload, make_frame
from .room_manager import RoomManager, Peer

logger = logging.getLogger(__name__)


class SignalRelay:
    """피어 간 순수 라우터.

    협상 로직이나 payload 검증 없이 target 존재 여부만 확인합니다.
    전달에 실패하거나 대상이 없으면 메시지는 버려지고, 상대의 이탈은
    이후 SessionLifecycleMonitor 의 user-left 알림으로 드러납니다.

    Attributes:
        room_manager (RoomManager): 참가자 조회용 레지스트리
    """

    def __init__(self, room_manager: RoomManager):
        self.room_manager = room_manager

    def _resolve_target(self, sender_id: str, target_id: str) -> Optional[Peer]:
        sender_room = self.room_manager.get_peer_room(sender_id)
        if sender_room is None:
            return None
        target = self.room_manager.lookup_peer(target_id)
        if target is None or target.room_name != sender_room or target.peer_id == sender_id:
            return None
        return target

    async def relay(self, envelope: SignalEnvelope) -> bool:
        """협상 메시지를 대상 피어에게 전달합니다.

        Args:
            envelope (SignalEnvelope): sender 가 채워진 시그널 메시지

        Returns:
            bool: 전달 여부 (대상 없음/전송 실패 시 False)
        """
        target = self._resolve_target(envelope.sender, envelope.target)
        if target is None:
            logger.debug(f"[Relay] {envelope.kind.value} 드랍: 대상 {envelope.target} 없음 "
                         f"(sender={envelope.sender})")
            return False

        return await self._send(target, make_frame(EventType.SIGNAL, envelope.to_wire()))

    async def relay_caption(self, sender_id: str, caption: CaptionPayload) -> bool:
        """자막을 같은 룸의 상대 피어에게 전달합니다. 상대가 없으면 버립니다."""
        target = self.room_manager.get_other_peer(sender_id)
        if target is None:
            logger.debug(f"[Relay] 자막 드랍: {sender_id} 의 상대 없음")
            return False

        return await self._send(target, make_frame(EventType.NEW_CAPTION, caption.model_dump()))

    async def _send(self, target: Peer, frame: dict) -> bool:
        try:
            await target.websocket.send_json(frame)
            return True
        except Exception as e:
            logger.warning(f"[Relay] 피어 {target.peer_id}에 {frame['type']} 전송 실패: {e}")
            return False
