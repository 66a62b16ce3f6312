"""세션 생명주기 모니터.

명시적 퇴장(end-call)과 비정상 연결 끊김을 같은 경로로 처리합니다.
RoomManager.leave_room 이 멱등이므로 같은 연결에 대한 중복 신호는
한 번의 정리와 최대 한 번의 user-left 알림만 발생시킵니다.
"""
import logging
from typing import Optional

from ..shared import EventType, make_frame
from .room_manager import RoomManager, LeaveResult

logger = logging.getLogger(__name__)


class SessionLifecycleMonitor:
    """피어 이탈 시 룸 상태를 회수하고 남은 피어에게 알립니다."""

    def __init__(self, room_manager: RoomManager):
        self.room_manager = room_manager

    async def handle_departure(self, peer_id: str, reason: str = "disconnect") -> Optional[LeaveResult]:
        """피어 이탈을 처리합니다.

        Args:
            peer_id (str): 이탈한 피어 ID
            reason (str): 로그용 사유 ("end-call", "disconnect" 등)

        Returns:
            Optional[LeaveResult]: 실제로 퇴장 처리된 경우 결과, 이미 처리된 경우 None
        """
        result = self.room_manager.leave_room(peer_id)
        if result is None:
            logger.debug(f"[Lifecycle] 피어 {peer_id} 이미 정리됨 (reason={reason})")
            return None

        logger.info(f"[Lifecycle] 피어 {peer_id}가 룸 '{result.room_name}'에서 이탈 (reason={reason})")

        if result.remaining_peer_id:
            remaining = self.room_manager.lookup_peer(result.remaining_peer_id)
            if remaining is not None:
                try:
                    await remaining.websocket.send_json(
                        make_frame(EventType.USER_LEFT, {"peerId": peer_id})
                    )
                except Exception as e:
                    logger.warning(f"[Lifecycle] 피어 {remaining.peer_id}에 user-left 전송 실패: {e}")

        return result
