"""Health Check API 라우터.

시그널링 서버 상태 확인을 위한 엔드포인트들을 제공합니다.
"""

from fastapi import APIRouter

from .signaling import get_room_manager

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health_check():
    """시그널링 서버 상태를 확인합니다.

    Returns:
        dict: 레지스트리 초기화 여부와 룸/참가자 수
    """
    room_manager = get_room_manager()
    if room_manager is None:
        return {"status": "not_initialized", "rooms": 0, "peers": 0}

    rooms = room_manager.get_room_list()
    return {
        "status": "ok",
        "rooms": len(rooms),
        "peers": sum(room["peer_count"] for room in rooms),
    }
