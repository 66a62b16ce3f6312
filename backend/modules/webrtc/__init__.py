"""WebRTC 시그널링 서버 모듈.

룸 관리, 시그널 중계, 세션 생명주기 처리 기능을 제공합니다.

Classes:
    RoomManager: 두 명 정원의 룸 및 참가자 관리
    Peer: 참가자 데이터 클래스
    SignalRelay: 협상 메시지/자막 중계
    SessionLifecycleMonitor: 퇴장/연결 끊김 처리

Config:
    ice_config: ICE 서버 설정
    signaling_config: 룸 정원/역할 언어 설정
    connection_config: 협상 타임아웃 설정
"""

from .room_manager import RoomManager, Peer, JoinResult, LeaveResult
from .relay import SignalRelay
from .lifecycle import SessionLifecycleMonitor
from .config import (
    ice_config,
    signaling_config,
    connection_config,
    ICEServerConfig,
    SignalingConfig,
    ConnectionConfig,
)

__all__ = [
    # Classes
    "RoomManager",
    "Peer",
    "JoinResult",
    "LeaveResult",
    "SignalRelay",
    "SessionLifecycleMonitor",
    # Config
    "ice_config",
    "signaling_config",
    "connection_config",
    "ICEServerConfig",
    "SignalingConfig",
    "ConnectionConfig",
]
