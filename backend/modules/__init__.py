"""Backend modules package.

이 패키지는 1:1 실시간 통역 통화 시스템의 핵심 모듈을 포함합니다.

Modules:
    shared: 서버/클라이언트 공용 메시지 DTO 및 예외
    webrtc: 룸 관리, 시그널 중계, 세션 생명주기 (서버)
    client: 협상 상태 머신, 자막 중계, 번역, 통화 클라이언트
    stt: 음성 인식 스트림 감독 (재시작 루프)

NOTE: 서버 기동 시 aiortc 를 불러오지 않도록 client/stt 는 직접 import 합니다.
"""

# 가벼운 모듈만 즉시 import
from .shared import (
    EventType,
    SignalKind,
    Role,
    SignalEnvelope,
    CaptionPayload,
    SignalingError,
    RoomFull,
    PeerUnreachable,
)
from .webrtc import RoomManager, SignalRelay, SessionLifecycleMonitor


__all__ = [
    # Shared
    "EventType",
    "SignalKind",
    "Role",
    "SignalEnvelope",
    "CaptionPayload",
    "SignalingError",
    "RoomFull",
    "PeerUnreachable",
    # WebRTC signaling
    "RoomManager",
    "SignalRelay",
    "SessionLifecycleMonitor",
]
