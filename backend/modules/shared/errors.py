"""시그널링/통화 전반에서 공유하는 예외 타입.

사용자에게 노출되는 실패는 RoomFull, MediaAcquisitionFailure 뿐이며
나머지는 로그만 남기고 복구되는 일시적 상황입니다.
"""

from typing import Optional


class SignalingError(Exception):
    """시그널링 계층 예외의 기반 클래스."""


class RoomFull(SignalingError):
    """룸에 이미 두 명이 참가해 있어 입장이 거절됨."""

    def __init__(self, session_key: str):
        super().__init__(f"Room '{session_key}' is full")
        self.session_key = session_key


class AlreadyInRoom(SignalingError):
    """이미 룸에 참가한 연결이 다시 입장을 시도함."""

    def __init__(self, connection_id: str, session_key: str):
        super().__init__(f"Connection {connection_id} is already in room '{session_key}'")
        self.connection_id = connection_id
        self.session_key = session_key


class PeerUnreachable(SignalingError):
    """상대 피어에게 도달할 수 없음 (릴레이 대상 없음 또는 협상 타임아웃)."""

    def __init__(self, peer_id: Optional[str] = None, reason: str = ""):
        super().__init__(f"Peer {peer_id} unreachable: {reason}" if reason else f"Peer {peer_id} unreachable")
        self.peer_id = peer_id
        self.reason = reason


class StaleNegotiationMessage(SignalingError):
    """현재 협상 상태에서 의미가 없는 메시지 (무시 대상)."""


class MediaAcquisitionFailure(SignalingError):
    """카메라/마이크 획득 실패. 통화 시작에 치명적이며 자동 재시도하지 않음."""


class TranslationFailure(SignalingError):
    """번역 서비스 호출 실패. 원문으로 대체 가능."""


class TranscriptionServiceInterrupted(SignalingError):
    """음성 인식 서비스 스트림 종료. 통화 중이면 자동 재시작."""


__all__ = [
    "SignalingError",
    "RoomFull",
    "AlreadyInRoom",
    "PeerUnreachable",
    "StaleNegotiationMessage",
    "MediaAcquisitionFailure",
    "TranslationFailure",
    "TranscriptionServiceInterrupted",
]
