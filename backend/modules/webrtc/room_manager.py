"""룸 기반 피어 관리 모듈.

이 모듈은 1:1 통화 시스템의 룸(세션)과 피어(참가자) 관리를 담당합니다.
여러 개의 독립적인 통화 세션을 동시에 관리하며, 각 룸에는 최대 두 명의
참가자만 입장할 수 있습니다.

주요 기능:
    - 룸 생성 및 삭제 (첫 입장 시 자동 생성/비어있을 때 자동 삭제)
    - 입장 순서 기반 역할 배정 (initiator / responder)
    - 정원 초과 입장 거절 (RoomFull)
    - 참가자 퇴장 관리 (멱등)

Architecture:
    - rooms: Dict[str, List[Peer]] - 룸 이름 → 입장 순서대로 정렬된 참가자 리스트
    - peer_to_room: Dict[str, str] - 참가자 ID → 룸 이름 (빠른 조회용)
    - room_locks: Dict[str, threading.Lock] - 룸별 변경 직렬화

Classes:
    Peer: 참가자 정보를 담는 데이터 클래스
    JoinResult / LeaveResult: join/leave 결과
    RoomManager: 룸 및 참가자 관리 클래스

Examples:
    기본 사용법:
        >>> manager = RoomManager()
        >>> result = manager.join_room("s1", "peer-123", websocket)
        >>> print(result.role, result.language)
        Role.INITIATOR en

See Also:
    routes/signaling.py: WebSocket 시그널링 엔드포인트
    relay.py: 시그널 메시지 중계
    lifecycle.py: 퇴장/연결 끊김 처리
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from fastapi import WebSocket

from ..shared import Role, RoomFull, AlreadyInRoom
from .config import signaling_config, SignalingConfig

logger = logging.getLogger(__name__)


@dataclass
class Peer:
    """룸에 참가한 피어(참가자)를 나타내는 데이터 클래스.

    Attributes:
        peer_id (str): 서버가 발급한 연결 식별자 (UUID)
        room_name (str): 소속 룸 이름
        role (Role): 입장 순서로 결정된 역할
        language (str): 역할에 따른 발화 언어
        websocket (WebSocket): 피어와의 WebSocket 연결 객체
    """
    peer_id: str
    room_name: str
    role: Role
    language: str
    websocket: WebSocket


@dataclass(frozen=True)
class JoinResult:
    """입장 결과.

    peer_id 는 이미 룸에 있던 상대 피어의 ID 입니다 (없으면 None).
    """
    role: Role
    language: str
    peer_language: str
    peer_id: Optional[str] = None


@dataclass(frozen=True)
class LeaveResult:
    """퇴장 결과. remaining_peer_id 는 룸에 남은 피어 (없으면 None)."""
    room_name: str
    remaining_peer_id: Optional[str] = None


class RoomManager:
    """룸과 피어를 관리하는 핵심 클래스.

    각 룸은 최대 두 명의 피어를 입장 순서대로 보관합니다. 첫 번째 입장자는
    initiator, 두 번째 입장자는 responder 역할을 받습니다. 두 번째 입장자의
    언어는 룸에 남아 있던 피어 언어의 반대쪽입니다.

    Attributes:
        rooms (Dict[str, List[Peer]]): 룸 이름 → 참가자 리스트 (입장 순서)
        peer_to_room (Dict[str, str]): 피어 ID → 룸 이름 역 매핑

    Thread Safety:
        - 같은 룸에 대한 join/leave 는 룸별 락으로 직렬화됨
        - 서로 다른 룸의 변경은 독립적으로 진행됨
        - 락 테이블 자체는 _guard 락으로 보호됨
        - 임계 구역 안에서는 await 하지 않으므로 이벤트 루프를 막지 않음

    Examples:
        >>> manager = RoomManager()
        >>> manager.join_room("s1", "peer-123", ws1).role
        <Role.INITIATOR: 'initiator'>
        >>> manager.join_room("s1", "peer-456", ws2).peer_id
        'peer-123'
        >>> manager.join_room("s1", "peer-789", ws3)
        Traceback (most recent call last):
        RoomFull: Room 's1' is full
    """

    def __init__(self, config: SignalingConfig = signaling_config):
        """RoomManager 초기화.

        Args:
            config (SignalingConfig): 정원/역할 언어 설정
        """
        self.config = config

        # room_name -> [Peer] (join order)
        self.rooms: Dict[str, List[Peer]] = {}

        # peer_id -> room_name (for quick lookup)
        self.peer_to_room: Dict[str, str] = {}

        self._room_locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @contextmanager
    def _locked_room(self, room_name: str) -> Iterator[None]:
        """룸 하나에 대한 변경 구간을 직렬화합니다.

        락을 획득한 뒤 테이블의 락이 바뀌었으면 (빈 룸 삭제로 교체된 경우)
        새 락으로 다시 시도합니다.
        """
        while True:
            with self._guard:
                lock = self._room_locks.setdefault(room_name, threading.Lock())
            lock.acquire()
            with self._guard:
                current = self._room_locks.get(room_name)
            if current is lock:
                break
            lock.release()
        try:
            yield
        finally:
            lock.release()

    def _discard_room(self, room_name: str) -> None:
        # 룸 락을 보유한 상태에서만 호출
        del self.rooms[room_name]
        with self._guard:
            self._room_locks.pop(room_name, None)
        logger.info(f"Room '{room_name}' deleted (empty)")

    def join_room(self, room_name: str, peer_id: str, websocket: WebSocket) -> JoinResult:
        """피어를 지정된 룸에 추가하고 역할을 배정합니다.

        정원 확인과 역할 배정은 하나의 원자적 구간에서 수행되므로, 동시에
        입장한 두 피어가 같은 역할을 받는 일은 없습니다.

        Args:
            room_name (str): 참가할 룸의 이름
            peer_id (str): 참가하는 피어의 고유 ID
            websocket (WebSocket): 피어의 WebSocket 연결 객체

        Returns:
            JoinResult: 배정된 역할/언어와 기존 상대 피어 ID

        Raises:
            RoomFull: 룸에 이미 두 명이 있는 경우 (멤버십 변경 없음)
            AlreadyInRoom: 해당 피어가 이미 어떤 룸에 참가한 경우
        """
        existing_room = self.peer_to_room.get(peer_id)
        if existing_room is not None:
            raise AlreadyInRoom(peer_id, existing_room)

        with self._locked_room(room_name):
            peers = self.rooms.get(room_name, [])
            if len(peers) >= self.config.MAX_PARTICIPANTS:
                logger.info(f"Peer {peer_id} rejected from room '{room_name}' (full)")
                raise RoomFull(room_name)

            if not peers:
                self.rooms[room_name] = peers
                logger.info(f"Room '{room_name}' created")

            role = Role.INITIATOR if not peers else Role.RESPONDER
            if peers:
                # initiator 가 나간 룸에 재입장해도 두 참가자의 언어는 서로 다름
                peer_language = peers[0].language
                language = self.config.counterpart_language(peer_language)
                existing_peer_id = peers[0].peer_id
            else:
                language = self.config.language_for(role.value)
                peer_language = self.config.counterpart_language(language)
                existing_peer_id = None

            peers.append(Peer(
                peer_id=peer_id,
                room_name=room_name,
                role=role,
                language=language,
                websocket=websocket,
            ))
            self.peer_to_room[peer_id] = room_name

        logger.info(f"Peer {peer_id} joined room '{room_name}' as {role.value} ({language}). "
                    f"Room has {len(peers)} peers")

        return JoinResult(
            role=role,
            language=language,
            peer_language=peer_language,
            peer_id=existing_peer_id,
        )

    def leave_room(self, peer_id: str) -> Optional[LeaveResult]:
        """피어를 현재 속한 룸에서 제거합니다.

        이미 제거된 피어에 대해 호출하면 아무 작업 없이 None 을 반환합니다.
        마지막 참가자가 퇴장하면 룸이 삭제됩니다.

        Args:
            peer_id (str): 퇴장할 피어의 고유 ID

        Returns:
            Optional[LeaveResult]: 피어가 속해있던 룸과 남은 피어 ID.
                                   피어가 어떤 룸에도 속하지 않았으면 None
        """
        room_name = self.peer_to_room.get(peer_id)
        if not room_name:
            return None

        with self._locked_room(room_name):
            peers = self.rooms.get(room_name, [])
            if not any(p.peer_id == peer_id for p in peers):
                return None

            peers[:] = [p for p in peers if p.peer_id != peer_id]
            self.peer_to_room.pop(peer_id, None)

            if not peers:
                self._discard_room(room_name)
                return LeaveResult(room_name=room_name)

            remaining = peers[0].peer_id

        logger.info(f"Peer {peer_id} left room '{room_name}'. Room has {len(peers)} peers")
        return LeaveResult(room_name=room_name, remaining_peer_id=remaining)

    def get_room_peers(self, room_name: str) -> List[Peer]:
        """특정 룸의 모든 피어 목록을 입장 순서대로 반환합니다."""
        return list(self.rooms.get(room_name, []))

    def get_other_peer(self, peer_id: str) -> Optional[Peer]:
        """같은 룸의 상대 피어를 반환합니다.

        Args:
            peer_id (str): 기준 피어의 ID

        Returns:
            Optional[Peer]: 상대 피어. 혼자 있거나 룸에 없으면 None
        """
        room_name = self.peer_to_room.get(peer_id)
        if not room_name:
            return None
        for peer in self.rooms.get(room_name, []):
            if peer.peer_id != peer_id:
                return peer
        return None

    def get_peer_room(self, peer_id: str) -> Optional[str]:
        """피어가 속한 룸의 이름을 반환합니다."""
        return self.peer_to_room.get(peer_id)

    def lookup_peer(self, peer_id: str) -> Optional[Peer]:
        """피어 ID로 Peer 객체를 조회합니다.

        Returns:
            Optional[Peer]: Peer 객체. 현재 참가 중이 아니면 None
        """
        room_name = self.peer_to_room.get(peer_id)
        if room_name:
            for peer in self.rooms.get(room_name, []):
                if peer.peer_id == peer_id:
                    return peer
        return None

    def get_room_list(self) -> List[dict]:
        """모든 룸의 정보를 리스트로 반환합니다.

        Returns:
            List[dict]: room_name, peer_count, peers(peer_id/role/language) 를 담은 딕셔너리 리스트
        """
        return [
            {
                "room_name": room_name,
                "peer_count": len(peers),
                "peers": [{"peer_id": p.peer_id, "role": p.role.value, "language": p.language}
                          for p in peers]
            }
            for room_name, peers in list(self.rooms.items())
        ]

    def get_room_count(self, room_name: str) -> int:
        """특정 룸의 현재 참가자 수를 반환합니다. 룸이 없으면 0."""
        return len(self.rooms.get(room_name, []))

    def has_room(self, room_name: str) -> bool:
        """룸이 레지스트리에 존재하는지 여부."""
        return room_name in self.rooms
