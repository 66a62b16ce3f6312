"""WebRTC 시그널링 모듈 설정.

TURN/STUN 서버, 룸/역할 설정, 협상 타임아웃 등 환경변수 기반 설정.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

# 환경변수 로드 (상위에서 이미 로드됨)
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_path = Path(__file__).parent.parent.parent / "config" / ".env"
load_dotenv(_env_path)


# ============================================================
# ICE Server 설정
# ============================================================

@dataclass(frozen=True)
class ICEServerConfig:
    """클라이언트에 전달할 STUN/TURN 서버 설정."""

    # TURN 서버 (외부 coturn 등, 여기서는 설정만 전달)
    TURN_SERVER_URL: Optional[str] = os.getenv("TURN_SERVER_URL")
    TURN_USERNAME: Optional[str] = os.getenv("TURN_USERNAME")
    TURN_CREDENTIAL: Optional[str] = os.getenv("TURN_CREDENTIAL")

    # STUN 서버
    STUN_SERVER_URL: Optional[str] = os.getenv("STUN_SERVER_URL")

    # 공개 STUN 서버 (쉼표 구분, 항상 포함)
    DEFAULT_STUN_SERVERS: Tuple[str, ...] = tuple(
        url.strip()
        for url in os.getenv(
            "STUN_FALLBACK_SERVERS", "stun:stun.l.google.com:19302,stun:stun1.l.google.com:19302"
        ).split(",")
        if url.strip()
    )

    @property
    def has_turn_server(self) -> bool:
        """TURN 서버 설정 완료 여부."""
        return all([self.TURN_SERVER_URL, self.TURN_USERNAME, self.TURN_CREDENTIAL])

    def as_ice_servers(self) -> List[dict]:
        """브라우저/클라이언트용 iceServers 리스트."""
        ice_servers = []
        if self.STUN_SERVER_URL:
            ice_servers.append({"urls": self.STUN_SERVER_URL})
        for stun_url in self.DEFAULT_STUN_SERVERS:
            ice_servers.append({"urls": stun_url})
        if self.has_turn_server:
            ice_servers.append({
                "urls": self.TURN_SERVER_URL,
                "username": self.TURN_USERNAME,
                "credential": self.TURN_CREDENTIAL,
            })
        return ice_servers


# ============================================================
# 룸/역할 설정
# ============================================================

@dataclass(frozen=True)
class SignalingConfig:
    """룸 정원과 역할별 언어 설정."""

    # 룸 최대 인원 (두 명 페어링 고정)
    MAX_PARTICIPANTS: int = 2

    # session key 없이 join-room 요청 시 사용할 룸
    DEFAULT_SESSION_KEY: str = os.getenv("DEFAULT_SESSION_KEY", "main-room")

    # 역할 → 언어 매핑
    ROLE_LANGUAGES: Dict[str, str] = field(
        default_factory=lambda: {
            "initiator": os.getenv("INITIATOR_LANGUAGE", "en"),
            "responder": os.getenv("RESPONDER_LANGUAGE", "ja"),
        }
    )

    def language_for(self, role: str) -> str:
        """역할에 해당하는 언어 코드."""
        return self.ROLE_LANGUAGES[role]

    def counterpart_language(self, language: str) -> str:
        """설정된 두 언어 중 주어진 언어의 반대쪽 언어."""
        for candidate in self.ROLE_LANGUAGES.values():
            if candidate != language:
                return candidate
        return language


# ============================================================
# WebRTC 연결 설정
# ============================================================

@dataclass(frozen=True)
class ConnectionConfig:
    """WebRTC 연결 관련 설정."""

    # 협상 타임아웃 (초) - 이 시간 안에 Connected 에 도달하지 못하면 종료
    NEGOTIATION_TIMEOUT: float = float(os.getenv("NEGOTIATION_TIMEOUT", "30"))


# ============================================================
# 싱글톤 인스턴스
# ============================================================

ice_config = ICEServerConfig()
signaling_config = SignalingConfig()
connection_config = ConnectionConfig()


# ============================================================
# 설정 로드 확인 로그
# ============================================================

logger.info(f"[WebRTC Config] .env 경로: {_env_path} (존재: {_env_path.exists()})")
logger.info(f"[WebRTC Config] TURN 서버 설정 완료: {ice_config.has_turn_server}")
logger.info(f"[WebRTC Config] 역할별 언어: {signaling_config.ROLE_LANGUAGES}")
logger.info(f"[WebRTC Config] 협상 타임아웃: {connection_config.NEGOTIATION_TIMEOUT}s")
