"""통화 클라이언트 설정.

시그널링 서버 주소, 로컬 미디어 소스, 번역 API 설정.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

# 환경변수 로드 (상위에서 이미 로드됨)
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_path = Path(__file__).parent.parent.parent / "config" / ".env"
load_dotenv(_env_path)


# ============================================================
# 시그널링/미디어 설정
# ============================================================

@dataclass(frozen=True)
class ClientConfig:
    """통화 클라이언트 설정."""

    # 시그널링 서버 WebSocket URL
    SERVER_URL: str = os.getenv("SIGNALING_SERVER_URL", "ws://localhost:8000/ws")

    # 참가할 세션 키 (없으면 서버 기본 룸)
    SESSION_KEY: Optional[str] = os.getenv("SESSION_KEY")

    # 로컬 미디어 소스 (aiortc MediaPlayer 입력, 예: "/dev/video0", "default")
    MEDIA_SOURCE: Optional[str] = os.getenv("MEDIA_SOURCE")

    # MediaPlayer 포맷 (예: "v4l2", "pulse", "avfoundation")
    MEDIA_FORMAT: Optional[str] = os.getenv("MEDIA_FORMAT")


# ============================================================
# 번역 API 설정
# ============================================================

@dataclass(frozen=True)
class TranslationConfig:
    """번역 API 설정."""

    API_URL: str = os.getenv("TRANSLATION_API_URL", "https://api.mymemory.translated.net/get")

    # 요청 타임아웃 (초)
    TIMEOUT: float = float(os.getenv("TRANSLATION_TIMEOUT", "10"))


# ============================================================
# 싱글톤 인스턴스
# ============================================================

client_config = ClientConfig()
translation_config = TranslationConfig()
