"""STT 모듈 설정.

음성 인식 스트림 재시작 정책과 언어 → 인식 로케일 매핑.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import Dict

# 환경변수 로드 (상위에서 이미 로드됨)
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_path = Path(__file__).parent.parent.parent / "config" / ".env"
load_dotenv(_env_path)


# ============================================================
# 스트리밍 재시작 설정
# ============================================================

@dataclass(frozen=True)
class StreamingConfig:
    """음성 인식 스트림 재시작 설정."""

    # 정상 종료 후 재시작 대기 (초) - 짧을수록 인식 공백 감소
    RESTART_DELAY: float = float(os.getenv("STT_RESTART_DELAY", "0.05"))

    # 오류 후 재시작 대기 (초)
    ERROR_RESTART_DELAY: float = float(os.getenv("STT_ERROR_RESTART_DELAY", "1.0"))

    # 연속 오류 허용 횟수
    MAX_RETRIES: int = int(os.getenv("STT_MAX_RETRIES", "100"))


# ============================================================
# 인식 로케일 설정
# ============================================================

@dataclass(frozen=True)
class RecognitionConfig:
    """언어 코드 → 음성 인식 로케일."""

    SPEECH_LOCALES: Dict[str, str] = field(
        default_factory=lambda: {
            "en": "en-US",
            "ja": "ja-JP",
            "ko": "ko-KR",
        }
    )

    def locale_for(self, language: str) -> str:
        """언어 코드에 해당하는 인식 로케일 (미등록 언어는 그대로 사용)."""
        return self.SPEECH_LOCALES.get(language, language)


# ============================================================
# 싱글톤 인스턴스
# ============================================================

streaming_config = StreamingConfig()
recognition_config = RecognitionConfig()
