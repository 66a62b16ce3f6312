"""STT (Speech-to-Text) 모듈.

외부 음성 인식 제공자의 스트림을 감독하고 재시작합니다.

Classes:
    TranscriptionSupervisor: 생존 플래그 기반 재시작 루프
    TranscriptionProvider: 음성 인식 제공자 인터페이스
    ManualTranscriptionProvider: 입력 텍스트 기반 제공자 (콘솔 테스트용)
    TranscriptEvent: 인식 결과

Config:
    streaming_config: 재시작 정책
    recognition_config: 언어 → 로케일 매핑
"""

from .supervisor import TranscriptionSupervisor
from .provider import TranscriptionProvider, ManualTranscriptionProvider, TranscriptEvent
from .config import (
    streaming_config,
    recognition_config,
    StreamingConfig,
    RecognitionConfig,
)

__all__ = [
    # Service
    "TranscriptionSupervisor",
    "TranscriptionProvider",
    "ManualTranscriptionProvider",
    "TranscriptEvent",
    # Config
    "streaming_config",
    "recognition_config",
    "StreamingConfig",
    "RecognitionConfig",
]
