"""음성 인식 제공자 인터페이스.

실제 음성 인식 엔진은 외부 구성요소이며, 이 모듈은 감독 루프가 소비하는
좁은 인터페이스만 정의합니다. 스트림이 끝나는 것은 서비스 종료 이벤트이며
감독자가 재시작 여부를 결정합니다.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranscriptEvent:
    """인식 결과 (중간/최종)."""
    text: str
    is_final: bool = True


class TranscriptionProvider(ABC):
    """음성 인식 스트림 제공자."""

    @abstractmethod
    def stream(self, locale: str) -> AsyncIterator[TranscriptEvent]:
        """인식 결과를 비동기로 내보냅니다.

        Args:
            locale: 인식 로케일 (예: "en-US")

        Yields:
            TranscriptEvent: 중간/최종 인식 결과

        Raises:
            TranscriptionServiceInterrupted: 서비스가 비정상 종료된 경우
        """


class ManualTranscriptionProvider(TranscriptionProvider):
    """직접 입력한 텍스트를 최종 인식 결과로 내보내는 제공자 (콘솔 테스트용).

    Examples:
        >>> provider = ManualTranscriptionProvider()
        >>> provider.push("hello")
        >>> provider.end_of_service()  # 현재 스트림 종료 → 감독자가 재시작
    """

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()

    def push(self, text: str) -> None:
        self._queue.put_nowait(text)

    def end_of_service(self) -> None:
        self._queue.put_nowait(None)

    async def stream(self, locale: str) -> AsyncIterator[TranscriptEvent]:
        logger.info(f"[STT] 수동 입력 스트림 시작 (locale={locale})")
        while True:
            text: Optional[str] = await self._queue.get()
            if text is None:
                logger.info("[STT] 수동 입력 스트림 종료")
                return
            yield TranscriptEvent(text=text, is_final=True)
