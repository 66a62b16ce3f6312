"""음성 인식 스트림 감독 모듈.

음성 인식 서비스는 주기적으로 스트림을 종료하므로 통화 중에는 계속
재시작해야 합니다. 재시작 전마다 생존 플래그를 확인하여, 통화 종료 후
뒤늦게 도착한 종료 이벤트가 루프를 되살리는 일이 없도록 합니다.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from ..shared import TranscriptionServiceInterrupted
from .config import streaming_config
from .provider import TranscriptionProvider

logger = logging.getLogger(__name__)


class TranscriptionSupervisor:
    """음성 인식 스트림을 감독하는 태스크.

    Attributes:
        provider (TranscriptionProvider): 음성 인식 제공자
        locale (str): 인식 로케일
        on_final (Callable): 최종 인식 결과 콜백 (text)

    Lifecycle:
        1. start(): 생존 플래그 설정 후 감독 태스크 시작
        2. 스트림 종료/중단 시 생존 플래그 확인 후 재시작
        3. stop(): 생존 플래그 해제 → 태스크 취소
    """

    def __init__(
        self,
        provider: TranscriptionProvider,
        locale: str,
        on_final: Callable[[str], Awaitable[None]],
        restart_delay: float = streaming_config.RESTART_DELAY,
        error_restart_delay: float = streaming_config.ERROR_RESTART_DELAY,
        max_retries: int = streaming_config.MAX_RETRIES,
    ):
        self.provider = provider
        self.locale = locale
        self.on_final = on_final
        self.restart_delay = restart_delay
        self.error_restart_delay = error_restart_delay
        self.max_retries = max_retries

        self._alive = False
        self._task: Optional[asyncio.Task] = None
        self.stream_count = 0

    @property
    def is_alive(self) -> bool:
        return self._alive

    def start(self) -> None:
        """감독 태스크를 시작합니다. 이미 실행 중이면 무시합니다."""
        if self._alive:
            return
        self._alive = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"[STT] 음성 인식 감독 시작 (locale={self.locale})")

    async def stop(self) -> None:
        """생존 플래그를 먼저 해제한 뒤 감독 태스크를 취소합니다."""
        self._alive = False
        task, self._task = self._task, None
        if task is None:
            return

        if task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("[STT] 음성 인식 감독 중지")

    async def _run(self) -> None:
        retry_count = 0

        while self._alive and retry_count < self.max_retries:
            self.stream_count += 1
            delay = self.restart_delay
            try:
                logger.info(f"[STT] 스트림 #{self.stream_count} 시작")
                async for event in self.provider.stream(self.locale):
                    if not self._alive:
                        return
                    text = event.text.strip()
                    if event.is_final and text:
                        await self.on_final(text)
                    else:
                        logger.debug(f"[STT] 중간 결과: {text}")

                logger.info(f"[STT] 스트림 #{self.stream_count} 정상 종료")

            except asyncio.CancelledError:
                logger.info("[STT] 음성 인식 태스크 취소됨")
                raise

            except TranscriptionServiceInterrupted as e:
                logger.warning(f"[STT] 스트림 #{self.stream_count} 중단: {e}")

            except Exception as e:
                retry_count += 1
                delay = self.error_restart_delay
                logger.error(f"[STT] 스트림 처리 오류 (시도 {retry_count}/{self.max_retries}): {e}", exc_info=True)

            # 재시작 전 생존 여부 확인
            if not self._alive:
                break
            await asyncio.sleep(delay)
            if not self._alive:
                break
            logger.info("[STT] 연속 인식을 위해 재시작...")

        if retry_count >= self.max_retries:
            logger.error("[STT] 최대 재시도 횟수 도달")
        self._alive = False
