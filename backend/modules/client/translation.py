"""텍스트 번역 제공자.

Classes:
    TranslationProvider: 번역 인터페이스
    MyMemoryTranslator: MyMemory 공개 번역 API (aiohttp)
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Optional

import aiohttp

from ..shared import TranslationFailure
from .config import translation_config

logger = logging.getLogger(__name__)


class TranslationProvider(ABC):
    """(text, source, target) → 번역 텍스트."""

    @abstractmethod
    async def translate(self, text: str, source: str, target: str) -> str:
        """번역 결과를 반환합니다.

        Raises:
            TranslationFailure: 번역 실패
        """

    async def close(self) -> None:
        return None


class MyMemoryTranslator(TranslationProvider):
    """MyMemory HTTP API 기반 번역기.

    ClientSession 은 첫 요청 시 만들어 재사용하며 close() 로 해제합니다.

    Examples:
        >>> translator = MyMemoryTranslator()
        >>> await translator.translate("hello", "en", "ja")
        'こんにちは'
    """

    def __init__(
        self,
        api_url: str = translation_config.API_URL,
        timeout: float = translation_config.TIMEOUT,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.api_url = api_url
        self.timeout = timeout
        self._session = session

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def translate(self, text: str, source: str, target: str) -> str:
        if not text:
            return text

        params = {"q": text, "langpair": f"{source}|{target}"}
        try:
            async with self._get_session().get(self.api_url, params=params) as resp:
                if resp.status != 200:
                    raise TranslationFailure(f"Translation API error: HTTP {resp.status}")
                data = await resp.json(content_type=None)
        except TranslationFailure:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise TranslationFailure(f"Translation request failed: {e}") from e

        translated = (data.get("responseData") or {}).get("translatedText") if isinstance(data, dict) else None
        if not translated:
            raise TranslationFailure("No translation found")

        logger.debug(f"[Translation] {source}→{target}: {text} → {translated}")
        return translated

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
