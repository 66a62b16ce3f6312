"""번역 자막 릴레이 클라이언트.

자막은 시그널링 채널로 전달되는 일회성 데이터입니다. 미디어 연결 상태와
무관하게 보내며, 상대가 없으면 서버에서 버려집니다 (큐/재시도 없음).
"""
import logging
from typing import Awaitable, Callable, Optional

from pydantic import ValidationError

from ..shared import CaptionPayload, EventType, make_frame

logger = logging.getLogger(__name__)


class CaptionRelayClient:
    """자막 송수신.

    Attributes:
        send_frame (Callable): 프레임 전송 함수 (dict → None)
        on_caption (Callable): 수신 자막 표시 콜백
    """

    def __init__(
        self,
        send_frame: Callable[[dict], Awaitable[None]],
        on_caption: Optional[Callable[[CaptionPayload], Awaitable[None]]] = None,
    ):
        self.send_frame = send_frame
        self.on_caption = on_caption

    async def send(self, original: str, translated: str) -> bool:
        """send-caption 프레임을 보냅니다. 전송 실패는 로그만 남깁니다."""
        caption = CaptionPayload(original=original, translated=translated)
        try:
            await self.send_frame(make_frame(EventType.SEND_CAPTION, caption.model_dump()))
            return True
        except Exception as e:
            logger.warning(f"[Caption] 자막 전송 실패 (드랍): {e}")
            return False

    async def handle(self, data: dict) -> Optional[CaptionPayload]:
        """new-caption 데이터를 파싱해 표시 콜백에 전달합니다."""
        try:
            caption = CaptionPayload.model_validate(data)
        except ValidationError as e:
            logger.warning(f"[Caption] 잘못된 자막 드랍: {e.errors()}")
            return None

        logger.info(f"[Caption] 수신: {caption.original} → {caption.translated}")
        if self.on_caption:
            await self.on_caption(caption)
        return caption
