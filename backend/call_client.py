"""콘솔 통화 클라이언트.

입력한 줄을 음성 인식 결과로 간주하여 번역 자막을 주고받습니다.

Usage:
    python call_client.py
    python call_client.py --server ws://localhost:8000/ws --session s1
    python call_client.py --media-source default --media-format pulse

Commands:
    /end    통화 종료
    /renegotiate    재협상
"""

import argparse
import asyncio
import logging
import sys

from modules.client import CallClient, client_config
from modules.client.media import MediaCapture
from modules.shared import CaptionPayload
from modules.stt import ManualTranscriptionProvider

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


async def print_caption(caption: CaptionPayload, is_local: bool) -> None:
    if is_local:
        print(f"[나] {caption.original}  ({caption.translated})")
    else:
        print(f"[상대] {caption.translated}  ({caption.original})")


def print_error(message: str) -> None:
    print(f"[오류] {message}", file=sys.stderr)


async def read_console(client: CallClient, provider: ManualTranscriptionProvider) -> None:
    """표준 입력 줄을 발화로 전달합니다."""
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            await client.end_call()
            return

        text = line.strip()
        if text == "/end":
            await client.end_call()
            return
        if text == "/renegotiate":
            await client.renegotiate()
        elif text:
            provider.push(text)


async def run(args) -> None:
    provider = ManualTranscriptionProvider()
    client = CallClient(
        transcription_provider=provider,
        server_url=args.server,
        session_key=args.session,
        capture=MediaCapture(source=args.media_source, media_format=args.media_format),
        on_caption=print_caption,
        on_error=print_error,
    )

    console = asyncio.create_task(read_console(client, provider))
    try:
        await client.run()
    finally:
        console.cancel()


def main():
    parser = argparse.ArgumentParser(description="1:1 번역 자막 통화 클라이언트")
    parser.add_argument("--server", type=str, default=client_config.SERVER_URL, help="시그널링 서버 WebSocket URL")
    parser.add_argument("--session", type=str, default=client_config.SESSION_KEY, help="세션 키 (미지정시 서버 기본 룸)")
    parser.add_argument("--media-source", type=str, default=client_config.MEDIA_SOURCE, help="로컬 미디어 소스 (미지정시 수신 전용)")
    parser.add_argument("--media-format", type=str, default=client_config.MEDIA_FORMAT, help="미디어 포맷 (v4l2, pulse, avfoundation 등)")
    args = parser.parse_args()

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("종료")


if __name__ == "__main__":
    main()
