"""통화 클라이언트 세션.

시그널링 서버 WebSocket 연결 하나로 룸 입장, 협상, 자막 송수신을 처리합니다.

Flow:
    1. 로컬 미디어 획득 (실패 시 사용자에게 알리고 입장하지 않음)
    2. WebSocket 연결 → join-room
    3. language-assigned 로 역할/언어 확인
    4. user-joined 마다 새 협상 상태 머신 생성 (offerer 이면 offer 전송)
    5. 미디어 연결 connected → 음성 인식 시작
    6. 인식 결과 번역 → 로컬 표시 + send-caption
    7. user-left / end_call() / 소켓 종료 → 협상 종료, 음성 인식 중지
"""
import json
import logging
from typing import Awaitable, Callable, Optional

import websockets
from pydantic import ValidationError

from ..shared import (
    CaptionPayload,
    EventType,
    Frame,
    MediaAcquisitionFailure,
    Role,
    SignalEnvelope,
    SignalKind,
    SignalingError,
    TranslationFailure,
    make_frame,
)
from ..stt import TranscriptionProvider, TranscriptionSupervisor, recognition_config
from .caption import CaptionRelayClient
from .config import client_config
from .media import AiortcMediaConnection, MediaCapture, MediaConnection, StateCallback
from .negotiation import NegotiationState, NegotiationStateMachine
from .translation import MyMemoryTranslator, TranslationProvider

logger = logging.getLogger(__name__)


CaptionCallback = Callable[[CaptionPayload, bool], Awaitable[None]]


class CallClient:
    """1:1 통화 참가자.

    Attributes:
        local_id (Optional[str]): 서버가 부여한 연결 ID
        role (Optional[Role]): 입장 순서로 정해진 역할
        language (Optional[str]): 내 발화 언어
        peer_language (Optional[str]): 상대 발화 언어 (번역 대상)
        machine (Optional[NegotiationStateMachine]): 현재 페어링의 협상 상태 머신

    Examples:
        >>> client = CallClient(transcription_provider=ManualTranscriptionProvider())
        >>> await client.run()
    """

    def __init__(
        self,
        transcription_provider: TranscriptionProvider,
        server_url: str = client_config.SERVER_URL,
        session_key: Optional[str] = client_config.SESSION_KEY,
        translator: Optional[TranslationProvider] = None,
        capture: Optional[MediaCapture] = None,
        media_factory: Optional[Callable[[StateCallback], MediaConnection]] = None,
        on_caption: Optional[CaptionCallback] = None,
        on_error: Optional[Callable[[str], None]] = None,
    ):
        self.transcription_provider = transcription_provider
        self.server_url = server_url
        self.session_key = session_key
        self.translator = translator or MyMemoryTranslator()
        self.capture = capture or MediaCapture()
        self.media_factory = media_factory or self._build_media_connection
        self.on_caption = on_caption
        self.on_error = on_error

        self.local_id: Optional[str] = None
        self.role: Optional[Role] = None
        self.language: Optional[str] = None
        self.peer_language: Optional[str] = None

        self.machine: Optional[NegotiationStateMachine] = None
        self.supervisor: Optional[TranscriptionSupervisor] = None
        self.captions = CaptionRelayClient(self.send_frame, self._display_remote_caption)

        self._ws = None

    # ------------------------------------------------------------
    # 연결
    # ------------------------------------------------------------

    async def run(self) -> None:
        """미디어 획득 후 서버에 연결하고 소켓이 닫힐 때까지 이벤트를 처리합니다."""
        try:
            self.capture.open()
        except MediaAcquisitionFailure as e:
            logger.error(f"[Client] 미디어 획득 실패: {e}")
            self._report_error("Could not access camera and microphone. Please check permissions and try again.")
            return

        try:
            async with websockets.connect(self.server_url) as ws:
                self._ws = ws
                logger.info(f"[Client] 서버 연결: {self.server_url}")
                await self.send_frame(make_frame(EventType.JOIN_ROOM, {"sessionKey": self.session_key}))

                try:
                    async for raw in ws:
                        await self.handle_message(raw)
                except websockets.ConnectionClosed as e:
                    logger.warning(f"[Client] 연결 끊김: {e}")
        finally:
            self._ws = None
            await self._end_pairing("socket-closed")
            await self.translator.close()
            self.capture.close()
            logger.info("[Client] 세션 종료")

    async def end_call(self) -> None:
        """통화를 종료하고 서버 연결을 닫습니다."""
        logger.info("[Client] 통화 종료 요청")
        if self._ws is not None:
            try:
                await self.send_frame(make_frame(EventType.END_CALL))
            except websockets.ConnectionClosed:
                logger.debug("[Client] end-call 전송 전 연결 종료됨")
        await self._end_pairing("end")
        if self._ws is not None:
            await self._ws.close()

    async def send_frame(self, frame: dict) -> None:
        if self._ws is None:
            raise ConnectionError("Not connected to signaling server")
        await self._ws.send(json.dumps(frame))

    async def send_signal(self, envelope: SignalEnvelope) -> None:
        data = envelope.model_dump(by_alias=True, exclude={"sender"}, mode="json")
        await self.send_frame(make_frame(EventType.SIGNAL, data))

    # ------------------------------------------------------------
    # 서버 이벤트
    # ------------------------------------------------------------

    async def handle_message(self, raw) -> None:
        """서버 프레임 하나를 처리합니다. 잘못된 프레임은 드랍합니다."""
        try:
            frame = Frame.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"[Client] 잘못된 프레임 드랍: {e.errors()}")
            return

        data = frame.data
        event = frame.type

        if event == EventType.CONNECTED.value:
            self.local_id = data.get("peerId")
            logger.info(f"[Client] 연결 ID: {self.local_id}")

        elif event == EventType.LANGUAGE_ASSIGNED.value:
            self.language = data.get("language")
            self.peer_language = data.get("peerLanguage")
            self.role = Role(data["role"]) if data.get("role") else None
            logger.info(f"[Client] 역할={self.role}, 언어={self.language} → 번역 대상={self.peer_language}")

        elif event == EventType.ROOM_FULL.value:
            logger.warning("[Client] 룸이 가득 참")
            self._report_error("This call already has two participants.")
            if self._ws is not None:
                await self._ws.close()

        elif event == EventType.USER_JOINED.value:
            await self._start_pairing(data["peerId"], data.get("offerer"))

        elif event == EventType.SIGNAL.value:
            await self._handle_signal(data)

        elif event == EventType.NEW_CAPTION.value:
            await self.captions.handle(data)

        elif event == EventType.USER_LEFT.value:
            logger.info(f"[Client] 상대 퇴장: {data.get('peerId')}")
            await self._end_pairing("peer-left")

        elif event == EventType.ERROR.value:
            logger.warning(f"[Client] 서버 오류: {data.get('message')}")

        else:
            logger.debug(f"[Client] 알 수 없는 이벤트 무시: {event}")

    async def _handle_signal(self, data: dict) -> None:
        try:
            envelope = SignalEnvelope.model_validate(data)
        except ValidationError as e:
            logger.warning(f"[Client] 잘못된 signal 드랍: {e.errors()}")
            return

        if self.machine is None or self.machine.state is NegotiationState.CLOSED:
            if envelope.kind is not SignalKind.OFFER:
                logger.debug(f"[Client] 진행 중인 협상 없음 - {envelope.kind.value} 무시")
                return
            # user-joined 보다 먼저 도착한 offer
            await self._new_machine()
        await self.machine.receive(envelope)

    # ------------------------------------------------------------
    # 페어링
    # ------------------------------------------------------------

    async def _new_machine(self) -> NegotiationStateMachine:
        if self.machine is not None:
            await self.machine.close("replaced")

        self.machine = NegotiationStateMachine(
            local_id=self.local_id,
            media_factory=self.media_factory,
            send_signal=self.send_signal,
            on_connected=self._on_connected,
            on_closed=self._on_closed,
            on_failure=self._on_failure,
        )
        await self.machine.start()
        return self.machine

    async def _start_pairing(self, peer_id: str, offerer: Optional[bool] = None) -> None:
        """새 페어링 시작. offerer 가 없으면 배정된 역할로 offer 여부를 정합니다."""
        if offerer is None:
            role = self.role or Role.RESPONDER
        else:
            role = Role.INITIATOR if offerer else Role.RESPONDER
        logger.info(f"[Client] 상대 입장: {peer_id} (협상 역할={role.value})")
        machine = await self._new_machine()
        await machine.paired(peer_id, role)

    async def _end_pairing(self, reason: str) -> None:
        if self.machine is not None:
            await self.machine.close(reason)
        await self._stop_transcription()

    async def _on_connected(self) -> None:
        logger.info("[Client] 미디어 연결 완료 - 음성 인식 시작")
        await self._stop_transcription()
        locale = recognition_config.locale_for(self.language)
        self.supervisor = TranscriptionSupervisor(
            self.transcription_provider, locale, on_final=self._handle_spoken_text
        )
        self.supervisor.start()

    async def _on_closed(self, reason: str) -> None:
        await self._stop_transcription()

    async def _on_failure(self, error: SignalingError) -> None:
        logger.warning(f"[Client] 협상 실패: {error}")

    async def _stop_transcription(self) -> None:
        supervisor, self.supervisor = self.supervisor, None
        if supervisor is not None:
            await supervisor.stop()

    # ------------------------------------------------------------
    # 자막
    # ------------------------------------------------------------

    async def _handle_spoken_text(self, text: str) -> None:
        """인식된 발화를 번역해 로컬 표시 후 상대에게 보냅니다."""
        logger.info(f"[Client] 인식: {text}")
        try:
            translated = await self.translator.translate(text, self.language, self.peer_language)
        except TranslationFailure as e:
            logger.warning(f"[Client] 번역 실패, 원문 사용: {e}")
            translated = text

        caption = CaptionPayload(original=text, translated=translated)
        if self.on_caption:
            await self.on_caption(caption, True)
        await self.captions.send(caption.original, caption.translated)

    async def _display_remote_caption(self, caption: CaptionPayload) -> None:
        if self.on_caption:
            await self.on_caption(caption, False)

    # ------------------------------------------------------------
    # 기타
    # ------------------------------------------------------------

    async def renegotiate(self) -> None:
        """연결된 상태에서 재협상합니다."""
        if self.machine is not None:
            await self.machine.renegotiate()

    def _build_media_connection(self, on_state_change: StateCallback) -> MediaConnection:
        return AiortcMediaConnection(on_state_change, tracks=self.capture.subscribe())

    def _report_error(self, message: str) -> None:
        if self.on_error:
            self.on_error(message)
