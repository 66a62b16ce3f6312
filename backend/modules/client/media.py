"""로컬 미디어 연결 모듈.

협상 상태 머신이 사용하는 미디어 연결 인터페이스와 aiortc 구현을 제공합니다.
상태 머신은 MediaConnection 에만 의존하므로 테스트에서는 가짜 구현으로
대체할 수 있습니다.

Classes:
    MediaConnection: 미디어 연결 인터페이스
    AiortcMediaConnection: aiortc RTCPeerConnection 기반 구현
    MediaCapture: 로컬 오디오/비디오 소스 획득

Note:
    - aiortc 는 ICE 후보를 SDP 에 포함시키므로 로컬 icecandidate 이벤트가 없음
    - 원격 트랙 렌더링은 범위 밖이므로 MediaBlackhole 로 소비만 함
"""
import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from aiortc import (
    RTCConfiguration,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
    MediaStreamTrack,
)
from aiortc.contrib.media import MediaBlackhole, MediaPlayer, MediaRelay
from aiortc.sdp import candidate_from_sdp

from ..shared import MediaAcquisitionFailure
from ..webrtc.config import ice_config
from .config import client_config

logger = logging.getLogger(__name__)


StateCallback = Callable[[str], None]


class MediaConnection(ABC):
    """협상 상태 머신이 제어하는 미디어 연결.

    세션 설명은 ``{"sdp": str, "type": "offer"|"answer"}`` 딕셔너리,
    ICE 후보는 ``{"candidate": str, "sdpMid": str, "sdpMLineIndex": int}`` 입니다.
    """

    @abstractmethod
    async def create_offer(self) -> dict:
        """offer 를 만들어 로컬 설명으로 적용하고 반환합니다."""

    @abstractmethod
    async def create_answer(self) -> dict:
        """answer 를 만들어 로컬 설명으로 적용하고 반환합니다."""

    @abstractmethod
    async def set_remote_description(self, description: dict) -> None:
        """원격 offer/answer 를 적용합니다."""

    @abstractmethod
    async def add_ice_candidate(self, candidate: dict) -> None:
        """원격 ICE 후보를 추가합니다."""

    @abstractmethod
    async def discard_local_offer(self) -> bool:
        """보내고 응답받지 못한 로컬 offer 를 버립니다.

        Returns:
            bool: 같은 연결에서 원격 offer 를 받을 수 있으면 True.
                  False 면 연결을 새로 만들어야 함
        """

    @abstractmethod
    async def close(self) -> None:
        """연결과 관련 리소스를 해제합니다."""


def build_ice_servers() -> List[RTCIceServer]:
    """설정된 STUN/TURN 서버로 RTCIceServer 리스트를 만듭니다."""
    ice_servers = []

    if ice_config.STUN_SERVER_URL:
        ice_servers.append(RTCIceServer(urls=[ice_config.STUN_SERVER_URL]))

    for stun_url in ice_config.DEFAULT_STUN_SERVERS:
        ice_servers.append(RTCIceServer(urls=[stun_url]))

    if ice_config.has_turn_server:
        ice_servers.append(RTCIceServer(
            urls=[ice_config.TURN_SERVER_URL],
            username=ice_config.TURN_USERNAME,
            credential=ice_config.TURN_CREDENTIAL
        ))

    return ice_servers


def parse_ice_candidate(candidate_data: dict):
    """시그널링으로 받은 ICE 후보를 aiortc RTCIceCandidate 로 변환합니다.

    Raises:
        ValueError: 후보 문자열이 없거나 형식이 잘못된 경우
    """
    candidate_str = candidate_data.get("candidate", "")
    if not isinstance(candidate_str, str) or not candidate_str:
        raise ValueError("ICE candidate string is missing")

    if candidate_str.startswith("candidate:"):
        candidate_str = candidate_str[10:]

    ice_candidate = candidate_from_sdp(candidate_str)
    ice_candidate.sdpMid = candidate_data.get("sdpMid")
    ice_candidate.sdpMLineIndex = candidate_data.get("sdpMLineIndex")
    return ice_candidate


class AiortcMediaConnection(MediaConnection):
    """aiortc RTCPeerConnection 기반 미디어 연결.

    Attributes:
        pc (RTCPeerConnection): 피어 연결
        on_state_change (StateCallback): connectionState 변경 콜백
    """

    def __init__(
        self,
        on_state_change: StateCallback,
        tracks: Optional[List[MediaStreamTrack]] = None,
        ice_servers: Optional[List[RTCIceServer]] = None,
    ):
        self.on_state_change = on_state_change
        if ice_servers is None:
            ice_servers = build_ice_servers()
        self.pc = RTCPeerConnection(configuration=RTCConfiguration(iceServers=ice_servers))
        self.sink = MediaBlackhole()
        self._pending_offer: Optional[RTCSessionDescription] = None

        if tracks:
            for track in tracks:
                self.pc.addTrack(track)
        else:
            # 로컬 소스 없이도 협상할 수 있도록 수신 전용 오디오
            self.pc.addTransceiver("audio", direction="recvonly")

        @self.pc.on("connectionstatechange")
        async def on_connection_state_change():
            logger.info(f"[WebRTC] 연결 상태: {self.pc.connectionState}")
            self.on_state_change(self.pc.connectionState)

        @self.pc.on("track")
        def on_track(track: MediaStreamTrack):
            logger.info(f"[WebRTC] 원격 {track.kind} 트랙 수신")
            self.sink.addTrack(track)

    def _local_description(self) -> dict:
        return {"sdp": self.pc.localDescription.sdp, "type": self.pc.localDescription.type}

    async def create_offer(self) -> dict:
        offer = await self.pc.createOffer()
        if self.pc.remoteDescription is None:
            # 첫 협상: setLocalDescription 에서 후보를 수집해야 SDP 에 포함됨
            await self.pc.setLocalDescription(offer)
            return self._local_description()

        # 재협상: 전송 계층은 이미 수집 완료. answer 가 올 때까지 적용을 미뤄
        # glare 시 연결을 유지한 채 offer 를 버릴 수 있게 함
        self._pending_offer = offer
        return {"sdp": offer.sdp, "type": offer.type}

    async def create_answer(self) -> dict:
        answer = await self.pc.createAnswer()
        await self.pc.setLocalDescription(answer)
        await self.sink.start()
        return self._local_description()

    async def set_remote_description(self, description: dict) -> None:
        if description["type"] == "answer" and self._pending_offer is not None:
            offer, self._pending_offer = self._pending_offer, None
            await self.pc.setLocalDescription(offer)
        await self.pc.setRemoteDescription(
            RTCSessionDescription(sdp=description["sdp"], type=description["type"])
        )
        if description["type"] == "answer":
            await self.sink.start()

    async def add_ice_candidate(self, candidate: dict) -> None:
        await self.pc.addIceCandidate(parse_ice_candidate(candidate))

    async def discard_local_offer(self) -> bool:
        self._pending_offer = None
        # aiortc 는 have-local-offer 롤백을 지원하지 않음
        return self.pc.signalingState == "stable"

    async def close(self) -> None:
        await self.sink.stop()
        await self.pc.close()


class MediaCapture:
    """로컬 오디오/비디오 소스를 획득합니다.

    MediaRelay 로 연결마다 독립적인 트랙 구독을 만들어, 협상 중 연결을
    다시 만들어도 원본 소스는 유지됩니다.

    Examples:
        >>> capture = MediaCapture(source="/dev/video0", media_format="v4l2")
        >>> capture.open()
        >>> tracks = capture.subscribe()
    """

    def __init__(
        self,
        source: Optional[str] = client_config.MEDIA_SOURCE,
        media_format: Optional[str] = client_config.MEDIA_FORMAT,
    ):
        self.source = source
        self.media_format = media_format
        self.player: Optional[MediaPlayer] = None
        self.relay = MediaRelay()

    def open(self) -> None:
        """미디어 소스를 엽니다. 소스가 설정되지 않았으면 아무것도 하지 않습니다.

        Raises:
            MediaAcquisitionFailure: 장치/파일을 열 수 없는 경우
        """
        if not self.source:
            logger.info("[Media] 로컬 미디어 소스 없음 - 수신 전용으로 협상")
            return

        try:
            self.player = MediaPlayer(self.source, format=self.media_format)
        except Exception as e:
            raise MediaAcquisitionFailure(
                f"Could not access media source '{self.source}': {e}"
            ) from e

        logger.info(f"[Media] 로컬 미디어 획득: source={self.source}, "
                    f"audio={self.player.audio is not None}, video={self.player.video is not None}")

    def subscribe(self) -> List[MediaStreamTrack]:
        """새 연결에 붙일 트랙 구독 리스트."""
        if self.player is None:
            return []
        return [self.relay.subscribe(track) for track in (self.player.audio, self.player.video) if track]

    def close(self) -> None:
        if self.player is None:
            return
        for track in (self.player.audio, self.player.video):
            if track:
                track.stop()
        self.player = None
