"""공용 테스트 픽스처."""

import asyncio
import os
import tempfile
from typing import Callable, List, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from modules.client.media import MediaConnection
from modules.webrtc import RoomManager, SignalRelay, SessionLifecycleMonitor
from modules.webrtc.config import SignalingConfig
from routes import health_router, signaling_router, init_signaling_managers

# app 모듈 import 시 로그 파일이 저장소 밖에 생성되도록
os.environ.setdefault("LOG_DIR", os.path.join(tempfile.gettempdir(), "signaling-test-logs"))


class FakeWebSocket:
    """send_json 호출을 기록하는 WebSocket 대역."""

    def __init__(self, fail: bool = False):
        self.sent: List[dict] = []
        self.fail = fail

    async def send_json(self, data: dict) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(data)

    def of_type(self, event_type: str) -> List[dict]:
        return [frame for frame in self.sent if frame["type"] == event_type]


class FakeMediaConnection(MediaConnection):
    """협상 호출을 기록하는 미디어 연결 대역."""

    def __init__(self, index: int, on_state_change: Callable[[str], None]):
        self.index = index
        self.on_state_change = on_state_change
        self.remote_descriptions: List[dict] = []
        self.candidates: List[dict] = []
        self.closed = False
        self.fail_remote = False
        self.supports_rollback = True
        self.discarded_offers = 0

    async def create_offer(self) -> dict:
        return {"type": "offer", "sdp": f"offer-sdp-{self.index}"}

    async def create_answer(self) -> dict:
        return {"type": "answer", "sdp": f"answer-sdp-{self.index}"}

    async def set_remote_description(self, description: dict) -> None:
        if self.fail_remote:
            raise ValueError("bad sdp")
        self.remote_descriptions.append(description)

    async def add_ice_candidate(self, candidate: dict) -> None:
        self.candidates.append(candidate)

    async def discard_local_offer(self) -> bool:
        self.discarded_offers += 1
        return self.supports_rollback

    async def close(self) -> None:
        self.closed = True

    def report(self, state: str) -> None:
        self.on_state_change(state)


class FakeMediaFactory:
    """생성한 FakeMediaConnection 을 순서대로 보관합니다."""

    def __init__(self):
        self.created: List[FakeMediaConnection] = []

    def __call__(self, on_state_change: Callable[[str], None]) -> FakeMediaConnection:
        media = FakeMediaConnection(len(self.created), on_state_change)
        self.created.append(media)
        return media

    @property
    def current(self) -> Optional[FakeMediaConnection]:
        return self.created[-1] if self.created else None


@pytest.fixture
def signaling_config() -> SignalingConfig:
    return SignalingConfig(DEFAULT_SESSION_KEY="main-room", ROLE_LANGUAGES={"initiator": "en", "responder": "ja"})


@pytest.fixture
def room_manager(signaling_config) -> RoomManager:
    return RoomManager(config=signaling_config)


@pytest.fixture
def relay(room_manager) -> SignalRelay:
    return SignalRelay(room_manager)


@pytest.fixture
def lifecycle(room_manager) -> SessionLifecycleMonitor:
    return SessionLifecycleMonitor(room_manager)


@pytest.fixture
def media_factory() -> FakeMediaFactory:
    return FakeMediaFactory()


@pytest.fixture
def client(room_manager, relay, lifecycle):
    """시그널링 라우터만 올린 FastAPI TestClient (테스트마다 새 레지스트리)."""
    app = FastAPI()
    app.include_router(health_router)
    app.include_router(signaling_router)
    init_signaling_managers(room_manager, relay, lifecycle)

    with TestClient(app) as test_client:
        yield test_client


async def settle(*machines, rounds: int = 5) -> None:
    """상태 머신 큐가 모두 빌 때까지 번갈아 처리합니다."""
    for _ in range(rounds):
        for machine in machines:
            await machine.drain()
        await asyncio.sleep(0)


@pytest.fixture
def ws() -> Callable[..., FakeWebSocket]:
    return FakeWebSocket


@pytest.fixture
def drain_all():
    return settle


@pytest.fixture
def media_factory_cls():
    return FakeMediaFactory
