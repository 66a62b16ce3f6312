"""aiortc 미디어 연결/캡처 테스트."""

import pytest

from modules.client.media import (
    AiortcMediaConnection,
    MediaCapture,
    build_ice_servers,
    parse_ice_candidate,
)
from modules.shared import MediaAcquisitionFailure


def test_parse_ice_candidate_strips_prefix():
    candidate = parse_ice_candidate({
        "candidate": "candidate:842163049 1 udp 1677729535 203.0.113.7 46154 typ srflx "
                     "raddr 10.0.0.5 rport 46154",
        "sdpMid": "0",
        "sdpMLineIndex": 0,
    })

    assert candidate.ip == "203.0.113.7"
    assert candidate.port == 46154
    assert candidate.type == "srflx"
    assert candidate.sdpMid == "0"
    assert candidate.sdpMLineIndex == 0


@pytest.mark.parametrize("data", [{}, {"candidate": ""}, {"candidate": 42}])
def test_parse_ice_candidate_rejects_missing_candidate(data):
    with pytest.raises(ValueError):
        parse_ice_candidate(data)


def test_build_ice_servers_includes_stun():
    servers = build_ice_servers()

    assert any(url.startswith("stun:") for server in servers for url in server.urls)


def test_capture_without_source_is_receive_only():
    capture = MediaCapture(source=None)

    capture.open()

    assert capture.subscribe() == []
    capture.close()


def test_capture_with_missing_device_raises():
    capture = MediaCapture(source="/nonexistent/device-for-test.wav", media_format=None)

    with pytest.raises(MediaAcquisitionFailure):
        capture.open()


async def test_local_offer_answer_exchange():
    states = []
    caller = AiortcMediaConnection(states.append, ice_servers=[])
    callee = AiortcMediaConnection(states.append, ice_servers=[])
    try:
        offer = await caller.create_offer()
        assert offer["type"] == "offer"
        assert "m=audio" in offer["sdp"]

        await callee.set_remote_description(offer)
        answer = await callee.create_answer()
        assert answer["type"] == "answer"

        await caller.set_remote_description(answer)
    finally:
        await caller.close()
        await callee.close()


async def test_renegotiation_offer_is_applied_with_answer():
    caller = AiortcMediaConnection(lambda state: None, ice_servers=[])
    callee = AiortcMediaConnection(lambda state: None, ice_servers=[])
    try:
        await callee.set_remote_description(await caller.create_offer())
        await caller.set_remote_description(await callee.create_answer())

        # 재협상 offer 는 answer 전까지 적용되지 않으므로 같은 연결에서 버릴 수 있음
        offer = await caller.create_offer()
        assert offer["type"] == "offer"
        assert caller.pc.signalingState == "stable"
        assert await caller.discard_local_offer() is True

        await callee.set_remote_description(await caller.create_offer())
        await caller.set_remote_description(await callee.create_answer())
        assert caller.pc.signalingState == "stable"
        assert callee.pc.signalingState == "stable"
    finally:
        await caller.close()
        await callee.close()


async def test_first_offer_cannot_be_discarded_in_place():
    media = AiortcMediaConnection(lambda state: None, ice_servers=[])
    try:
        await media.create_offer()

        assert media.pc.signalingState == "have-local-offer"
        assert await media.discard_local_offer() is False
    finally:
        await media.close()
