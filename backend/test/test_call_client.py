"""CallClient 이벤트 처리 테스트 (WebSocket/미디어/번역 대역 사용)."""

import json
from unittest.mock import AsyncMock, Mock

from modules.client.negotiation import NegotiationState
from modules.client.session import CallClient
from modules.shared import CaptionPayload, MediaAcquisitionFailure, Role, TranslationFailure
from modules.stt import ManualTranscriptionProvider


class FakeServerSocket:
    def __init__(self):
        self.sent = []
        self.closed = False

    async def send(self, text):
        self.sent.append(json.loads(text))

    async def close(self):
        self.closed = True

    def of_type(self, event_type):
        return [frame for frame in self.sent if frame["type"] == event_type]


class EchoTranslator:
    def __init__(self, fail=False):
        self.fail = fail

    async def translate(self, text, source, target):
        if self.fail:
            raise TranslationFailure("service down")
        return f"[{source}->{target}] {text}"

    async def close(self):
        pass


def _client(media_factory, translator=None, on_caption=None, on_error=None):
    client = CallClient(
        transcription_provider=ManualTranscriptionProvider(),
        server_url="ws://signaling.test/ws",
        session_key="s1",
        translator=translator or EchoTranslator(),
        capture=Mock(),
        media_factory=media_factory,
        on_caption=on_caption,
        on_error=on_error,
    )
    client._ws = FakeServerSocket()
    return client


async def _feed(client, event_type, data=None):
    await client.handle_message(json.dumps({"type": event_type, "data": data or {}}))


async def _assign(client, peer_id="peer-a", role="initiator", language="en", peer_language="ja"):
    await _feed(client, "connected", {"peerId": peer_id})
    await _feed(client, "language-assigned",
                {"language": language, "role": role, "peerLanguage": peer_language})


async def test_language_assignment_sets_role(media_factory):
    client = _client(media_factory)

    await _assign(client)

    assert client.local_id == "peer-a"
    assert client.role is Role.INITIATOR
    assert (client.language, client.peer_language) == ("en", "ja")


async def test_initiator_sends_offer_on_user_joined(media_factory, drain_all):
    client = _client(media_factory)
    await _assign(client)

    await _feed(client, "user-joined", {"peerId": "peer-b"})
    await drain_all(client.machine)

    signals = client._ws.of_type("signal")
    assert len(signals) == 1
    assert signals[0]["data"] == {
        "target": "peer-b",
        "type": "offer",
        "data": {"type": "offer", "sdp": "offer-sdp-0"},
    }
    assert client.machine.state is NegotiationState.OFFER_SENT
    await client.end_call()


async def test_responder_answers_relayed_offer(media_factory, drain_all):
    client = _client(media_factory)
    await _assign(client, peer_id="peer-b", role="responder", language="ja", peer_language="en")

    await _feed(client, "user-joined", {"peerId": "peer-a"})
    await _feed(client, "signal", {
        "target": "peer-b", "sender": "peer-a", "type": "offer",
        "data": {"type": "offer", "sdp": "remote"},
    })
    await drain_all(client.machine)

    answer = client._ws.of_type("signal")[-1]["data"]
    assert answer["type"] == "answer"
    assert answer["target"] == "peer-a"
    assert client.machine.state is NegotiationState.CONNECTING
    await client.end_call()


async def test_connected_transport_starts_transcription(media_factory, drain_all):
    client = _client(media_factory)
    await _assign(client)
    await _feed(client, "user-joined", {"peerId": "peer-b"})
    await _feed(client, "signal", {
        "target": "peer-a", "sender": "peer-b", "type": "answer",
        "data": {"type": "answer", "sdp": "remote"},
    })
    await drain_all(client.machine)

    media_factory.current.report("connected")
    await drain_all(client.machine)

    assert client.machine.state is NegotiationState.CONNECTED
    assert client.supervisor is not None and client.supervisor.is_alive
    assert client.supervisor.locale == "en-US"

    supervisor = client.supervisor
    await _feed(client, "user-left", {"peerId": "peer-b"})

    assert client.machine.state is NegotiationState.CLOSED
    assert media_factory.current.closed is True
    assert supervisor.is_alive is False
    assert client.supervisor is None


async def test_spoken_text_is_translated_shown_and_sent(media_factory):
    on_caption = AsyncMock()
    client = _client(media_factory, on_caption=on_caption)
    await _assign(client)

    await client._handle_spoken_text("good morning")

    caption = CaptionPayload(original="good morning", translated="[en->ja] good morning")
    on_caption.assert_awaited_once_with(caption, True)
    assert client._ws.of_type("send-caption") == [
        {"type": "send-caption", "data": {"original": "good morning", "translated": "[en->ja] good morning"}}
    ]


async def test_translation_failure_falls_back_to_original(media_factory):
    client = _client(media_factory, translator=EchoTranslator(fail=True))
    await _assign(client)

    await client._handle_spoken_text("good morning")

    assert client._ws.of_type("send-caption")[0]["data"] == {
        "original": "good morning", "translated": "good morning",
    }


async def test_remote_caption_is_displayed(media_factory):
    on_caption = AsyncMock()
    client = _client(media_factory, on_caption=on_caption)

    await _feed(client, "new-caption", {"original": "おはよう", "translated": "good morning"})

    on_caption.assert_awaited_once_with(CaptionPayload(original="おはよう", translated="good morning"), False)


async def test_room_full_is_reported_and_socket_closed(media_factory):
    errors = []
    client = _client(media_factory, on_error=errors.append)

    await _feed(client, "room-full")

    assert errors == ["This call already has two participants."]
    assert client._ws.closed is True


async def test_malformed_server_frame_is_dropped(media_factory):
    client = _client(media_factory)

    await client.handle_message("not json")
    await client.handle_message(json.dumps({"type": "signal", "data": {"type": "offer"}}))

    assert client.machine is None


async def test_end_call_sends_end_call_and_releases_media(media_factory, drain_all):
    client = _client(media_factory)
    await _assign(client)
    await _feed(client, "user-joined", {"peerId": "peer-b"})
    await drain_all(client.machine)
    ws = client._ws

    await client.end_call()

    assert ws.of_type("end-call") == [{"type": "end-call", "data": {}}]
    assert ws.closed is True
    assert client.machine.state is NegotiationState.CLOSED
    assert media_factory.current.closed is True


async def test_new_pairing_replaces_previous_machine(media_factory, drain_all):
    client = _client(media_factory)
    await _assign(client)
    await _feed(client, "user-joined", {"peerId": "peer-b"})
    await drain_all(client.machine)
    first = client.machine

    await _feed(client, "user-joined", {"peerId": "peer-c"})
    await drain_all(client.machine)

    assert first.state is NegotiationState.CLOSED
    assert client.machine is not first
    assert client.machine.peer_id == "peer-c"
    await client.end_call()


async def test_media_failure_is_reported_without_connecting(media_factory):
    errors = []
    capture = Mock()
    capture.open.side_effect = MediaAcquisitionFailure("no camera")
    client = CallClient(
        transcription_provider=ManualTranscriptionProvider(),
        server_url="ws://127.0.0.1:9/ws",
        translator=EchoTranslator(),
        capture=capture,
        media_factory=media_factory,
        on_error=errors.append,
    )

    await client.run()

    assert errors == ["Could not access camera and microphone. Please check permissions and try again."]
    assert client.machine is None


async def test_waiting_peer_offers_to_newcomer_after_initiator_leaves(media_factory_cls, drain_all):
    y_factory, z_factory = media_factory_cls(), media_factory_cls()
    y = _client(y_factory)
    z = _client(z_factory)
    await _assign(y, peer_id="peer-y", role="responder", language="ja", peer_language="en")
    await _feed(y, "user-joined", {"peerId": "peer-x", "offerer": False})
    await _feed(y, "user-left", {"peerId": "peer-x"})

    # 재입장한 z 도 responder 지만 y 가 offer 담당
    await _assign(z, peer_id="peer-z", role="responder", language="en", peer_language="ja")
    await _feed(y, "user-joined", {"peerId": "peer-z", "offerer": True})
    await _feed(z, "user-joined", {"peerId": "peer-y", "offerer": False})
    await drain_all(y.machine, z.machine)

    assert y.machine.state is NegotiationState.OFFER_SENT
    assert z.machine.state is NegotiationState.AWAITING_LOCAL_OFFER

    offer = y._ws.of_type("signal")[-1]["data"]
    await _feed(z, "signal", {**offer, "sender": "peer-y"})
    await drain_all(z.machine)
    answer = z._ws.of_type("signal")[-1]["data"]
    assert answer["type"] == "answer"
    await _feed(y, "signal", {**answer, "sender": "peer-z"})
    await drain_all(y.machine)

    y_factory.current.report("connected")
    z_factory.current.report("connected")
    await drain_all(y.machine, z.machine)

    assert y.machine.state is NegotiationState.CONNECTED
    assert z.machine.state is NegotiationState.CONNECTED
    await y.end_call()
    await z.end_call()


async def test_late_candidate_after_close_does_not_open_connection(media_factory, drain_all):
    client = _client(media_factory)
    await _assign(client)
    await _feed(client, "user-joined", {"peerId": "peer-b"})
    await drain_all(client.machine)
    await client.machine.close("timeout")
    closed = client.machine

    await _feed(client, "signal", {
        "target": "peer-a", "sender": "peer-b", "type": "ice-candidate",
        "data": {"candidate": "candidate:1 1 udp 1 10.0.0.1 5000 typ host", "sdpMid": "0", "sdpMLineIndex": 0},
    })
    await _feed(client, "signal", {
        "target": "peer-a", "sender": "peer-b", "type": "answer",
        "data": {"type": "answer", "sdp": "late"},
    })

    assert client.machine is closed
    assert len(media_factory.created) == 1


async def test_offer_without_active_negotiation_starts_new_machine(media_factory, drain_all):
    client = _client(media_factory)
    await _assign(client, peer_id="peer-b", role="responder", language="ja", peer_language="en")

    await _feed(client, "signal", {
        "target": "peer-b", "sender": "peer-a", "type": "offer",
        "data": {"type": "offer", "sdp": "early"},
    })
    await drain_all(client.machine)

    assert client.machine.peer_id == "peer-a"
    assert client.machine.state is NegotiationState.CONNECTING
    assert client._ws.of_type("signal")[-1]["data"]["type"] == "answer"
    await client.end_call()
