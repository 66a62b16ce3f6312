"""피어 연결 협상 상태 머신.

시그널링으로 받은 offer/answer/ICE candidate 와 로컬 미디어 연결 이벤트를
하나의 상태 표에 따라 처리합니다.

구성:
    - transition(): (현재 상태, 이벤트) → (다음 상태, 액션) 순수 함수
    - is_polite(): 두 연결 ID 만으로 결정되는 glare 양보 규칙
    - NegotiationStateMachine: 액션을 MediaConnection 에 실행하는 비동기 드라이버

WebRTC Flow:
    1. user-joined 수신 → offer 담당 피어는 offer 전송, 상대는 대기
    2. responder 가 offer 수신 → answer 전송
    3. initiator 가 answer 수신 → 원격 설명 적용
    4. 미디어 연결 connected → 의존 작업(음성 인식) 시작
    5. user-left / 연결 종료 / 타임아웃 → 미디어 해제, Closed

Glare:
    역할이 입장 순서로 정해지므로 첫 offer 는 initiator 만 보냅니다. 재협상 등으로
    양쪽이 동시에 offer 를 보낸 경우 연결 ID 가 사전순으로 큰 쪽이 polite 피어가
    되어 자신의 offer 를 버리고 상대 offer 에 응답합니다. impolite 피어는 자신의
    offer 가 응답될 때까지 들어오는 offer 를 무시합니다. offer 를 버릴 때는 기존
    연결을 유지하며, 연결이 롤백을 지원하지 않을 때만 연결을 새로 만듭니다.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Set, Tuple

from ..shared import Role, SignalKind, SignalEnvelope, PeerUnreachable, SignalingError
from ..webrtc.config import connection_config
from .media import MediaConnection, StateCallback

logger = logging.getLogger(__name__)


class NegotiationState(str, Enum):
    IDLE = "idle"
    AWAITING_LOCAL_OFFER = "awaiting_local_offer"
    OFFER_SENT = "offer_sent"
    AWAITING_ANSWER = "awaiting_answer"
    ANSWERING_REMOTE_OFFER = "answering_remote_offer"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class NegotiationEvent(str, Enum):
    PAIRED = "paired"
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice_candidate"
    RENEGOTIATE = "renegotiate"
    TRANSPORT_CONNECTED = "transport_connected"
    TRANSPORT_CLOSED = "transport_closed"
    PEER_LEFT = "peer_left"
    END = "end"
    TIMEOUT = "timeout"


class Action(str, Enum):
    SEND_OFFER = "send_offer"
    ROLLBACK = "rollback"
    ACCEPT_OFFER = "accept_offer"
    APPLY_ANSWER = "apply_answer"
    ADD_CANDIDATE = "add_candidate"
    START_DEPENDENT_WORK = "start_dependent_work"
    RELEASE = "release"


@dataclass(frozen=True)
class Transition:
    """상태 전이 결과. ignored 는 현재 상태에서 의미 없는 (오래된) 이벤트."""
    next_state: NegotiationState
    actions: Tuple[Action, ...] = ()
    ignored: bool = False


# 연결 대기 중 (transport connected 를 기다리는 상태)
PENDING_STATES = frozenset({NegotiationState.CONNECTING, NegotiationState.ANSWERING_REMOTE_OFFER})

# 협상 타임아웃이 걸리는 상태
TIMED_STATES = frozenset({
    NegotiationState.AWAITING_LOCAL_OFFER,
    NegotiationState.OFFER_SENT,
    NegotiationState.AWAITING_ANSWER,
    NegotiationState.CONNECTING,
    NegotiationState.ANSWERING_REMOTE_OFFER,
})

TERMINATING_EVENTS = frozenset({
    NegotiationEvent.TRANSPORT_CLOSED,
    NegotiationEvent.PEER_LEFT,
    NegotiationEvent.END,
    NegotiationEvent.TIMEOUT,
})

_SIGNAL_EVENTS = {
    SignalKind.OFFER: NegotiationEvent.OFFER,
    SignalKind.ANSWER: NegotiationEvent.ANSWER,
    SignalKind.ICE_CANDIDATE: NegotiationEvent.ICE_CANDIDATE,
}


def is_polite(local_id: str, remote_id: str) -> bool:
    """연결 ID 가 사전순으로 더 큰 쪽이 polite 피어입니다."""
    return local_id > remote_id


def transition(
    state: NegotiationState,
    event: NegotiationEvent,
    role: Optional[Role] = None,
    polite: bool = False,
) -> Transition:
    """현재 상태와 이벤트로 다음 상태와 실행할 액션을 결정합니다.

    Args:
        state: 현재 상태
        event: 입력 이벤트
        role: 로컬 역할 (PAIRED 이벤트에서 사용)
        polite: 로컬이 polite 피어인지 여부 (glare 시 사용)

    Returns:
        Transition: 다음 상태, 액션, 무시 여부
    """
    S, E, A = NegotiationState, NegotiationEvent, Action

    if state is S.CLOSED:
        return Transition(state, ignored=True)

    if event in TERMINATING_EVENTS:
        return Transition(S.CLOSED, (A.RELEASE,))

    if event is E.ICE_CANDIDATE:
        return Transition(state, (A.ADD_CANDIDATE,))

    if event is E.PAIRED and state is S.IDLE:
        if role is Role.INITIATOR:
            return Transition(S.OFFER_SENT, (A.SEND_OFFER,))
        return Transition(S.AWAITING_LOCAL_OFFER)

    if event is E.OFFER:
        if state in (S.IDLE, S.AWAITING_LOCAL_OFFER):
            return Transition(S.CONNECTING, (A.ACCEPT_OFFER,))
        if state is S.CONNECTED:
            return Transition(S.CONNECTED, (A.ACCEPT_OFFER,))
        if state in (S.OFFER_SENT, S.AWAITING_ANSWER):
            # glare
            if not polite:
                return Transition(state, ignored=True)
            if state is S.AWAITING_ANSWER:
                # 재협상 glare: 전송 계층은 이미 연결되어 있음
                return Transition(S.CONNECTED, (A.ROLLBACK, A.ACCEPT_OFFER))
            return Transition(S.ANSWERING_REMOTE_OFFER, (A.ROLLBACK, A.ACCEPT_OFFER))

    if event is E.ANSWER:
        if state is S.OFFER_SENT:
            return Transition(S.CONNECTING, (A.APPLY_ANSWER,))
        if state is S.AWAITING_ANSWER:
            return Transition(S.CONNECTED, (A.APPLY_ANSWER,))

    if event is E.RENEGOTIATE and state is S.CONNECTED:
        return Transition(S.AWAITING_ANSWER, (A.SEND_OFFER,))

    if event is E.TRANSPORT_CONNECTED and state in PENDING_STATES:
        return Transition(S.CONNECTED, (A.START_DEPENDENT_WORK,))

    return Transition(state, ignored=True)


def validate_payload(kind: SignalKind, payload) -> None:
    """협상 payload 의 최소 형식을 확인합니다.

    Raises:
        ValueError: 형식이 잘못된 경우
    """
    if not isinstance(payload, dict):
        raise ValueError(f"{kind.value} payload must be an object")
    if kind is SignalKind.ICE_CANDIDATE:
        if not isinstance(payload.get("candidate"), str):
            raise ValueError("ice-candidate payload requires 'candidate'")
        return
    if not isinstance(payload.get("sdp"), str) or payload.get("type") != kind.value:
        raise ValueError(f"{kind.value} payload requires 'sdp' and type '{kind.value}'")


MediaFactory = Callable[[StateCallback], MediaConnection]
SendSignal = Callable[[SignalEnvelope], Awaitable[None]]


class NegotiationStateMachine:
    """한 피어 페어링의 협상을 담당하는 상태 머신 드라이버.

    원격 envelope 와 로컬 미디어 이벤트는 하나의 큐에 들어가 도착 순서대로
    처리되므로 락 없이도 한 번에 하나의 협상만 진행됩니다. 종료(close)는
    큐를 거치지 않고 즉시 미디어 연결을 해제합니다.

    Attributes:
        local_id (str): 로컬 연결 ID
        peer_id (Optional[str]): 상대 연결 ID
        role (Optional[Role]): 로컬 역할
        state (NegotiationState): 현재 상태

    Examples:
        >>> machine = NegotiationStateMachine("peer-a", media_factory, send_signal)
        >>> await machine.start()
        >>> await machine.paired("peer-b", Role.INITIATOR)
        >>> machine.state
        <NegotiationState.OFFER_SENT: 'offer_sent'>
    """

    def __init__(
        self,
        local_id: str,
        media_factory: MediaFactory,
        send_signal: SendSignal,
        on_connected: Optional[Callable[[], Awaitable[None]]] = None,
        on_closed: Optional[Callable[[str], Awaitable[None]]] = None,
        on_failure: Optional[Callable[[SignalingError], Awaitable[None]]] = None,
        timeout: float = connection_config.NEGOTIATION_TIMEOUT,
    ):
        self.local_id = local_id
        self.media_factory = media_factory
        self.send_signal = send_signal
        self.on_connected = on_connected
        self.on_closed = on_closed
        self.on_failure = on_failure
        self.timeout = timeout

        self.peer_id: Optional[str] = None
        self.role: Optional[Role] = None
        self.state = NegotiationState.IDLE

        self.media: Optional[MediaConnection] = None
        self._media_generation = 0
        self._remote_description_set = False
        self.pending_candidates: List[dict] = []

        self._inbox: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._deadline: Optional[asyncio.TimerHandle] = None
        self._timed_state: Optional[NegotiationState] = None
        self._background_tasks: Set[asyncio.Task] = set()

    @property
    def polite(self) -> bool:
        return self.peer_id is not None and is_polite(self.local_id, self.peer_id)

    # ------------------------------------------------------------
    # 입력
    # ------------------------------------------------------------

    async def start(self) -> None:
        """미디어 연결을 만들고 이벤트 처리 태스크를 시작합니다."""
        if self._worker is not None:
            return
        self.media = self._create_media()
        self._worker = asyncio.create_task(self._run())

    async def paired(self, peer_id: str, role: Role) -> None:
        self.peer_id = peer_id
        self.role = role
        self.submit(NegotiationEvent.PAIRED)

    async def receive(self, envelope: SignalEnvelope) -> None:
        """원격 envelope 를 큐에 넣습니다."""
        self.submit(_SIGNAL_EVENTS[envelope.kind], envelope)

    async def renegotiate(self) -> None:
        """연결된 상태에서 새 offer 로 재협상합니다 (예: 장치 전환)."""
        self.submit(NegotiationEvent.RENEGOTIATE)

    def submit(self, event: NegotiationEvent, envelope: Optional[SignalEnvelope] = None) -> None:
        if self.state is NegotiationState.CLOSED:
            logger.debug(f"[Negotiation] 종료 후 이벤트 무시: {event.value}")
            return
        self._inbox.put_nowait((event, envelope))

    async def drain(self) -> None:
        """큐에 쌓인 이벤트가 모두 처리될 때까지 기다립니다."""
        await self._inbox.join()

    # ------------------------------------------------------------
    # 처리
    # ------------------------------------------------------------

    async def _run(self) -> None:
        while self.state is not NegotiationState.CLOSED:
            event, envelope = await self._inbox.get()
            try:
                await self._dispatch(event, envelope)
            except Exception as e:
                # 한 envelope 의 실패는 세션 전체에 영향을 주지 않음
                logger.warning(f"[Negotiation] {event.value} 처리 실패: {type(e).__name__}: {e}")
            finally:
                self._inbox.task_done()

        # 종료 후 남은 이벤트 정리 (drain 대기 해제)
        while not self._inbox.empty():
            self._inbox.get_nowait()
            self._inbox.task_done()

    async def _dispatch(self, event: NegotiationEvent, envelope: Optional[SignalEnvelope]) -> None:
        if event in TERMINATING_EVENTS:
            await self.close(event.value)
            return

        if envelope is not None:
            if self.peer_id is None:
                self.peer_id = envelope.sender
            elif envelope.sender != self.peer_id:
                logger.debug(f"[Negotiation] 다른 피어의 {envelope.kind.value} 무시: {envelope.sender}")
                return
            try:
                validate_payload(envelope.kind, envelope.payload)
            except ValueError as e:
                logger.warning(f"[Negotiation] 잘못된 {envelope.kind.value} payload 드랍: {e}")
                return

        t = transition(self.state, event, role=self.role, polite=self.polite)
        if t.ignored:
            logger.debug(f"[Negotiation] 상태 {self.state.value}에서 {event.value} 무시 (stale)")
            return

        previous = self.state
        self.state = t.next_state
        if previous is not t.next_state:
            logger.info(f"[Negotiation] {previous.value} → {t.next_state.value} ({event.value})")

        try:
            for action in t.actions:
                await self._perform(action, envelope)
                if self.state is NegotiationState.CLOSED:
                    return
        except Exception:
            if self.state is not NegotiationState.CLOSED:
                self.state = previous
            raise
        finally:
            self._update_deadline()

    async def _perform(self, action: Action, envelope: Optional[SignalEnvelope]) -> None:
        if action is Action.SEND_OFFER:
            offer = await self.media.create_offer()
            await self._send(SignalKind.OFFER, offer)

        elif action is Action.ROLLBACK:
            logger.info("[Negotiation] glare: polite 피어로서 로컬 offer 폐기")
            if not await self.media.discard_local_offer():
                # 연결 재생성: 새 연결의 transport connected 를 기다림
                await self._replace_media()
                self.state = NegotiationState.ANSWERING_REMOTE_OFFER

        elif action is Action.ACCEPT_OFFER:
            await self._apply_remote_description(envelope.payload)
            answer = await self.media.create_answer()
            await self._send(SignalKind.ANSWER, answer)

        elif action is Action.APPLY_ANSWER:
            await self._apply_remote_description(envelope.payload)

        elif action is Action.ADD_CANDIDATE:
            if not self._remote_description_set:
                self.pending_candidates.append(envelope.payload)
                logger.debug(f"[Negotiation] ICE 후보 버퍼링 ({len(self.pending_candidates)}개)")
            else:
                await self.media.add_ice_candidate(envelope.payload)

        elif action is Action.START_DEPENDENT_WORK:
            if self.on_connected:
                await self.on_connected()

    async def _send(self, kind: SignalKind, payload: dict) -> None:
        await self.send_signal(SignalEnvelope(target=self.peer_id, kind=kind, payload=payload))

    async def _apply_remote_description(self, description: dict) -> None:
        await self.media.set_remote_description(description)
        self._remote_description_set = True

        # 버퍼링된 후보를 도착 순서대로 적용
        pending, self.pending_candidates = self.pending_candidates, []
        for candidate in pending:
            try:
                await self.media.add_ice_candidate(candidate)
            except Exception as e:
                logger.warning(f"[Negotiation] 버퍼링된 ICE 후보 적용 실패: {e}")

    # ------------------------------------------------------------
    # 미디어 연결
    # ------------------------------------------------------------

    def _create_media(self) -> MediaConnection:
        self._media_generation += 1
        generation = self._media_generation

        def on_state_change(connection_state: str) -> None:
            # 교체된 이전 연결의 이벤트는 무시
            if generation != self._media_generation:
                return
            if connection_state == "connected":
                self.submit(NegotiationEvent.TRANSPORT_CONNECTED)
            elif connection_state in ("failed", "closed"):
                self._spawn(self.close("transport-closed"))

        return self.media_factory(on_state_change)

    async def _replace_media(self) -> None:
        old = self.media
        self.media = self._create_media()
        self._remote_description_set = False
        if old is not None:
            await old.close()

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # ------------------------------------------------------------
    # 타임아웃
    # ------------------------------------------------------------

    def _update_deadline(self) -> None:
        if self.state not in TIMED_STATES:
            self._cancel_deadline()
            return
        if self._timed_state is self.state and self._deadline is not None:
            return
        self._cancel_deadline()
        self._timed_state = self.state
        self._deadline = asyncio.get_running_loop().call_later(self.timeout, self._on_deadline, self.state)

    def _cancel_deadline(self) -> None:
        if self._deadline is not None:
            self._deadline.cancel()
        self._deadline = None
        self._timed_state = None

    def _on_deadline(self, state: NegotiationState) -> None:
        if self.state is not state:
            return
        logger.warning(f"[Negotiation] 협상 타임아웃 ({self.timeout}s, 상태={state.value})")
        self._spawn(self._fail_unreachable())

    async def _fail_unreachable(self) -> None:
        await self.close(NegotiationEvent.TIMEOUT.value)
        if self.on_failure:
            await self.on_failure(PeerUnreachable(self.peer_id, "negotiation timeout"))

    # ------------------------------------------------------------
    # 종료
    # ------------------------------------------------------------

    async def close(self, reason: str = "end") -> None:
        """미디어 연결을 해제하고 Closed 로 전이합니다. 여러 번 호출해도 안전합니다."""
        if self.state is NegotiationState.CLOSED:
            return

        logger.info(f"[Negotiation] {self.state.value} → closed ({reason})")
        self.state = NegotiationState.CLOSED
        self._cancel_deadline()
        self.pending_candidates = []

        worker, self._worker = self._worker, None
        if worker is not None and worker is not asyncio.current_task():
            worker.cancel()
            while not self._inbox.empty():
                self._inbox.get_nowait()
                self._inbox.task_done()

        media, self.media = self.media, None
        self._media_generation += 1
        if media is not None:
            await media.close()

        if self.on_closed:
            await self.on_closed(reason)
