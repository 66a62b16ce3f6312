"""통화 클라이언트 모듈.

Classes:
    CallClient: 시그널링 연결 + 협상 + 자막 처리
    NegotiationStateMachine: 피어 연결 협상 상태 머신
    CaptionRelayClient: 자막 송수신
    MyMemoryTranslator: 번역 제공자
    AiortcMediaConnection / MediaCapture: aiortc 기반 미디어

Note:
    aiortc 를 import 하므로 시그널링 서버(modules/__init__.py)에서는 로드하지 않습니다.
"""

from .negotiation import (
    NegotiationStateMachine,
    NegotiationState,
    NegotiationEvent,
    Action,
    Transition,
    transition,
    is_polite,
)
from .media import MediaConnection, AiortcMediaConnection, MediaCapture
from .caption import CaptionRelayClient
from .translation import TranslationProvider, MyMemoryTranslator
from .session import CallClient
from .config import client_config, translation_config, ClientConfig, TranslationConfig

__all__ = [
    # Negotiation
    "NegotiationStateMachine",
    "NegotiationState",
    "NegotiationEvent",
    "Action",
    "Transition",
    "transition",
    "is_polite",
    # Media
    "MediaConnection",
    "AiortcMediaConnection",
    "MediaCapture",
    # Captions
    "CaptionRelayClient",
    "TranslationProvider",
    "MyMemoryTranslator",
    # Session
    "CallClient",
    # Config
    "client_config",
    "translation_config",
    "ClientConfig",
    "TranslationConfig",
]
