"""WebRTC 클라이언트 모듈.

원격 멤버별 피어 세션 협상과 시그널링 서버 연결을 제공합니다.

Classes:
    PeerSession: 원격 멤버 한 명과의 협상 상태 머신
    PeerSessionManager: 원격 멤버별 세션 생성/전달/종료
    SignalingClient: 시그널링 서버 WebSocket 클라이언트
    MediaTransport: 세션이 사용하는 미디어 전송 인터페이스
    AiortcTransport: aiortc 기반 미디어 전송

Config:
    ice_config: ICE 서버 설정
    client_config: 시그널링 클라이언트 설정
"""

from .config import ice_config, client_config, ICEServerConfig, ClientConfig
from .transport import MediaTransport, AiortcTransport
from .session import (
    PeerSession,
    SessionRole,
    NegotiationPhase,
    CandidateQueue,
    SessionDescriptionError,
)
from .peer_manager import PeerSessionManager, MemberStatus
from .client import SignalingClient

__all__ = [
    # Classes
    "PeerSession",
    "SessionRole",
    "NegotiationPhase",
    "CandidateQueue",
    "PeerSessionManager",
    "MemberStatus",
    "SignalingClient",
    "MediaTransport",
    "AiortcTransport",
    # Errors
    "SessionDescriptionError",
    # Config
    "ice_config",
    "client_config",
    "ICEServerConfig",
    "ClientConfig",
]
