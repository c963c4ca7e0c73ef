"""Backend modules package.

이 패키지는 룸 기반 WebRTC 시그널링 서버와 클라이언트 측 피어 세션 관리 모듈을 포함합니다.

Modules:
    signaling: 룸 멤버십 및 시그널링 메시지 중계 (서버)
    webrtc: 피어 세션 상태 머신, 세션 관리자, 시그널링 클라이언트 (클라이언트)
    logging_config: 로깅 설정
"""

from .signaling import (
    RoomRegistry,
    Member,
    ClientConnection,
    SignalingRelay,
    SignalingError,
    NotInRoomError,
    server_config,
)
from .logging_config import setup_logging

__all__ = [
    # Signaling
    "RoomRegistry",
    "Member",
    "ClientConnection",
    "SignalingRelay",
    "SignalingError",
    "NotInRoomError",
    "server_config",
    # Logging
    "setup_logging",
]
