"""시그널링 서버 모듈.

룸 멤버십과 시그널링 메시지 중계를 담당합니다.

Classes:
    RoomRegistry: 룸 및 멤버 관리
    Member: 멤버 데이터 클래스
    SignalingRelay: 룸 멤버 간 메시지 라우터
    ClientConnection: WebSocket 연결과 순서 보장 송신 큐

Config:
    server_config: 서버 설정
"""

from .room_registry import RoomRegistry, Member
from .connection import ClientConnection
from .relay import SignalingRelay, SignalingError, NotInRoomError
from .config import server_config, ServerConfig

__all__ = [
    # Classes
    "RoomRegistry",
    "Member",
    "ClientConnection",
    "SignalingRelay",
    # Errors
    "SignalingError",
    "NotInRoomError",
    # Config
    "server_config",
    "ServerConfig",
]
