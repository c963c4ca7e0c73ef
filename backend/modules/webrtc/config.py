"""WebRTC 클라이언트 모듈 설정.

STUN/TURN 서버, 시그널링 서버 주소 등 클라이언트 측 상수와 환경변수 기반 설정.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import List, Optional

# 환경변수 로드 (상위에서 이미 로드됨)
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_path = Path(__file__).parent.parent.parent / "config" / ".env"
load_dotenv(_env_path)


# ============================================================
# ICE Server 설정
# ============================================================

@dataclass(frozen=True)
class ICEServerConfig:
    """ICE 서버 설정."""

    # TURN 서버
    TURN_SERVER_URL: Optional[str] = os.getenv("TURN_SERVER_URL")
    TURN_USERNAME: Optional[str] = os.getenv("TURN_USERNAME")
    TURN_CREDENTIAL: Optional[str] = os.getenv("TURN_CREDENTIAL")

    # STUN 서버
    STUN_SERVER_URL: Optional[str] = os.getenv("STUN_SERVER_URL")

    # 기본 공개 STUN 서버 (fallback)
    DEFAULT_STUN_SERVERS: tuple = (
        "stun:stun.l.google.com:19302",
        "stun:stun1.l.google.com:19302",
        "stun:stun2.l.google.com:19302",
    )

    @property
    def has_turn_server(self) -> bool:
        """TURN 서버 설정 완료 여부."""
        return all([self.TURN_SERVER_URL, self.TURN_USERNAME, self.TURN_CREDENTIAL])

    def stun_urls(self) -> List[str]:
        """커스텀 STUN 서버를 앞에 둔 STUN URL 목록."""
        urls = []
        if self.STUN_SERVER_URL:
            urls.append(self.STUN_SERVER_URL)
        urls.extend(self.DEFAULT_STUN_SERVERS)
        return urls

    def to_client_list(self) -> List[dict]:
        """브라우저에 내려줄 ICE 서버 목록 (자격증명 제외).

        Returns:
            List[dict]: ``{"urls": ...}`` 형태의 STUN 서버 목록
        """
        return [{"urls": url} for url in self.stun_urls()]

    def to_rtc_ice_servers(self) -> list:
        """aiortc ``RTCConfiguration``에 넣을 ``RTCIceServer`` 목록."""
        from aiortc import RTCIceServer

        ice_servers = [RTCIceServer(urls=[url]) for url in self.stun_urls()]
        if self.has_turn_server:
            ice_servers.append(RTCIceServer(
                urls=[self.TURN_SERVER_URL],
                username=self.TURN_USERNAME,
                credential=self.TURN_CREDENTIAL
            ))
        return ice_servers


# ============================================================
# 시그널링 클라이언트 설정
# ============================================================

@dataclass(frozen=True)
class ClientConfig:
    """시그널링 클라이언트 설정."""

    # 시그널링 서버 WebSocket 주소
    SIGNALING_URL: str = os.getenv("SIGNALING_URL", "ws://localhost:3001/ws")

    # initiator가 offer를 만들기 전 대기 시간 (초)
    OFFER_DELAY: float = float(os.getenv("OFFER_DELAY", "0.1"))


# ============================================================
# 싱글톤 인스턴스
# ============================================================

ice_config = ICEServerConfig()
client_config = ClientConfig()


logger.debug(f"[WebRTC Config] .env 경로: {_env_path} (존재: {_env_path.exists()})")
logger.debug(f"[WebRTC Config] TURN 서버 설정 완료: {ice_config.has_turn_server}")
