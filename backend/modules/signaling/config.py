"""시그널링 서버 설정.

서버 바인딩 주소, CORS, 클라이언트에 공개할 설정값 등을 환경변수에서 읽습니다.
시크릿 값(STREAM_API_SECRET 등)은 여기서 읽지 않으며 클라이언트로도 내려가지 않습니다.
"""

import os
import logging
from pathlib import Path
from dataclasses import dataclass
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

_env_path = Path(__file__).parent.parent.parent / "config" / ".env"
load_dotenv(_env_path)


@dataclass(frozen=True)
class ServerConfig:
    """시그널링 서버 설정."""

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3001"))
    ENV: str = os.getenv("ENV", "development")

    # 콤마로 구분된 origin 목록, "*"이면 전체 허용
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    # 클라이언트에 공개되는 값 (시크릿 아님)
    STREAM_API_KEY: Optional[str] = os.getenv("STREAM_API_KEY")
    STREAM_APP_ID: Optional[str] = os.getenv("STREAM_APP_ID")

    # 연결당 송신 큐 크기
    OUTBOUND_QUEUE_SIZE: int = int(os.getenv("OUTBOUND_QUEUE_SIZE", "256"))

    @property
    def cors_origins(self) -> List[str]:
        """CORS 허용 origin 리스트."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


server_config = ServerConfig()
