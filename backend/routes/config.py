"""클라이언트 설정 API 라우터.

브라우저 클라이언트가 시작할 때 필요한 공개 설정값을 내려줍니다.
"""

import logging

from fastapi import APIRouter

from modules.signaling import server_config
from modules.webrtc.config import ice_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["config"])


@router.get("/config")
async def get_client_config():
    """클라이언트에 공개 가능한 설정을 반환합니다.

    Returns:
        dict: ``api_key``, ``app_id``, ``ice_servers`` (STUN 목록)

    Security:
        - STREAM_API_SECRET, TURN 자격증명은 절대 응답에 포함하지 않음
    """
    return {
        "api_key": server_config.STREAM_API_KEY,
        "app_id": server_config.STREAM_APP_ID,
        "ice_servers": ice_config.to_client_list(),
    }
