"""Health Check API 라우터.

서비스 상태 확인을 위한 엔드포인트를 제공합니다.
"""

from fastapi import APIRouter, Depends

from modules.signaling import SignalingRelay
from .deps import get_relay

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(relay: SignalingRelay = Depends(get_relay)):
    """시그널링 서버 상태를 확인합니다.

    Returns:
        dict: 서버 상태, 가동 시간(초), 활성 룸 수, 연결 수
    """
    return {
        "status": "ok",
        "uptime": round(relay.uptime, 3),
        "rooms": relay.room_count,
        "connections": relay.connection_count,
    }
