"""FastAPI WebRTC Signaling Server with Room Support.

이 모듈은 룸 기반 WebRTC 화상 통화를 위한 시그널링 서버를 제공합니다.
FastAPI와 WebSocket을 사용하여 같은 룸 멤버 사이의 시그널링 메시지를 중계하며,
미디어는 서버를 거치지 않고 멤버끼리 직접(peer-to-peer) 주고받습니다.

주요 기능:
    - 룸 기반 멤버 관리 (여러 룸 동시 지원)
    - offer/answer/ICE candidate 직접 전달
    - 실시간 멤버 입/퇴장 알림
    - 음소거/카메라/화면공유 상태 브로드캐스트
    - CORS 설정을 통한 크로스 오리진 요청 지원

Architecture:
    - Mesh 패턴: 멤버 쌍마다 피어 연결 하나
    - RoomRegistry: 룸 및 멤버 상태 관리
    - SignalingRelay: 멤버 간 메시지 라우팅
    - WebSocket: 실시간 시그널링 메시지 전송
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from modules import SignalingRelay, server_config, setup_logging
from routes import config_router, get_relay, health_router, signaling_router

logger = logging.getLogger(__name__)

SERVICE_NAME = "WebRTC Signaling Server with Rooms"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI 앱의 생명주기를 관리하는 컨텍스트 매니저.

    종료 시 남아 있는 모든 WebSocket 연결을 룸에서 퇴장시키고 정리합니다.

    Args:
        app (FastAPI): FastAPI 애플리케이션 인스턴스

    Yields:
        None: 앱이 실행되는 동안 제어를 반환
    """
    logger.info(f"시그널링 서버 시작 중... (env={server_config.ENV})")

    yield

    logger.info("서버 종료 중...")
    await app.state.relay.shutdown()
    logger.info("모든 연결 정리 완료")


def create_app(relay: Optional[SignalingRelay] = None) -> FastAPI:
    """FastAPI 애플리케이션을 만듭니다.

    Args:
        relay: 사용할 릴레이 (지정하지 않으면 새로 생성)

    Returns:
        FastAPI: 라우터와 CORS가 설정된 앱
    """
    app = FastAPI(title=SERVICE_NAME, lifespan=lifespan)
    app.state.relay = relay or SignalingRelay(queue_size=server_config.OUTBOUND_QUEUE_SIZE)

    origins = server_config.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # "*"와 credentials는 함께 쓸 수 없음
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(config_router)
    app.include_router(signaling_router)

    @app.get("/")
    async def root():
        """서버 상태 확인 엔드포인트.

        Returns:
            dict: 서버 상태 정보
                - status (str): 서버 상태
                - service (str): 서비스 이름
        """
        return {"status": "ok", "service": SERVICE_NAME}

    @app.get("/api/rooms")
    async def get_rooms_api(relay: SignalingRelay = Depends(get_relay)):
        """활성화된 모든 룸의 목록을 조회합니다.

        Returns:
            dict: 룸 목록 (룸 ID, 멤버 수, 멤버 목록)
        """
        return {"rooms": relay.registry.get_room_list()}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    setup_logging()
    uvicorn.run(app, host=server_config.HOST, port=server_config.PORT, log_level="info")
