"""공유 의존성 모듈.

라우터들이 공통으로 사용하는 의존성을 정의합니다.
"""

from fastapi.requests import HTTPConnection

from modules.signaling import SignalingRelay


def get_relay(conn: HTTPConnection) -> SignalingRelay:
    """앱 상태에 등록된 시그널링 릴레이를 반환합니다.

    HTTP 요청과 WebSocket 연결 모두에서 사용할 수 있습니다.

    Args:
        conn: 현재 요청 또는 WebSocket 연결

    Returns:
        SignalingRelay: app.py의 lifespan에서 만든 릴레이 인스턴스
    """
    return conn.app.state.relay
