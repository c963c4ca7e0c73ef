"""WebRTC 시그널링 WebSocket 라우터.

룸 참가/퇴장, offer/answer/ICE candidate 직접 전달, 미디어 상태 브로드캐스트를 담당합니다.
서버는 메시지 내용을 해석하지 않고 검증 후 중계만 합니다.
"""

import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from modules.signaling import ClientConnection, SignalingError, SignalingRelay
from modules.signaling.messages import (
    BROADCAST_MODELS,
    BROADCAST_TYPES,
    DIRECT_MODELS,
    ERROR,
    JOIN_ROOM,
    LEAVE_ROOM,
    JoinRoomData,
    make_message,
)
from .deps import get_relay

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, relay: SignalingRelay = Depends(get_relay)):
    """시그널링을 위한 WebSocket 엔드포인트.

    처리하는 메시지 타입:
        - join-room: 룸 입장 (room_id, member_id, display_name)
        - leave-room: 현재 룸에서 퇴장
        - offer / answer / ice-candidate: target_member_id에게 직접 전달
        - toggle-audio / toggle-video / screen-share-started / screen-share-stopped:
          보낸 멤버를 제외한 룸 전체에 전달

    잘못된 메시지는 보낸 클라이언트에게만 ``error`` 프레임으로 알리고 연결은 유지합니다.
    연결이 끊기면 입장 중이던 룸에서 자동으로 퇴장 처리됩니다.

    Args:
        websocket: FastAPI WebSocket 연결 객체
        relay: 앱 상태의 시그널링 릴레이
    """
    await websocket.accept()
    connection = relay.open_connection(websocket)
    logger.info(f"연결 {connection.address[:8]} 수립")

    try:
        while True:
            raw = await websocket.receive_text()
            await handle_message(relay, connection, raw)

    except WebSocketDisconnect:
        logger.info(f"연결 {connection.address[:8]} 끊김")
    except Exception as e:
        logger.error(f"연결 {connection.address[:8]}의 WebSocket 처리 중 오류: {e}", exc_info=True)
    finally:
        await relay.disconnect(connection)


async def handle_message(relay: SignalingRelay, connection: ClientConnection, raw: str) -> None:
    """수신 프레임 하나를 검증하고 처리합니다."""
    try:
        frame = json.loads(raw)
    except ValueError:
        _reply_error(connection, "Invalid JSON")
        return
    if not isinstance(frame, dict):
        _reply_error(connection, "Invalid message format")
        return

    message_type = frame.get("type")
    data = frame.get("data") or {}

    try:
        if message_type == JOIN_ROOM:
            join = JoinRoomData.model_validate(data)
            await relay.join(connection, join.room_id, join.member_id, join.display_name)

        elif message_type == LEAVE_ROOM:
            await relay.leave(connection)

        elif message_type in DIRECT_MODELS:
            payload = DIRECT_MODELS[message_type].model_validate(data)
            relay.forward(
                connection,
                payload.target_member_id,
                make_message(message_type, payload.model_dump()),
            )

        elif message_type in BROADCAST_TYPES:
            model = BROADCAST_MODELS.get(message_type)
            body = model.model_validate(data).model_dump() if model else {}
            relay.broadcast(connection, make_message(message_type, body))

        else:
            logger.warning(f"알 수 없는 메시지 타입: {message_type}")
            _reply_error(connection, f"Unknown message type: {message_type}")

    except ValidationError as e:
        logger.warning(f"잘못된 {message_type} 메시지: {e.errors()}")
        _reply_error(connection, f"Invalid {message_type} message")
    except SignalingError as e:
        logger.warning(f"연결 {connection.address[:8]}의 {message_type} 처리 실패: {e}")
        _reply_error(connection, str(e))


def _reply_error(connection: ClientConnection, message: str) -> None:
    connection.send(make_message(ERROR, {"message": message}))
