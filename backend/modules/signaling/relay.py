"""시그널링 릴레이 모듈.

룸 멤버 사이의 시그널링 메시지를 중계합니다. 릴레이 자체는 상태를 갖지 않는
라우터이며, 멤버십은 RoomRegistry에, 연결은 ClientConnection 테이블에 있습니다.

주요 기능:
    - 룸 입장/퇴장 처리 및 멤버 입/퇴장 알림
    - 특정 멤버에게 직접 전달 (offer/answer/ice-candidate)
    - 룸 전체 브로드캐스트 (음소거/카메라/화면공유 상태)
    - 전송 실패 연결을 끊김으로 처리

Delivery:
    - 모든 전달은 fire-and-forget, 최대 1회 시도 (ack/재시도 없음)
    - 목적지가 없으면 조용히 버림 (막 연결이 끊긴 멤버일 수 있음)
    - 수신자별 송신 큐를 거치므로 같은 송신자 → 수신자 쌍의 순서는 유지됨
"""

import logging
import time
from typing import Any, Dict, List, Optional

from .connection import ClientConnection
from .messages import EXISTING_MEMBERS, MEMBER_JOINED, MEMBER_LEFT, make_message
from .room_registry import Member, RoomRegistry

logger = logging.getLogger(__name__)


class SignalingError(Exception):
    """시그널링 처리 중 발신자에게 알려야 하는 오류."""


class NotInRoomError(SignalingError):
    """룸에 참가하지 않은 연결이 중계를 요청함."""

    def __init__(self):
        super().__init__("Not in a room")


class SignalingRelay:
    """룸 멤버 사이의 메시지 라우터.

    Attributes:
        registry (RoomRegistry): 룸 멤버십
        connections (Dict[str, ClientConnection]): 전송 주소 → 연결
        queue_size (int): 새 연결의 송신 큐 크기
        started_at (float): 생성 시각 (``time.monotonic()``)

    Examples:
        >>> relay = SignalingRelay()
        >>> conn = relay.open_connection(websocket)
        >>> await relay.join(conn, "R", "alice", "Alice")
        >>> relay.route_direct("R", "alice", "bob", {"type": "offer", "data": {...}})
    """

    def __init__(self, registry: Optional[RoomRegistry] = None, *, queue_size: int = 256):
        self.registry = registry or RoomRegistry()
        self.connections: Dict[str, ClientConnection] = {}
        self.queue_size = queue_size
        self.started_at = time.monotonic()

    # ------------------------------------------------------------------
    # 연결 관리
    # ------------------------------------------------------------------

    def open_connection(self, websocket: Any) -> ClientConnection:
        """WebSocket에 대한 연결을 만들고 등록한 뒤 writer를 시작합니다."""
        connection = ClientConnection(
            websocket,
            queue_size=self.queue_size,
            on_send_failed=self.disconnect,
        )
        self.register(connection)
        connection.start()
        return connection

    def register(self, connection: ClientConnection) -> None:
        self.connections[connection.address] = connection
        logger.info(f"연결 {connection.address[:8]} 등록 (총 {len(self.connections)}개)")

    @property
    def connection_count(self) -> int:
        return len(self.connections)

    @property
    def room_count(self) -> int:
        return self.registry.room_count

    @property
    def uptime(self) -> float:
        return time.monotonic() - self.started_at

    # ------------------------------------------------------------------
    # 멤버십
    # ------------------------------------------------------------------

    async def join(
        self,
        connection: ClientConnection,
        room_id: str,
        member_id: str,
        display_name: str
    ) -> List[Member]:
        """연결을 룸에 입장시킵니다.

        입장 전 멤버 스냅샷은 입장한 연결에게만 ``existing-members``로 보내고,
        나머지 멤버에게는 ``member-joined``를 브로드캐스트합니다.

        Args:
            connection: 입장하는 연결
            room_id: 룸 ID
            member_id: 클라이언트가 정한 멤버 ID
            display_name: 표시 이름

        Returns:
            List[Member]: 입장 전부터 룸에 있던 다른 멤버 목록

        Note:
            - 다른 룸에 있던 연결은 먼저 그 룸에서 퇴장함
            - 같은 연결의 중복 입장은 스냅샷만 다시 보내고 알림은 하지 않음
            - 같은 member_id가 다른 연결로 입장하면 이전 연결을 먼저 퇴장 처리함
        """
        if connection.room_id is not None and (
            connection.room_id != room_id or connection.member_id != member_id
        ):
            await self.leave(connection)

        async with self.registry.locked(room_id):
            current = self.registry.get_member(room_id, member_id)

            if current is not None and current.address == connection.address:
                existing = self.registry.get_other_members(room_id, member_id)
                logger.info(f"멤버 {member_id}의 중복 입장 요청 무시 (룸 '{room_id}')")
                self._send_existing_members(connection, room_id, existing)
                return existing

            if current is not None:
                logger.info(f"멤버 {member_id} 재접속, 이전 연결 {current.address[:8]} 퇴장 처리")
                self._evict(room_id, current)

            existing = self.registry.join(room_id, member_id, display_name, connection.address)
            connection.bind(room_id, member_id, display_name)

            self.route_broadcast(
                room_id,
                member_id,
                make_message(MEMBER_JOINED, {"display_name": display_name}),
            )
            self._send_existing_members(connection, room_id, existing)

        logger.info(f"멤버 {display_name} ({member_id})가 룸 '{room_id}'에 입장함 "
                    f"(기존 멤버 {len(existing)}명)")
        return existing

    async def leave(self, connection: ClientConnection) -> bool:
        """연결을 현재 룸에서 퇴장시킵니다.

        ``member-left``를 먼저 브로드캐스트한 뒤 레지스트리에서 제거합니다.

        Returns:
            bool: 실제로 퇴장 처리했으면 True
        """
        room_id = connection.room_id
        if room_id is None:
            return False

        async with self.registry.locked(room_id):
            if connection.room_id != room_id:
                return False
            member_id = connection.member_id
            connection.unbind()

            member = self.registry.get_member(room_id, member_id)
            if member is None or member.address != connection.address:
                return False
            self._evict(room_id, member)

        logger.info(f"멤버 {member.display_name} ({member_id})가 룸 '{room_id}'에서 퇴장함")
        return True

    async def disconnect(self, connection: ClientConnection) -> None:
        """연결 종료를 처리합니다. 여러 번 호출해도 안전합니다."""
        await self.leave(connection)
        if self.connections.pop(connection.address, None) is not None:
            logger.info(f"연결 {connection.address[:8]} 정리 완료 (남은 연결 {len(self.connections)}개)")
        await connection.close()

    async def shutdown(self) -> None:
        """모든 연결을 정리합니다 (서버 종료 시)."""
        for connection in list(self.connections.values()):
            await self.disconnect(connection)

    # ------------------------------------------------------------------
    # 라우팅
    # ------------------------------------------------------------------

    def route_direct(self, room_id: str, from_id: str, to_id: str, message: dict) -> bool:
        """룸의 특정 멤버 한 명에게만 메시지를 전달합니다.

        Args:
            room_id: 룸 ID
            from_id: 보내는 멤버 ID (``from_member_id``로 태깅됨)
            to_id: 받는 멤버 ID
            message: ``{"type", "data"}`` 프레임

        Returns:
            bool: 송신 큐에 들어갔으면 True. 목적지가 없으면 False (오류 아님)
        """
        address = self.registry.lookup(room_id, to_id)
        connection = self.connections.get(address) if address else None
        if connection is None:
            logger.debug(f"{message.get('type')} 목적지 {to_id} 없음 (룸 '{room_id}'), 버림")
            return False
        return connection.send(self._tag(message, "from_member_id", from_id))

    def route_broadcast(self, room_id: str, from_id: str, message: dict) -> int:
        """보낸 멤버를 제외한 룸의 모든 멤버에게 메시지를 전달합니다.

        Returns:
            int: 송신 큐에 들어간 수신자 수
        """
        tagged = self._tag(message, "member_id", from_id)
        delivered = 0
        for member in self.registry.get_other_members(room_id, from_id):
            connection = self.connections.get(member.address)
            if connection is not None and connection.send(tagged):
                delivered += 1
        return delivered

    def forward(self, connection: ClientConnection, target_member_id: str, message: dict) -> bool:
        """연결이 속한 룸 안에서 직접 전달합니다."""
        if connection.room_id is None:
            raise NotInRoomError()
        return self.route_direct(connection.room_id, connection.member_id, target_member_id, message)

    def broadcast(self, connection: ClientConnection, message: dict) -> int:
        """연결이 속한 룸 전체에 브로드캐스트합니다."""
        if connection.room_id is None:
            raise NotInRoomError()
        return self.route_broadcast(connection.room_id, connection.member_id, message)

    # ------------------------------------------------------------------
    # 내부 헬퍼
    # ------------------------------------------------------------------

    def _evict(self, room_id: str, member: Member) -> None:
        """룸 락을 잡은 상태에서 호출: 퇴장 알림 후 레지스트리에서 제거."""
        self.route_broadcast(room_id, member.member_id, make_message(MEMBER_LEFT))
        self.registry.leave(room_id, member.member_id, address=member.address)

        stale = self.connections.get(member.address)
        if stale is not None and stale.room_id == room_id and stale.member_id == member.member_id:
            stale.unbind()

    def _send_existing_members(self, connection: ClientConnection, room_id: str, members: List[Member]) -> None:
        connection.send(make_message(EXISTING_MEMBERS, {
            "room_id": room_id,
            "members": [member.to_dict() for member in members],
        }))

    @staticmethod
    def _tag(message: dict, key: str, member_id: str) -> dict:
        data = {k: v for k, v in (message.get("data") or {}).items() if k != "target_member_id"}
        data[key] = member_id
        return {"type": message["type"], "data": data}
