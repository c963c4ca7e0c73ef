"""룸 기반 멤버 관리 모듈.

이 모듈은 시그널링 서버의 룸(방)과 멤버(참가자) 관리를 담당합니다.
여러 개의 독립적인 룸을 동시에 관리하며, 각 룸의 멤버와 전송 주소
(서버가 부여한 연결 핸들)를 추적합니다.

주요 기능:
    - 룸 생성 및 삭제 (첫 입장 시 자동 생성/비어있을 때 자동 삭제)
    - 멤버 입장/퇴장 관리
    - 멤버 ID → 전송 주소 조회 (릴레이 목적지 해석)
    - 룸 단위 직렬화 락

Architecture:
    - rooms: Dict[str, Dict[str, Member]] - 룸 ID → 멤버 맵
    - _locks: Dict[str, asyncio.Lock] - 룸 ID → 변경 직렬화용 락

Classes:
    Member: 멤버 정보를 담는 불변 데이터 클래스
    RoomRegistry: 룸 및 멤버 관리 클래스

Examples:
    기본 사용법:
        >>> registry = RoomRegistry()
        >>> registry.join("R", "alice", "Alice", "conn-1")
        []
        >>> registry.lookup("R", "alice")
        'conn-1'

See Also:
    relay.py: 룸 멤버 간 메시지 라우팅
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Member:
    """룸에 참가한 멤버를 나타내는 불변 데이터 클래스.

    멤버는 입장 시 생성되고 퇴장/연결 종료 시 제거되며,
    그 사이에는 절대 변경되지 않습니다.

    Attributes:
        member_id (str): 클라이언트가 지정한 멤버 식별자
        display_name (str): 사용자가 설정한 표시 이름
        address (str): 서버가 부여한 연결 핸들 (ClientConnection.address)
    """
    member_id: str
    display_name: str
    address: str

    def to_dict(self) -> dict:
        """클라이언트에 공개되는 필드만 직렬화합니다."""
        return {"member_id": self.member_id, "display_name": self.display_name}


class RoomRegistry:
    """룸과 멤버를 관리하는 핵심 클래스.

    여러 개의 독립적인 룸을 관리하며, 각 룸은 여러 멤버를 포함할 수 있습니다.
    멤버십 조회/변경 메서드는 동기 함수이므로 이벤트 루프 안에서 원자적으로
    실행됩니다. 여러 단계로 이루어진 변경(입장 + 알림 등)은 ``locked()``로
    룸 단위 직렬화를 거쳐야 합니다.

    Attributes:
        rooms (Dict[str, Dict[str, Member]]): 룸 ID를 키로 하는 룸 딕셔너리

    Thread Safety:
        - asyncio 단일 스레드 환경을 전제로 함
        - 서로 다른 룸의 작업은 서로 기다리지 않음

    Examples:
        >>> registry = RoomRegistry()
        >>> registry.join("R", "alice", "Alice", "conn-1")
        []
        >>> [m.member_id for m in registry.join("R", "bob", "Bob", "conn-2")]
        ['alice']
        >>> registry.get_room_count("R")
        2
    """

    def __init__(self):
        # room_id -> {member_id: Member}
        self.rooms: Dict[str, Dict[str, Member]] = {}

        # room_id -> lock, with the number of coroutines holding/waiting on it
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def locked(self, room_id: str) -> AsyncIterator[None]:
        """룸 단위 변경을 직렬화하는 비동기 컨텍스트 매니저.

        같은 룸에 대한 입장/퇴장 처리는 한 번에 하나씩만 실행됩니다.
        다른 룸의 작업과는 서로 간섭하지 않습니다.

        Args:
            room_id (str): 잠글 룸 ID

        Note:
            - 락은 필요할 때 생성되고, 룸이 사라진 뒤 더 이상 사용하는
              코루틴이 없으면 제거됨
        """
        lock = self._locks.setdefault(room_id, asyncio.Lock())
        self._lock_users[room_id] = self._lock_users.get(room_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[room_id] -= 1
            if self._lock_users[room_id] == 0:
                del self._lock_users[room_id]
                if room_id not in self.rooms:
                    self._locks.pop(room_id, None)

    def join(self, room_id: str, member_id: str, display_name: str, address: str) -> List[Member]:
        """멤버를 지정된 룸에 추가합니다.

        룸이 존재하지 않으면 자동으로 생성한 후 멤버를 추가합니다.

        Args:
            room_id (str): 참가할 룸 ID
            member_id (str): 참가하는 멤버의 ID
            display_name (str): 멤버의 표시 이름
            address (str): 멤버 연결의 전송 주소

        Returns:
            List[Member]: 이번 호출 이전에 룸에 있던 다른 멤버 목록

        Note:
            - 같은 member_id와 같은 address로 다시 참가하면 아무 것도 바꾸지 않음
            - 같은 member_id가 다른 address로 참가하면 주소를 새 연결로 교체함
              (재접속; 이전 연결 정리는 호출자 책임)
        """
        room = self.rooms.setdefault(room_id, {})
        existing = [member for member in room.values() if member.member_id != member_id]

        current = room.get(member_id)
        if current is not None and current.address == address:
            logger.debug(f"Member '{member_id}' already in room '{room_id}' on {address}, ignoring join")
            return existing

        room[member_id] = Member(member_id=member_id, display_name=display_name, address=address)
        logger.info(f"Member '{display_name}' ({member_id}) joined room '{room_id}'. "
                    f"Room has {len(room)} members")
        return existing

    def leave(self, room_id: str, member_id: str, address: Optional[str] = None) -> Optional[Member]:
        """멤버를 룸에서 제거합니다.

        룸이 비어있게 되면 자동으로 삭제합니다.

        Args:
            room_id (str): 퇴장할 룸 ID
            member_id (str): 퇴장할 멤버 ID
            address (Optional[str]): 지정되면 주소가 일치할 때만 제거

        Returns:
            Optional[Member]: 제거된 멤버. 제거하지 않았으면 None

        Examples:
            >>> registry = RoomRegistry()
            >>> registry.join("R", "alice", "Alice", "conn-1")
            []
            >>> registry.leave("R", "alice").member_id
            'alice'
            >>> registry.leave("R", "alice") is None
            True
        """
        room = self.rooms.get(room_id)
        if not room or member_id not in room:
            return None

        member = room[member_id]
        if address is not None and member.address != address:
            logger.debug(f"Stale leave for '{member_id}' in room '{room_id}' ({address}), ignoring")
            return None

        del room[member_id]
        if not room:
            del self.rooms[room_id]
            if room_id not in self._lock_users:
                self._locks.pop(room_id, None)
            logger.info(f"Room '{room_id}' deleted (empty)")
        else:
            logger.info(f"Member '{member.display_name}' ({member_id}) left room '{room_id}'. "
                        f"Room has {len(room)} members")
        return member

    def lookup(self, room_id: str, member_id: str) -> Optional[str]:
        """멤버의 전송 주소를 조회합니다.

        Returns:
            Optional[str]: 전송 주소. 룸이나 멤버가 없으면 None
        """
        member = self.get_member(room_id, member_id)
        return member.address if member else None

    def get_member(self, room_id: str, member_id: str) -> Optional[Member]:
        """룸 ID와 멤버 ID로 Member 객체를 조회합니다."""
        return self.rooms.get(room_id, {}).get(member_id)

    def get_members(self, room_id: str) -> List[Member]:
        """특정 룸의 모든 멤버 목록을 반환합니다."""
        return list(self.rooms.get(room_id, {}).values())

    def get_other_members(self, room_id: str, exclude_member_id: str) -> List[Member]:
        """특정 멤버를 제외한 룸의 다른 모든 멤버를 반환합니다.

        브로드캐스트 시 본인을 제외하고 메시지를 전송할 때 사용됩니다.
        """
        return [member for member in self.rooms.get(room_id, {}).values()
                if member.member_id != exclude_member_id]

    def get_room_list(self) -> List[dict]:
        """모든 룸의 정보를 리스트로 반환합니다.

        Returns:
            List[dict]: 룸 정보 딕셔너리의 리스트
                - room_id (str): 룸 ID
                - member_count (int): 현재 멤버 수
                - members (List[dict]): member_id, display_name
        """
        return [
            {
                "room_id": room_id,
                "member_count": len(members),
                "members": [member.to_dict() for member in members.values()]
            }
            for room_id, members in self.rooms.items()
        ]

    def get_room_count(self, room_id: str) -> int:
        """특정 룸의 현재 멤버 수를 반환합니다. 룸이 없으면 0."""
        return len(self.rooms.get(room_id, {}))

    @property
    def room_count(self) -> int:
        """활성 룸 개수."""
        return len(self.rooms)
