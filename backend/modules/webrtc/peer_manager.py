"""피어 세션 관리 모듈.

이 모듈은 클라이언트 측에서 원격 멤버별 PeerSession을 만들고, 시그널링 서버에서
받은 메시지를 해당 세션으로 전달합니다.

주요 기능:
    - 멤버 발견 시 세션 생성 (existing-members → responder, member-joined → initiator)
    - offer/answer/ice-candidate를 세션별 inbox로 전달
    - 멤버 퇴장 시 세션 즉시 종료
    - 음소거/카메라/화면공유 상태 추적 (마지막 값 우선)

Architecture:
    - sessions: Dict[str, PeerSession] - 원격 멤버 ID → 세션
    - 세션마다 inbox(asyncio.Queue)와 워커 태스크 1개
    - 한 세션의 이벤트는 도착 순서대로 하나씩 처리되고, 세션끼리는 독립적으로 진행됨

Examples:
    >>> manager = PeerSessionManager("alice", send=client.send, transport_factory=make_transport)
    >>> await manager.dispatch({"type": "member-joined", "data": {"member_id": "bob", "display_name": "Bob"}})
    >>> manager.sessions["bob"].role
    <SessionRole.INITIATOR: 'initiator'>

See Also:
    session.py: 세션 상태 머신
    client.py: 시그널링 WebSocket 클라이언트
"""
import asyncio
import contextlib
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from modules.signaling import messages

from .session import NegotiationPhase, PeerSession, SendCallable, SessionDescriptionError, SessionRole
from .transport import MediaTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str], MediaTransport]

# inbox events
_CREATE_OFFER = "create_offer"
_OFFER = "offer"
_ANSWER = "answer"
_CANDIDATE = "candidate"


@dataclass
class MemberStatus:
    """원격 멤버의 표시용 상태. 마지막으로 받은 값이 이깁니다."""
    muted: bool = False
    video_off: bool = False
    screen_sharing: bool = False

    def apply(self, field: str, value: bool) -> bool:
        """값을 반영하고 실제로 바뀌었는지 반환합니다."""
        if getattr(self, field) == value:
            return False
        setattr(self, field, value)
        return True


class PeerSessionManager:
    """원격 멤버별 PeerSession을 관리하는 클래스.

    Attributes:
        local_member_id (str): 로컬 멤버 ID
        sessions (Dict[str, PeerSession]): 원격 멤버 ID → 세션
        member_status (Dict[str, MemberStatus]): 원격 멤버 ID → 표시 상태
        offer_delay (float): initiator가 offer를 만들기 전 대기 시간 (초)

    Callbacks:
        on_session_failed(member_id, error): 디스크립션 실패로 세션이 failed가 됨
        on_status_changed(member_id, status): 원격 멤버 상태가 바뀜
        on_session_closed(member_id): 세션이 종료됨
    """

    def __init__(
        self,
        local_member_id: str,
        send: SendCallable,
        transport_factory: TransportFactory,
        *,
        offer_delay: float = 0.0,
        on_session_failed: Optional[Callable[[str, SessionDescriptionError], Any]] = None,
        on_status_changed: Optional[Callable[[str, MemberStatus], Any]] = None,
        on_session_closed: Optional[Callable[[str], Any]] = None,
    ):
        self.local_member_id = local_member_id
        self.send = send
        self.transport_factory = transport_factory
        self.offer_delay = offer_delay
        self.on_session_failed = on_session_failed
        self.on_status_changed = on_status_changed
        self.on_session_closed = on_session_closed

        # member_id -> PeerSession
        self.sessions: Dict[str, PeerSession] = {}

        # member_id -> inbox / worker
        self._inboxes: Dict[str, asyncio.Queue] = {}
        self._workers: Dict[str, asyncio.Task] = {}

        # member_id -> MemberStatus
        self.member_status: Dict[str, MemberStatus] = {}

    # ------------------------------------------------------------------
    # 세션 생명주기
    # ------------------------------------------------------------------

    def create_session(
        self,
        member_id: str,
        role: SessionRole,
        display_name: Optional[str] = None
    ) -> PeerSession:
        """원격 멤버에 대한 세션을 만들고 inbox 워커를 시작합니다.

        이미 세션이 있으면 기존 세션을 그대로 반환합니다.
        initiator 세션은 생성 직후 offer 생성 이벤트가 inbox에 들어갑니다.
        """
        if member_id in self.sessions:
            return self.sessions[member_id]

        transport = self.transport_factory(member_id)
        session = PeerSession(member_id, role, transport, self.send, display_name=display_name)
        inbox: asyncio.Queue = asyncio.Queue()

        self.sessions[member_id] = session
        self.member_status.setdefault(member_id, MemberStatus())
        self._inboxes[member_id] = inbox
        self._workers[member_id] = asyncio.create_task(self._run_session(session, inbox))
        logger.info(f"[Peers] {member_id[:8]} 세션 생성 (role={role.value})")

        if role is SessionRole.INITIATOR:
            inbox.put_nowait((_CREATE_OFFER, None))
        return session

    async def close_session(self, member_id: str) -> bool:
        """세션을 즉시 종료합니다.

        진행 중인 전이는 취소되고, 대기 candidate는 버려지며, 전송 자원이 해제됩니다.

        Returns:
            bool: 세션이 있었으면 True
        """
        session = self.sessions.pop(member_id, None)
        self._inboxes.pop(member_id, None)
        worker = self._workers.pop(member_id, None)
        self.member_status.pop(member_id, None)
        if session is None:
            return False

        if worker is not None and worker is not asyncio.current_task():
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker

        await session.close()
        logger.info(f"[Peers] {member_id[:8]} 세션 종료")
        await self._notify(self.on_session_closed, member_id)
        return True

    async def cleanup_all(self) -> None:
        """모든 세션을 종료합니다 (룸 퇴장 시)."""
        for member_id in list(self.sessions.keys()):
            await self.close_session(member_id)

    def get_session(self, member_id: str) -> Optional[PeerSession]:
        return self.sessions.get(member_id)

    async def wait_idle(self) -> None:
        """모든 세션 inbox가 비고 처리 중인 이벤트가 끝날 때까지 기다립니다."""
        for inbox in list(self._inboxes.values()):
            await inbox.join()

    # ------------------------------------------------------------------
    # 시그널링 메시지 처리
    # ------------------------------------------------------------------

    async def dispatch(self, message: dict) -> None:
        """시그널링 서버에서 받은 메시지를 처리합니다."""
        message_type = message.get("type")
        data = message.get("data") or {}

        if message_type == messages.EXISTING_MEMBERS:
            self.handle_existing_members(data.get("members", []))
        elif message_type == messages.MEMBER_JOINED:
            await self.handle_member_joined(data.get("member_id"), data.get("display_name"))
        elif message_type == messages.MEMBER_LEFT:
            await self.handle_member_left(data.get("member_id"))
        elif message_type == messages.OFFER:
            self.handle_offer(data.get("from_member_id"), data.get("description"))
        elif message_type == messages.ANSWER:
            self.handle_answer(data.get("from_member_id"), data.get("description"))
        elif message_type == messages.ICE_CANDIDATE:
            self.handle_ice_candidate(data.get("from_member_id"), data.get("candidate"))
        elif message_type in messages.BROADCAST_TYPES:
            await self.handle_status(message_type, data)
        elif message_type == messages.ERROR:
            logger.warning(f"[Peers] 서버 오류: {data.get('message')}")
        else:
            logger.warning(f"[Peers] 알 수 없는 메시지 타입: {message_type}")

    def handle_existing_members(self, members: Iterable[dict]) -> None:
        """입장 전부터 있던 멤버들: 상대가 offer를 보내므로 responder 세션을 만듭니다."""
        for member in members:
            member_id = member.get("member_id")
            if not member_id or member_id == self.local_member_id:
                continue
            self.create_session(member_id, SessionRole.RESPONDER, member.get("display_name"))

    async def handle_member_joined(self, member_id: Optional[str], display_name: Optional[str]) -> None:
        """새로 들어온 멤버: 로컬이 initiator가 되어 offer를 보냅니다.

        이미 세션이 있던 멤버라면 새 라운드를 위해 이전 세션을 닫고 새로 만듭니다.
        """
        if not member_id or member_id == self.local_member_id:
            return
        if member_id in self.sessions:
            logger.info(f"[Peers] {member_id[:8]} 재입장, 이전 세션 교체")
            await self.close_session(member_id)
        self.create_session(member_id, SessionRole.INITIATOR, display_name)

    async def handle_member_left(self, member_id: Optional[str]) -> None:
        if not member_id:
            return
        if not await self.close_session(member_id):
            logger.debug(f"[Peers] 세션 없는 멤버 {member_id} 퇴장")

    def handle_offer(self, from_member_id: Optional[str], description: Optional[dict]) -> None:
        if not from_member_id or not description:
            logger.warning("[Peers] 잘못된 offer 무시")
            return
        if from_member_id not in self.sessions:
            self.create_session(from_member_id, SessionRole.RESPONDER)
        self._post(from_member_id, _OFFER, description)

    def handle_answer(self, from_member_id: Optional[str], description: Optional[dict]) -> None:
        if from_member_id not in self.sessions or not description:
            logger.warning(f"[Peers] 세션 없는 멤버 {from_member_id}의 answer 무시")
            return
        self._post(from_member_id, _ANSWER, description)

    def handle_ice_candidate(self, from_member_id: Optional[str], candidate: Optional[dict]) -> None:
        if from_member_id not in self.sessions or not candidate:
            logger.debug(f"[Peers] 세션 없는 멤버 {from_member_id}의 candidate 무시")
            return
        self._post(from_member_id, _CANDIDATE, candidate)

    async def handle_status(self, message_type: str, data: dict) -> bool:
        """원격 멤버의 표시 상태를 갱신합니다.

        Returns:
            bool: 상태가 실제로 바뀌었으면 True
        """
        member_id = data.get("member_id")
        if not member_id or member_id == self.local_member_id:
            return False

        field, value = _status_update(message_type, data)
        if field is None:
            return False

        status = self.member_status.setdefault(member_id, MemberStatus())
        if not status.apply(field, value):
            return False
        logger.info(f"[Peers] {member_id[:8]} 상태 변경: {field}={value}")
        await self._notify(self.on_status_changed, member_id, status)
        return True

    # ------------------------------------------------------------------
    # 세션 워커
    # ------------------------------------------------------------------

    def _post(self, member_id: str, event: str, payload: Any) -> None:
        self._inboxes[member_id].put_nowait((event, payload))

    async def _run_session(self, session: PeerSession, inbox: asyncio.Queue) -> None:
        while True:
            event, payload = await inbox.get()
            try:
                await self._handle_event(session, event, payload)
            except SessionDescriptionError as e:
                await self._notify(self.on_session_failed, session.remote_member_id, e)
            except Exception:
                logger.exception(f"[Peers] {session.remote_member_id[:8]} {event} 처리 중 오류")
            finally:
                inbox.task_done()

    async def _handle_event(self, session: PeerSession, event: str, payload: Any) -> None:
        if session.phase is NegotiationPhase.FAILED and event != _CANDIDATE:
            logger.warning(f"[Peers] {session.remote_member_id[:8]} failed 세션, {event} 무시")
            return

        if event == _CREATE_OFFER:
            if self.offer_delay > 0:
                await asyncio.sleep(self.offer_delay)
            await session.create_offer()
        elif event == _OFFER:
            await session.receive_offer(payload)
        elif event == _ANSWER:
            await session.receive_answer(payload)
        elif event == _CANDIDATE:
            await session.add_remote_candidate(payload)

    @staticmethod
    async def _notify(callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("[Peers] 콜백 처리 중 오류")


def _status_update(message_type: str, data: dict) -> Tuple[Optional[str], bool]:
    if message_type == messages.TOGGLE_AUDIO:
        return "muted", bool(data.get("muted"))
    if message_type == messages.TOGGLE_VIDEO:
        return "video_off", bool(data.get("video_off"))
    if message_type == messages.SCREEN_SHARE_STARTED:
        return "screen_sharing", True
    if message_type == messages.SCREEN_SHARE_STOPPED:
        return "screen_sharing", False
    return None, False
