"""시그널링 클라이언트 모듈.

시그널링 서버(``/ws``)와 WebSocket으로 연결하여 룸에 입장하고, 서버에서 받은
메시지를 PeerSessionManager로 넘깁니다. 로컬 미디어 상태(음소거, 카메라,
화면공유) 변경도 이 클라이언트를 통해 룸 전체에 알립니다.

Examples:
    >>> async with SignalingClient("alice", "Alice", tracks=[audio_track]) as client:
    ...     await client.join("room-1")
    ...     await client.run()
"""

import asyncio
import json
import logging
from typing import Any, Callable, Iterable, Optional

import websockets

from modules.signaling import messages

from .config import client_config
from .peer_manager import MemberStatus, PeerSessionManager, TransportFactory
from .session import SessionDescriptionError
from .transport import AiortcTransport

logger = logging.getLogger(__name__)


class SignalingClient:
    """룸 참가자 한 명의 시그널링 클라이언트.

    Attributes:
        member_id (str): 로컬 멤버 ID (클라이언트가 정함)
        display_name (str): 표시 이름
        url (str): 시그널링 서버 WebSocket 주소
        room_id (Optional[str]): 현재 참가 중인 룸
        manager (PeerSessionManager): 원격 멤버별 세션 관리자
        muted / video_off / screen_sharing (bool): 로컬 미디어 상태
    """

    def __init__(
        self,
        member_id: str,
        display_name: str = "Anonymous",
        *,
        url: Optional[str] = None,
        transport_factory: Optional[TransportFactory] = None,
        tracks: Iterable[Any] = (),
        offer_delay: Optional[float] = None,
        on_track: Optional[Callable[[str, Any], None]] = None,
        on_session_failed: Optional[Callable[[str, SessionDescriptionError], Any]] = None,
        on_status_changed: Optional[Callable[[str, MemberStatus], Any]] = None,
        on_session_closed: Optional[Callable[[str], Any]] = None,
    ):
        self.member_id = member_id
        self.display_name = display_name
        self.url = url or client_config.SIGNALING_URL
        self.tracks = list(tracks)
        self.on_track = on_track

        self.ws = None
        self.room_id: Optional[str] = None

        self.muted = False
        self.video_off = False
        self.screen_sharing = False

        self.manager = PeerSessionManager(
            member_id,
            self.send,
            transport_factory or self._create_transport,
            offer_delay=client_config.OFFER_DELAY if offer_delay is None else offer_delay,
            on_session_failed=on_session_failed,
            on_status_changed=on_status_changed,
            on_session_closed=on_session_closed,
        )

    def _create_transport(self, remote_member_id: str) -> AiortcTransport:
        return AiortcTransport(remote_member_id, tracks=self.tracks, on_track=self.on_track)

    # ------------------------------------------------------------------
    # 연결
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        logger.info(f"🔌 시그널링 서버 연결 중: {self.url}")
        self.ws = await websockets.connect(self.url, ping_interval=20, ping_timeout=10)
        logger.info("✅ 시그널링 서버 연결됨")

    async def close(self) -> None:
        """룸에서 나가고 WebSocket을 닫습니다."""
        if self.room_id is not None:
            await self.leave()
        if self.ws is not None:
            await self.ws.close()
            self.ws = None

    async def __aenter__(self) -> "SignalingClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def send(self, message: dict) -> None:
        """서버로 메시지를 보냅니다. 연결이 끊겼으면 경고만 남깁니다."""
        if self.ws is None:
            logger.warning(f"연결 없음, {message.get('type')} 전송 생략")
            return
        try:
            await self.ws.send(json.dumps(message))
        except websockets.exceptions.ConnectionClosed:
            logger.warning(f"🔌 연결 종료됨, {message.get('type')} 전송 실패")

    # ------------------------------------------------------------------
    # 룸
    # ------------------------------------------------------------------

    async def join(self, room_id: str) -> None:
        self.room_id = room_id
        await self.send(messages.make_message(messages.JOIN_ROOM, {
            "room_id": room_id,
            "member_id": self.member_id,
            "display_name": self.display_name,
        }))
        logger.info(f"룸 '{room_id}' 입장 요청 ({self.member_id})")

    async def leave(self) -> None:
        """모든 세션을 먼저 닫은 뒤 서버에 퇴장을 알립니다."""
        await self.manager.cleanup_all()
        await self.send(messages.make_message(messages.LEAVE_ROOM))
        logger.info(f"룸 '{self.room_id}' 퇴장")
        self.room_id = None

    async def run(self) -> None:
        """연결이 닫힐 때까지 서버 메시지를 받아 처리합니다."""
        try:
            async for raw in self.ws:
                await self.handle_raw(raw)
        except websockets.exceptions.ConnectionClosed as e:
            logger.warning(f"🔌 시그널링 연결 종료: {e}")
        finally:
            await self.manager.cleanup_all()

    async def handle_raw(self, raw: Any) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"잘못된 JSON 메시지 무시: {raw!r}")
            return
        if not isinstance(message, dict):
            logger.warning(f"잘못된 메시지 형식 무시: {message!r}")
            return
        await self.manager.dispatch(message)

    async def wait_idle(self) -> None:
        await self.manager.wait_idle()

    # ------------------------------------------------------------------
    # 로컬 미디어 상태
    # ------------------------------------------------------------------

    async def set_audio_muted(self, muted: bool) -> None:
        self.muted = muted
        await self.send(messages.make_message(messages.TOGGLE_AUDIO, {"muted": muted}))

    async def set_video_off(self, video_off: bool) -> None:
        self.video_off = video_off
        await self.send(messages.make_message(messages.TOGGLE_VIDEO, {"video_off": video_off}))

    async def start_screen_share(self) -> None:
        self.screen_sharing = True
        await self.send(messages.make_message(messages.SCREEN_SHARE_STARTED))

    async def stop_screen_share(self) -> None:
        self.screen_sharing = False
        await self.send(messages.make_message(messages.SCREEN_SHARE_STOPPED))


async def run_client(room_id: str, member_id: str, display_name: str = "Anonymous") -> None:
    """미디어 트랙 없이 룸에 참가하여 시그널링만 주고받습니다 (수동 점검용)."""
    async with SignalingClient(member_id, display_name) as client:
        await client.join(room_id)
        try:
            await client.run()
        except asyncio.CancelledError:
            logger.info("클라이언트 종료")
            raise
