"""클라이언트 연결 모듈.

WebSocket 하나당 ClientConnection 하나가 만들어집니다. 서버가 부여한 전송 주소와
현재 참가 중인 룸/멤버 정보를 가지고, 송신 큐와 단일 writer 태스크를 통해
이 클라이언트로 가는 모든 메시지를 넣은 순서대로 전달합니다.
"""

import asyncio
import contextlib
import logging
import uuid
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class ClientConnection:
    """시그널링 클라이언트 한 명과의 양방향 연결.

    ``send()``는 블로킹 없이 송신 큐에 넣기만 하며, 실제 전송은 writer 태스크가
    순서대로 처리합니다. 같은 송신자가 보낸 offer → answer → candidate는 이
    큐를 통과하므로 수신자에게 보낸 순서 그대로 도착합니다.

    Attributes:
        websocket: ``send_json()`` 코루틴을 가진 WebSocket 객체
        address (str): 서버가 부여한 연결 핸들
        room_id (Optional[str]): 현재 참가 중인 룸 ID
        member_id (Optional[str]): 현재 룸에서의 멤버 ID
        display_name (Optional[str]): 현재 룸에서의 표시 이름
    """

    def __init__(
        self,
        websocket: Any,
        *,
        queue_size: int = 256,
        on_send_failed: Optional[Callable[["ClientConnection"], Awaitable[None]]] = None,
    ):
        self.websocket = websocket
        self.address = uuid.uuid4().hex
        self.room_id: Optional[str] = None
        self.member_id: Optional[str] = None
        self.display_name: Optional[str] = None
        self.on_send_failed = on_send_failed

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._writer: Optional[asyncio.Task] = None
        self._closed = False
        self.logger = logger.getChild(self.address[:8])

    @property
    def is_closed(self) -> bool:
        return self._closed

    def bind(self, room_id: str, member_id: str, display_name: str) -> None:
        """연결을 룸 멤버십에 묶습니다."""
        self.room_id = room_id
        self.member_id = member_id
        self.display_name = display_name

    def unbind(self) -> None:
        self.room_id = None
        self.member_id = None
        self.display_name = None

    def start(self) -> None:
        """writer 태스크를 시작합니다."""
        if self._writer is None:
            self._writer = asyncio.create_task(self._write_loop())

    def send(self, message: dict) -> bool:
        """메시지를 송신 큐에 넣습니다.

        Returns:
            bool: 큐에 들어갔으면 True. 연결이 닫혔거나 큐가 가득 차면 False
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(message)
        except asyncio.QueueFull:
            self.logger.error(f"송신 큐 가득 참 ({self._queue.maxsize}), 연결 끊김으로 처리")
            self._fail()
            return False
        return True

    async def drain(self) -> None:
        """현재까지 큐에 들어간 메시지가 모두 전송될 때까지 기다립니다."""
        await self._queue.join()

    async def close(self) -> None:
        """연결을 닫고 writer 태스크를 정리합니다. 여러 번 호출해도 안전합니다."""
        self._closed = True
        writer, self._writer = self._writer, None
        if writer is not None and writer is not asyncio.current_task():
            writer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await writer

    async def _write_loop(self) -> None:
        while True:
            message = await self._queue.get()
            try:
                await self.websocket.send_json(message)
            except Exception as e:
                self.logger.error(f"메시지 전송 실패 ({message.get('type')}): {e}")
                self._queue.task_done()
                self._fail()
                return
            self._queue.task_done()

    def _fail(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Unblock anyone waiting in drain()
        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
        if self.on_send_failed is not None:
            asyncio.ensure_future(self.on_send_failed(self))
