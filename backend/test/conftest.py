"""테스트 공용 픽스처.

실제 네트워크나 aiortc 없이 시그널링과 세션 협상을 검증하기 위한 가짜 객체들을 제공합니다.
"""

import asyncio
import itertools
from typing import Callable, List, Optional

import pytest

from modules.signaling import RoomRegistry, SignalingRelay
from modules.webrtc.transport import MediaTransport


class FakeWebSocket:
    """``send_json()``만 가진 서버 측 WebSocket 대역."""

    def __init__(self, fail: bool = False):
        self.sent: List[dict] = []
        self.fail = fail

    async def send_json(self, message: dict) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(message)

    def types(self) -> List[str]:
        return [message["type"] for message in self.sent]

    def of_type(self, message_type: str) -> List[dict]:
        return [message for message in self.sent if message["type"] == message_type]


class FakeTransport(MediaTransport):
    """호출을 기록하는 미디어 전송 대역.

    ``fail_on``에 단계 이름(create_offer, create_answer, set_remote_description)을
    넣으면 해당 호출에서 예외를 던집니다.
    """

    _ids = itertools.count(1)

    def __init__(self, member_id: str = "remote", fail_on: Optional[set] = None):
        self.member_id = member_id
        self.fail_on = fail_on or set()
        self.remote_descriptions: List[dict] = []
        self.candidates: List[dict] = []
        self.calls: List[str] = []
        self.closed = False

    def _check(self, stage: str) -> None:
        self.calls.append(stage)
        if stage in self.fail_on:
            raise ValueError(f"{stage} rejected")

    async def create_offer(self) -> dict:
        self._check("create_offer")
        return {"sdp": f"offer-sdp-{next(self._ids)}", "type": "offer"}

    async def create_answer(self) -> dict:
        self._check("create_answer")
        return {"sdp": f"answer-sdp-{next(self._ids)}", "type": "answer"}

    async def set_remote_description(self, description: dict) -> None:
        self._check("set_remote_description")
        self.remote_descriptions.append(description)

    async def add_ice_candidate(self, candidate: dict) -> None:
        self.calls.append("add_ice_candidate")
        self.candidates.append(candidate)

    async def close(self) -> None:
        self.calls.append("close")
        self.closed = True

    async def emit_candidate(self, candidate: dict) -> None:
        """로컬 ICE candidate 발견을 흉내 냅니다."""
        if self.on_ice_candidate:
            await self.on_ice_candidate(candidate)


class Outbox:
    """클라이언트가 서버로 보낸 메시지를 모으는 ``send`` 대역."""

    def __init__(self):
        self.messages: List[dict] = []

    async def __call__(self, message: dict) -> None:
        self.messages.append(message)

    def of_type(self, message_type: str) -> List[dict]:
        return [message for message in self.messages if message["type"] == message_type]


async def wait_until(condition: Callable[[], bool], timeout: float = 1.0) -> None:
    """조건이 참이 될 때까지 이벤트 루프를 돌립니다."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.001)


def candidate(n: int) -> dict:
    return {"candidate": f"candidate:{n} 1 udp 2122260223 10.0.0.{n} 5000{n} typ host",
            "sdpMid": "0", "sdpMLineIndex": 0}


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
async def relay(registry):
    relay = SignalingRelay(registry, queue_size=16)
    yield relay
    await relay.shutdown()


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def transports():
    """member_id → FakeTransport. 세션 관리자의 transport_factory로 사용합니다."""
    created = {}

    def factory(member_id: str) -> FakeTransport:
        transport = FakeTransport(member_id)
        created[member_id] = transport
        return transport

    factory.created = created
    return factory
