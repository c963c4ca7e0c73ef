"""피어 세션 상태 머신 모듈.

원격 멤버 한 명과의 협상(offer/answer) 상태를 명시적인 단계(phase)로 관리합니다.
각 전이는 현재 단계로 보호(guard)되며, 잘못된 단계에서 도착한 메시지는
로그만 남기고 버립니다.

States:
    idle ──create_offer──▶ offer-sent ──receive_answer──▶ stable      (initiator)
    idle ──receive_offer──▶ offer-received ──(answer 전송)──▶ stable   (responder)
    (any) ──close──▶ closed
    디스크립션 적용 실패 ──▶ failed (영구, 재시도 없음)

Candidate Queue:
    원격 디스크립션이 적용되기 전에 도착한 ICE candidate는 큐에 쌓였다가
    적용 직후 도착 순서대로 한 번만 재생되고 큐는 버려집니다.

Note:
    PeerSession의 메서드는 PeerSessionManager의 세션별 inbox 워커에서만 호출되어
    한 번에 하나의 전이만 실행됩니다.
"""
import logging
from collections import deque
from enum import Enum
from typing import Awaitable, Callable, Deque, List, Optional

from modules.signaling.messages import ANSWER, ICE_CANDIDATE, OFFER, make_message

from .transport import MediaTransport

logger = logging.getLogger(__name__)

SendCallable = Callable[[dict], Awaitable[None]]


class SessionRole(str, Enum):
    INITIATOR = "initiator"
    RESPONDER = "responder"


class NegotiationPhase(str, Enum):
    IDLE = "idle"
    OFFER_SENT = "offer-sent"
    OFFER_RECEIVED = "offer-received"
    STABLE = "stable"
    FAILED = "failed"
    CLOSED = "closed"


TERMINAL_PHASES = (NegotiationPhase.FAILED, NegotiationPhase.CLOSED)


class SessionDescriptionError(Exception):
    """디스크립션 생성/적용 실패. 해당 세션에만 치명적입니다.

    Attributes:
        member_id (str): 원격 멤버 ID
        stage (str): 실패한 단계 (create_offer, apply_answer, apply_offer, create_answer)
    """

    def __init__(self, member_id: str, stage: str, cause: Exception):
        super().__init__(f"{stage} failed for {member_id}: {cause}")
        self.member_id = member_id
        self.stage = stage
        self.__cause__ = cause


class CandidateQueue:
    """원격 디스크립션 적용 전에 도착한 ICE candidate 버퍼 (무제한 FIFO)."""

    def __init__(self):
        self._items: Deque[dict] = deque()

    def push(self, candidate: dict) -> None:
        self._items.append(candidate)

    def drain(self) -> List[dict]:
        """쌓인 candidate를 도착 순서대로 꺼내고 큐를 비웁니다."""
        items = list(self._items)
        self._items.clear()
        return items

    def discard(self) -> int:
        """쌓인 candidate를 버리고 버린 개수를 반환합니다."""
        count = len(self._items)
        self._items.clear()
        return count

    def __len__(self) -> int:
        return len(self._items)


class PeerSession:
    """원격 멤버 한 명과의 협상 상태 머신.

    원격 클라이언트도 자신의 PeerSession을 따로 가지며, 두 세션은 일시적으로
    서로 다른 단계에 있을 수 있습니다.

    Attributes:
        remote_member_id (str): 원격 멤버 ID
        display_name (Optional[str]): 원격 멤버 표시 이름
        role (SessionRole): initiator 또는 responder
        phase (NegotiationPhase): 현재 협상 단계
        local_description (Optional[dict]): 이번 라운드의 로컬 디스크립션
        remote_description (Optional[dict]): 이번 라운드의 원격 디스크립션
        candidates (CandidateQueue): 대기 중인 원격 candidate
        transport (MediaTransport): 미디어 전송
    """

    def __init__(
        self,
        remote_member_id: str,
        role: SessionRole,
        transport: MediaTransport,
        send: SendCallable,
        display_name: Optional[str] = None,
    ):
        self.remote_member_id = remote_member_id
        self.display_name = display_name
        self.role = role
        self.phase = NegotiationPhase.IDLE
        self.local_description: Optional[dict] = None
        self.remote_description: Optional[dict] = None
        self.candidates = CandidateQueue()
        self.transport = transport
        self.send = send
        self.transport.on_ice_candidate = self._on_local_candidate

    def __repr__(self) -> str:
        return f"PeerSession({self.remote_member_id!r}, {self.role.value}, {self.phase.value})"

    # ------------------------------------------------------------------
    # 전이
    # ------------------------------------------------------------------

    async def create_offer(self) -> bool:
        """offer를 만들어 원격 멤버에게 보냅니다 (initiator, idle 전용).

        Returns:
            bool: offer를 보냈으면 True, 단계가 맞지 않아 무시했으면 False

        Raises:
            SessionDescriptionError: offer 생성 실패 (세션은 failed가 됨)
        """
        if self.role is not SessionRole.INITIATOR or self.phase is not NegotiationPhase.IDLE:
            logger.warning(f"[Session] {self.remote_member_id[:8]} offer 생성 무시 "
                           f"(role={self.role.value}, phase={self.phase.value})")
            return False

        try:
            description = await self.transport.create_offer()
        except Exception as e:
            raise self._fail("create_offer", e)

        self.local_description = description
        self.phase = NegotiationPhase.OFFER_SENT
        await self.send(make_message(OFFER, {
            "target_member_id": self.remote_member_id,
            "description": description,
        }))
        logger.info(f"[Session] {self.remote_member_id[:8]}에게 offer 전송")
        return True

    async def receive_answer(self, description: dict) -> bool:
        """answer를 적용합니다 (offer-sent 전용).

        다른 단계에서 도착한 answer(중복 answer 포함)는 버리고 단계를 바꾸지 않습니다.

        Returns:
            bool: answer를 적용했으면 True

        Raises:
            SessionDescriptionError: answer 적용 실패 (세션은 failed가 됨)
        """
        if self.phase is not NegotiationPhase.OFFER_SENT:
            logger.warning(f"[Session] {self.remote_member_id[:8]} answer 무시, 잘못된 단계: {self.phase.value}")
            return False

        try:
            await self.transport.set_remote_description(description)
        except Exception as e:
            raise self._fail("apply_answer", e)

        self.remote_description = description
        await self._replay_candidates()
        self.phase = NegotiationPhase.STABLE
        logger.info(f"[Session] {self.remote_member_id[:8]} answer 적용, stable")
        return True

    async def receive_offer(self, description: dict) -> bool:
        """offer를 적용하고 answer를 보냅니다 (idle 전용, 먼저 온 offer가 이김).

        Returns:
            bool: answer를 보냈으면 True

        Raises:
            SessionDescriptionError: offer 적용 또는 answer 생성 실패
        """
        if self.phase is not NegotiationPhase.IDLE:
            logger.warning(f"[Session] {self.remote_member_id[:8]} offer 무시, 잘못된 단계: {self.phase.value}")
            return False

        try:
            await self.transport.set_remote_description(description)
        except Exception as e:
            raise self._fail("apply_offer", e)

        self.remote_description = description
        self.phase = NegotiationPhase.OFFER_RECEIVED
        await self._replay_candidates()

        try:
            answer = await self.transport.create_answer()
        except Exception as e:
            raise self._fail("create_answer", e)

        self.local_description = answer
        self.phase = NegotiationPhase.STABLE
        await self.send(make_message(ANSWER, {
            "target_member_id": self.remote_member_id,
            "description": answer,
        }))
        logger.info(f"[Session] {self.remote_member_id[:8]}에게 answer 전송, stable")
        return True

    async def add_remote_candidate(self, candidate: dict) -> bool:
        """원격 ICE candidate를 적용하거나 큐에 넣습니다.

        Returns:
            bool: 즉시 전송 계층에 적용했으면 True, 큐에 넣거나 버렸으면 False
        """
        if self.phase in TERMINAL_PHASES:
            logger.debug(f"[Session] {self.remote_member_id[:8]} {self.phase.value} 상태, candidate 버림")
            return False

        if self.remote_description is None:
            self.candidates.push(candidate)
            logger.debug(f"[Session] {self.remote_member_id[:8]} candidate 대기열 추가 ({len(self.candidates)}개)")
            return False

        await self._apply_candidate(candidate)
        return True

    async def close(self) -> None:
        """세션을 종료합니다. 대기 중인 candidate는 버리고 전송 자원을 해제합니다."""
        if self.phase is NegotiationPhase.CLOSED:
            return
        self.phase = NegotiationPhase.CLOSED
        dropped = self.candidates.discard()
        if dropped:
            logger.debug(f"[Session] {self.remote_member_id[:8]} 대기 candidate {dropped}개 폐기")
        try:
            await self.transport.close()
        except Exception:
            logger.exception(f"[Session] {self.remote_member_id[:8]} 전송 종료 실패")

    # ------------------------------------------------------------------
    # 내부 헬퍼
    # ------------------------------------------------------------------

    async def _replay_candidates(self) -> None:
        queued = self.candidates.drain()
        if not queued:
            return
        logger.info(f"[Session] {self.remote_member_id[:8]} 대기 candidate {len(queued)}개 적용")
        for candidate in queued:
            await self._apply_candidate(candidate)

    async def _apply_candidate(self, candidate: dict) -> None:
        try:
            await self.transport.add_ice_candidate(candidate)
        except Exception as e:
            logger.warning(f"[Session] {self.remote_member_id[:8]} candidate 적용 실패: {e}")

    async def _on_local_candidate(self, candidate: dict) -> None:
        if self.phase is NegotiationPhase.CLOSED:
            return
        await self.send(make_message(ICE_CANDIDATE, {
            "target_member_id": self.remote_member_id,
            "candidate": candidate,
        }))

    def _fail(self, stage: str, cause: Exception) -> SessionDescriptionError:
        self.phase = NegotiationPhase.FAILED
        self.candidates.discard()
        logger.error(f"[Session] {self.remote_member_id[:8]} {stage} 실패: {cause}")
        return SessionDescriptionError(self.remote_member_id, stage, cause)
