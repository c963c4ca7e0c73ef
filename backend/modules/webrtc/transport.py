"""미디어 전송 계층 모듈.

PeerSession이 사용하는 미디어 전송(피어 연결) 인터페이스와 aiortc 구현을 제공합니다.
세션 상태 머신은 이 인터페이스만 알고, 실제 미디어 패킷 전송은 구현체가 담당합니다.

Classes:
    MediaTransport: 세션이 기대하는 전송 인터페이스
    AiortcTransport: aiortc RTCPeerConnection 기반 구현

Description / Candidate 형식:
    - description: ``{"sdp": str, "type": "offer" | "answer"}``
    - candidate: ``{"candidate": str, "sdpMid": str, "sdpMLineIndex": int}``
"""
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Iterable, Optional

from aiortc import RTCConfiguration, RTCPeerConnection, RTCSessionDescription, MediaStreamTrack
from aiortc.sdp import candidate_from_sdp, candidate_to_sdp

from .config import ice_config

logger = logging.getLogger(__name__)

CandidateCallback = Callable[[dict], Awaitable[None]]


class MediaTransport(ABC):
    """원격 멤버 한 명과의 미디어 전송.

    Attributes:
        on_ice_candidate (Optional[CandidateCallback]): 로컬 ICE candidate가
            발견될 때 호출되는 콜백. PeerSession이 설정함.
    """

    on_ice_candidate: Optional[CandidateCallback] = None

    @abstractmethod
    async def create_offer(self) -> dict:
        """offer를 만들고 로컬 디스크립션으로 설정한 뒤 반환합니다."""

    @abstractmethod
    async def create_answer(self) -> dict:
        """answer를 만들고 로컬 디스크립션으로 설정한 뒤 반환합니다."""

    @abstractmethod
    async def set_remote_description(self, description: dict) -> None:
        """원격 디스크립션을 적용합니다. 잘못된 디스크립션이면 예외를 던집니다."""

    @abstractmethod
    async def add_ice_candidate(self, candidate: dict) -> None:
        """원격 ICE candidate를 적용합니다."""

    @abstractmethod
    async def close(self) -> None:
        """전송 자원을 해제합니다."""


class AiortcTransport(MediaTransport):
    """aiortc ``RTCPeerConnection`` 기반 미디어 전송.

    로컬 미디어 트랙(캡처는 외부 책임)을 받아 연결에 추가하고,
    수신된 원격 트랙은 ``on_track`` 콜백으로 넘깁니다.

    Args:
        member_id: 원격 멤버 ID (로그용)
        tracks: 보낼 로컬 미디어 트랙들
        on_track: 원격 트랙 수신 시 호출될 콜백 ``(member_id, track)``
        configuration: 지정하지 않으면 ice_config의 STUN/TURN 서버 사용
    """

    def __init__(
        self,
        member_id: str,
        tracks: Iterable[MediaStreamTrack] = (),
        on_track: Optional[Callable[[str, MediaStreamTrack], None]] = None,
        configuration: Optional[RTCConfiguration] = None,
    ):
        self.member_id = member_id
        self.on_track = on_track
        self.pc = RTCPeerConnection(
            configuration=configuration or RTCConfiguration(iceServers=ice_config.to_rtc_ice_servers())
        )

        for track in tracks:
            logger.info(f"[WebRTC] {track.kind} 트랙 추가 → {member_id[:8]}")
            self.pc.addTrack(track)

        @self.pc.on("icecandidate")
        async def on_ice_candidate(candidate):
            if candidate and self.on_ice_candidate:
                await self.on_ice_candidate({
                    "candidate": f"candidate:{candidate_to_sdp(candidate)}",
                    "sdpMid": candidate.sdpMid,
                    "sdpMLineIndex": candidate.sdpMLineIndex,
                })

        @self.pc.on("connectionstatechange")
        async def on_connection_state_change():
            logger.info(f"[WebRTC] {member_id[:8]} 연결 상태: {self.pc.connectionState}")
            if self.pc.connectionState == "failed":
                # No automatic restart; the user re-joins.
                logger.warning(f"[WebRTC] {member_id[:8]} 연결 실패")

        @self.pc.on("track")
        def on_remote_track(track: MediaStreamTrack):
            logger.info(f"[WebRTC] {member_id[:8]}로부터 {track.kind} 트랙 수신")
            if self.on_track:
                self.on_track(member_id, track)

    async def create_offer(self) -> dict:
        offer = await self.pc.createOffer()
        await self.pc.setLocalDescription(offer)
        return self._local_description()

    async def create_answer(self) -> dict:
        answer = await self.pc.createAnswer()
        await self.pc.setLocalDescription(answer)
        return self._local_description()

    async def set_remote_description(self, description: dict) -> None:
        await self.pc.setRemoteDescription(
            RTCSessionDescription(sdp=description["sdp"], type=description["type"])
        )

    async def add_ice_candidate(self, candidate: dict) -> None:
        candidate_str = candidate.get("candidate", "")
        if not candidate_str:
            # End-of-candidates marker
            return
        if candidate_str.startswith("candidate:"):
            candidate_str = candidate_str[10:]

        ice_candidate = candidate_from_sdp(candidate_str)
        ice_candidate.sdpMid = candidate.get("sdpMid")
        ice_candidate.sdpMLineIndex = candidate.get("sdpMLineIndex")
        await self.pc.addIceCandidate(ice_candidate)

    async def close(self) -> None:
        await self.pc.close()
        logger.info(f"[WebRTC] {self.member_id[:8]} 피어 연결 종료")

    def _local_description(self) -> dict:
        return {
            "sdp": self.pc.localDescription.sdp,
            "type": self.pc.localDescription.type
        }
