"""시그널링 메시지 정의.

WebSocket으로 오가는 모든 프레임은 ``{"type": ..., "data": {...}}`` 형태입니다.
클라이언트가 보내는 프레임의 ``data``는 pydantic 모델로 검증합니다.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


# ==========================================
# 메시지 타입
# ==========================================

# client -> server
JOIN_ROOM = "join-room"
LEAVE_ROOM = "leave-room"

# server -> client
EXISTING_MEMBERS = "existing-members"
MEMBER_JOINED = "member-joined"
MEMBER_LEFT = "member-left"
ERROR = "error"

# relayed to one member
OFFER = "offer"
ANSWER = "answer"
ICE_CANDIDATE = "ice-candidate"
DIRECT_TYPES = (OFFER, ANSWER, ICE_CANDIDATE)

# relayed to the whole room
TOGGLE_AUDIO = "toggle-audio"
TOGGLE_VIDEO = "toggle-video"
SCREEN_SHARE_STARTED = "screen-share-started"
SCREEN_SHARE_STOPPED = "screen-share-stopped"
BROADCAST_TYPES = (TOGGLE_AUDIO, TOGGLE_VIDEO, SCREEN_SHARE_STARTED, SCREEN_SHARE_STOPPED)


# ==========================================
# 수신 데이터 모델
# ==========================================

class JoinRoomData(BaseModel):
    """룸 입장 요청."""
    room_id: str = Field(..., min_length=1, description="입장할 룸 ID")
    member_id: str = Field(..., min_length=1, description="클라이언트가 정한 멤버 ID")
    display_name: str = Field(default="Anonymous", description="표시 이름")


class SessionDescriptionData(BaseModel):
    """offer/answer로 교환되는 세션 디스크립션."""
    sdp: str
    type: str


class DescriptionData(BaseModel):
    """offer/answer 중계 요청."""
    target_member_id: str = Field(..., min_length=1)
    description: SessionDescriptionData


class CandidateData(BaseModel):
    """ICE candidate 중계 요청.

    candidate 본문은 브라우저의 ``RTCIceCandidate.toJSON()`` 결과를 그대로 전달합니다.
    """
    target_member_id: str = Field(..., min_length=1)
    candidate: Dict[str, Any]


class ToggleAudioData(BaseModel):
    """마이크 음소거 상태."""
    muted: bool


class ToggleVideoData(BaseModel):
    """카메라 꺼짐 상태."""
    video_off: bool


DIRECT_MODELS = {
    OFFER: DescriptionData,
    ANSWER: DescriptionData,
    ICE_CANDIDATE: CandidateData,
}

BROADCAST_MODELS = {
    TOGGLE_AUDIO: ToggleAudioData,
    TOGGLE_VIDEO: ToggleVideoData,
}


def make_message(message_type: str, data: Optional[dict] = None) -> dict:
    """송신용 프레임을 만듭니다."""
    return {"type": message_type, "data": data or {}}
