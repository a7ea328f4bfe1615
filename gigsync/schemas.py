from __future__ import annotations
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime, timezone
from enum import Enum

# 서버는 camelCase(senderId, createdAt ...)로 주고받으므로
# 파이썬 쪽 snake_case 필드에 alias를 자동으로 붙여줍니다.
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _as_utc(value: datetime) -> datetime:
    # 타임존 없는 시각은 UTC로 간주 (naive/aware 섞이면 정렬이 깨짐)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# --- 세션 / 인증 ---
class Role(str, Enum):
    FREELANCER = "FREELANCER"
    CLIENT = "CLIENT"
    ADMIN = "ADMIN"

class SessionState(str, Enum):
    UNINITIALIZED = "UNINITIALIZED"
    LOADING = "LOADING"
    AUTHENTICATED = "AUTHENTICATED"
    ANONYMOUS = "ANONYMOUS"

class User(CamelModel):
    """
    /auth/me 응답이자 로컬 저장소의 'user' 슬롯에 직렬화되는 세션 신원 정보.
    프로필 필드는 서버가 추가로 보내는 것도 그대로 보존합니다.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    role: Role
    image: Optional[str] = None
    bio: Optional[str] = None
    skills: Optional[List[str]] = None
    hourly_rate: Optional[float] = None
    title: Optional[str] = None
    location: Optional[str] = None
    website: Optional[str] = None
    linkedin: Optional[str] = None
    github: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v):
        return str(v) if v is not None else v

class LoginRequest(BaseModel):
    email: str
    password: str = Field(..., min_length=1)

class LoginResponse(BaseModel):
    """
    /auth/login, /auth/admin/login 응답 스키마.
    """
    token: str
    user: User


# --- 메시지 ---
class Participant(CamelModel):
    id: str
    name: Optional[str] = None
    image: Optional[str] = None

class ChatMessage(CamelModel):
    id: str
    sender_id: str
    recipient_id: str
    content: str
    created_at: datetime
    read: bool = False
    sender: Optional[Participant] = None
    recipient: Optional[Participant] = None

    @field_validator("id", "sender_id", "recipient_id", mode="before")
    @classmethod
    def _ids_as_str(cls, v):
        return str(v) if v is not None else v

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1)

# 대화 상대방 정보 (목록용)
class Conversation(CamelModel):
    id: str
    recipient_id: str
    recipient_name: Optional[str] = None
    recipient_image: Optional[str] = None
    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None
    unread_count: int = 0


# --- 알림 ---
class NotificationType(str, Enum):
    CHAT = "CHAT"
    PROPOSAL = "PROPOSAL"
    JOB = "JOB"

class Notification(CamelModel):
    id: str
    type: NotificationType
    sender_id: Optional[str] = None
    read: bool = False
    created_at: datetime
    title: Optional[str] = None
    message: Optional[str] = None

    @field_validator("id", "sender_id", mode="before")
    @classmethod
    def _ids_as_str(cls, v):
        return str(v) if v is not None else v

    @field_validator("created_at")
    @classmethod
    def _created_at_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


# --- 실시간 이벤트 ---
class EventType:
    """실시간 연결 위에서 오가는 봉투(envelope)의 type 값."""
    CHAT_MESSAGE = "CHAT_MESSAGE"
    MESSAGE_SENT = "MESSAGE_SENT"
    MESSAGE_READ = "MESSAGE_READ"
    TYPING_STATUS = "TYPING_STATUS"
    UNREAD_COUNT = "UNREAD_COUNT"
    PROPOSAL_UPDATE = "PROPOSAL_UPDATE"
    NOTIFICATION = "NOTIFICATION"
    ERROR = "ERROR"
    CONNECTION_STATUS = "CONNECTION_STATUS"
    PING = "PING"
    PONG = "PONG"

class ConnectionStatus(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"

class LiveEvent(BaseModel):
    """
    { type, ...payload } 형태의 봉투. 리스너에게 전달되는 동안만 존재합니다.
    """
    type: str
    payload: Dict[str, Any] = {}

    @classmethod
    def from_wire(cls, data: Dict[str, Any]) -> "LiveEvent":
        payload = {k: v for k, v in data.items() if k != "type"}
        return cls(type=data["type"], payload=payload)

    def to_wire(self) -> Dict[str, Any]:
        return {"type": self.type, **self.payload}
