from __future__ import annotations
import logging
from typing import Dict, Iterable, List, Optional

from pydantic import ValidationError as SchemaValidationError

from gigsync.api.auth import AuthApi
from gigsync.api.messages import MessagesApi
from gigsync.errors import API_ERROR_MESSAGES, ApiError, NotAuthenticatedError
from gigsync.schemas import ChatMessage, EventType, LiveEvent
from gigsync.services.live_client import LiveEventClient
from gigsync.services.session_store import SessionStore

logger = logging.getLogger(__name__)


def is_in_conversation(message: ChatMessage, conversation_id: str, current_user_id: str) -> bool:
    pair = (message.sender_id, message.recipient_id)
    return pair == (conversation_id, current_user_id) or pair == (current_user_id, conversation_id)


def merge_messages(current: Iterable[ChatMessage], incoming: Iterable[ChatMessage]) -> List[ChatMessage]:
    """id 기준으로 중복 제거 후 createdAt 오름차순 정렬. 이미 있는 id는 먼저 들어온 사본을 유지."""
    by_id: Dict[str, ChatMessage] = {}
    for message in list(current) + list(incoming):
        by_id.setdefault(message.id, message)
    # sorted()는 안정 정렬: 같은 시각이면 도착 순서 유지
    return sorted(by_id.values(), key=lambda m: m.created_at)


class MessageSynchronizer:
    """
    한 대화(상대방 id)에 대한 뷰.
    REST로 받은 기록과 실시간으로 밀려오는 메시지를 합치되 같은 id는 한 번만 보입니다.
    공유 실시간 연결은 절대 닫지 않습니다 (로그아웃만 닫을 수 있음).
    """

    def __init__(
        self,
        conversation_id: str,
        messages_api: MessagesApi,
        live: LiveEventClient,
        session: SessionStore,
        *,
        auth_api: Optional[AuthApi] = None,
    ) -> None:
        self.conversation_id = str(conversation_id)
        self._api = messages_api
        self._live = live
        self._session = session
        self._auth_api = auth_api
        self._messages: List[ChatMessage] = []
        self._current_user_id: Optional[str] = None
        self._mounted = False
        self.loading = False
        self.error: Optional[str] = None

    @property
    def messages(self) -> List[ChatMessage]:
        return list(self._messages)

    @property
    def mounted(self) -> bool:
        return self._mounted

    async def _resolve_current_user_id(self) -> str:
        if self._session.user is not None:
            return self._session.user.id
        if self._auth_api is None:
            raise NotAuthenticatedError(API_ERROR_MESSAGES["NOT_AUTHENTICATED"], 401)
        user = await self._auth_api.me()
        return user.id

    async def mount(self) -> None:
        self._mounted = True
        self.loading = True
        self.error = None
        try:
            self._current_user_id = await self._resolve_current_user_id()

            # 1. 기록을 받는 동안 도착한 메시지도 놓치지 않도록 먼저 구독
            self._live.connect()
            self._live.on(EventType.CHAT_MESSAGE, self._on_live_message)
            self._live.on(EventType.MESSAGE_SENT, self._on_live_message)

            # 2. 전체 기록
            history = await self._api.get_messages(self.conversation_id)
            if not self._mounted:
                # 응답 전에 화면이 사라진 경우: 결과 폐기
                logger.debug("Discarding history for unmounted conversation %s", self.conversation_id)
                return
            self._messages = merge_messages(self._messages, history)
        except ApiError as exc:
            logger.error("Error fetching messages for %s: %s", self.conversation_id, exc)
            self.error = exc.message
            raise
        finally:
            self.loading = False

    def unmount(self) -> None:
        self._mounted = False
        self._live.off(EventType.CHAT_MESSAGE, self._on_live_message)
        self._live.off(EventType.MESSAGE_SENT, self._on_live_message)

    def merge(self, incoming: Iterable[ChatMessage]) -> None:
        self._messages = merge_messages(self._messages, incoming)

    def _on_live_message(self, event: LiveEvent) -> None:
        if not self._mounted or self._current_user_id is None:
            return
        # MESSAGE_SENT는 { message, recipientOnline } 형태, CHAT_MESSAGE는 메시지 자체이거나 { message }
        raw = event.payload.get("message", event.payload)
        if not isinstance(raw, dict):
            return
        try:
            message = ChatMessage.model_validate(raw)
        except SchemaValidationError as exc:
            logger.warning("Ignoring malformed %s event: %s", event.type, exc)
            return
        if is_in_conversation(message, self.conversation_id, self._current_user_id):
            self.merge([message])

    async def send_message(self, content: str) -> ChatMessage:
        if self._session.user is None and self._current_user_id is None:
            raise NotAuthenticatedError(API_ERROR_MESSAGES["NOT_AUTHENTICATED"], 401)
        try:
            # REST 전송이 영속성을 보장; 실시간 에코가 먼저 왔다면 merge가 중복을 막음
            message = await self._api.send_message(self.conversation_id, content)
        except ApiError as exc:
            logger.error("Error sending message to %s: %s", self.conversation_id, exc)
            self.error = exc.message
            raise
        if self._mounted:
            self.merge([message])
        return message

    async def delete_message(self, message_id: str) -> None:
        await self._api.delete_message(message_id)
        if self._mounted:
            self._messages = [m for m in self._messages if m.id != str(message_id)]

    async def mark_read(self) -> None:
        await self._api.mark_as_read(self.conversation_id)
        if self._mounted and self._current_user_id is not None:
            self._messages = [
                m.model_copy(update={"read": True}) if m.recipient_id == self._current_user_id else m
                for m in self._messages
            ]
