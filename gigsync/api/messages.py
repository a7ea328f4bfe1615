from __future__ import annotations
from typing import List

from gigsync.schemas import ChatMessage, Conversation, MessageCreate
from gigsync.services.api_client import AuthenticatedClient


class MessagesApi:
    def __init__(self, client: AuthenticatedClient) -> None:
        self._client = client

    async def get_conversations(self) -> List[Conversation]:
        data = await self._client.get("/messages/conversations")
        return [Conversation.model_validate(item) for item in data or []]

    async def get_messages(self, conversation_id: str) -> List[ChatMessage]:
        """상대방(conversation_id)과의 전체 대화 기록."""
        data = await self._client.get(f"/messages/{conversation_id}")
        return [ChatMessage.model_validate(item) for item in data or []]

    async def send_message(self, conversation_id: str, content: str) -> ChatMessage:
        req = MessageCreate(content=content)
        data = await self._client.post(f"/messages/{conversation_id}", json=req.model_dump())
        return ChatMessage.model_validate(data)

    async def mark_as_read(self, conversation_id: str) -> None:
        await self._client.put(f"/messages/read/{conversation_id}")

    async def delete_message(self, message_id: str) -> None:
        await self._client.delete(f"/messages/{message_id}")
