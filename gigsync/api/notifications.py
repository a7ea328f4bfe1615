from __future__ import annotations
from typing import List

from gigsync.schemas import Notification
from gigsync.services.api_client import AuthenticatedClient


class NotificationsApi:
    def __init__(self, client: AuthenticatedClient) -> None:
        self._client = client

    async def get_all(self) -> List[Notification]:
        data = await self._client.get("/notifications")
        return [Notification.model_validate(item) for item in data or []]

    async def get_unread_count(self) -> int:
        data = await self._client.get("/notifications/unread/count")
        return int((data or {}).get("count", 0))

    async def mark_as_read(self, notification_id: str) -> None:
        await self._client.put(f"/notifications/{notification_id}/read")

    async def mark_all_as_read(self) -> None:
        await self._client.put("/notifications/read/all")

    async def delete(self, notification_id: str) -> None:
        await self._client.delete(f"/notifications/{notification_id}")
