from __future__ import annotations
import asyncio
import logging
from typing import List, Optional

from pydantic import ValidationError as SchemaValidationError

from gigsync.api.notifications import NotificationsApi
from gigsync.config import NOTIFICATION_POLL_INTERVAL_SEC
from gigsync.errors import ApiError
from gigsync.schemas import EventType, LiveEvent, Notification
from gigsync.services.live_client import LiveEventClient

logger = logging.getLogger(__name__)


class NotificationAggregator:
    """
    알림 목록과 안 읽은 개수.
    unread_count는 저장하지 않고 항상 read=False 인 항목 수로 계산합니다.
    """

    def __init__(
        self,
        api: NotificationsApi,
        live: Optional[LiveEventClient] = None,
        *,
        poll_interval: float = NOTIFICATION_POLL_INTERVAL_SEC,
    ) -> None:
        self._api = api
        self._live = live
        self.poll_interval = poll_interval
        self._notifications: List[Notification] = []
        self._poll_task: Optional[asyncio.Task] = None
        self.is_loading = False
        self.error: Optional[str] = None

    @property
    def notifications(self) -> List[Notification]:
        return list(self._notifications)

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self._notifications if not n.read)

    async def fetch(self) -> List[Notification]:
        self.is_loading = True
        try:
            self._notifications = await self._api.get_all()
            self.error = None
        except ApiError as exc:
            logger.error("Error fetching notifications: %s", exc)
            self.error = exc.message
            raise
        finally:
            self.is_loading = False
        return self.notifications

    def _set_read(self, notification_id: str) -> None:
        self._notifications = [
            n.model_copy(update={"read": True}) if n.id == notification_id else n
            for n in self._notifications
        ]

    async def mark_as_read(self, notification_id: str) -> None:
        notification_id = str(notification_id)
        # 낙관적 업데이트. 실패해도 되돌리지 않고 오류만 올림
        self._set_read(notification_id)
        try:
            await self._api.mark_as_read(notification_id)
        except ApiError as exc:
            logger.error("Error marking notification %s as read: %s", notification_id, exc)
            self.error = exc.message
            raise

    async def mark_all_as_read(self) -> None:
        await self._api.mark_all_as_read()
        self._notifications = [n.model_copy(update={"read": True}) for n in self._notifications]

    async def delete(self, notification_id: str) -> None:
        notification_id = str(notification_id)
        await self._api.delete(notification_id)
        self._notifications = [n for n in self._notifications if n.id != notification_id]

    def clear(self) -> None:
        self._notifications = []
        self.error = None

    # --- 실시간 ---
    def attach(self) -> None:
        if self._live is not None:
            self._live.on(EventType.NOTIFICATION, self._on_live_notification)

    def detach(self) -> None:
        if self._live is not None:
            self._live.off(EventType.NOTIFICATION, self._on_live_notification)

    def _on_live_notification(self, event: LiveEvent) -> None:
        raw = event.payload.get("notification", event.payload)
        try:
            notification = Notification.model_validate(raw)
        except SchemaValidationError as exc:
            logger.warning("Ignoring malformed notification event: %s", exc)
            return
        others = [n for n in self._notifications if n.id != notification.id]
        # 최신 알림이 앞
        self._notifications = [notification] + others

    # --- 폴링 ---
    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def start_polling(self) -> None:
        if self._poll_task is not None and not self._poll_task.done():
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def stop_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        # 폴링 중 받은 401로 세션이 정리되는 경우, 자기 자신은 기다리지 않음
        if task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("Notification polling stopped")

    async def _poll_loop(self) -> None:
        # 시작 직후의 조회는 호출한 쪽이 이미 함
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.fetch()
            except ApiError as exc:
                logger.warning("Notification poll failed: %s", exc)
