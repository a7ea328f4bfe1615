# /gigsync/main.py

from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx

from gigsync.api.auth import AuthApi
from gigsync.api.messages import MessagesApi
from gigsync.api.notifications import NotificationsApi
from gigsync.config import API_URL, LOG_LEVEL, WS_URL
from gigsync.errors import ApiError
from gigsync.navigation import Navigator
from gigsync.schemas import SessionState, User
from gigsync.services.api_client import AuthenticatedClient, Sleep
from gigsync.services.live_client import Connector, LiveEventClient
from gigsync.services.message_sync import MessageSynchronizer
from gigsync.services.notifications import NotificationAggregator
from gigsync.services.session_store import SessionStore
from gigsync.storage import ClientStorage, SqlStorage

logger = logging.getLogger(__name__)


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


class GigSync:
    """
    클라이언트 프로세스 하나에 하나만 만드는 조립 루트.
    저장소, 요청 클라이언트, 실시간 연결, 세션, 알림을 각각 정확히 하나씩 소유합니다.
    """

    def __init__(
        self,
        *,
        storage: Optional[ClientStorage] = None,
        navigator: Optional[Navigator] = None,
        api_url: str = API_URL,
        ws_url: str = WS_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        connector: Optional[Connector] = None,
        sleep: Optional[Sleep] = None,
    ) -> None:
        self.storage = storage if storage is not None else SqlStorage()
        self.navigator = navigator or Navigator()
        self.client = AuthenticatedClient(
            self.storage, self.navigator, base_url=api_url, transport=transport, sleep=sleep
        )
        self.auth_api = AuthApi(self.client)
        self.messages_api = MessagesApi(self.client)
        self.notifications_api = NotificationsApi(self.client)
        self.live = LiveEventClient(self.storage, ws_url=ws_url, connector=connector, sleep=sleep)
        self.session = SessionStore(self.storage, self.client, self.navigator, auth_api=self.auth_api)
        self.notifications = NotificationAggregator(self.notifications_api, self.live)
        # 로그아웃이나 401로 세션이 끝나면 이전 사용자의 연결/알림을 모두 정리
        self.session.add_logout_hook(self._end_session)

    def conversation(self, conversation_id: str) -> MessageSynchronizer:
        return MessageSynchronizer(
            conversation_id, self.messages_api, self.live, self.session, auth_api=self.auth_api
        )

    async def login(self, email: str, password: str) -> User:
        user = await self.session.login_with_credentials(email, password)
        # 토큰이 바뀌었으니 항상 새로 핸드셰이크
        await self._end_session()
        await self._begin_session()
        return user

    async def start(self) -> SessionState:
        # 1. 캐시된 세션 복원 + 서버 확인
        await self.session.initialize()
        # 2. 로그인 상태라면 실시간 연결과 알림
        if self.session.is_authenticated:
            await self._begin_session()
        logger.info("GigSync started (session %s)", self.session.state.value)
        return self.session.state

    async def _begin_session(self) -> None:
        self.live.connect()
        self.notifications.attach()
        try:
            await self.notifications.fetch()
        except ApiError as exc:
            # 목록은 폴링이 다시 채움
            logger.warning("Initial notification fetch failed: %s", exc)
        if self.session.is_authenticated:
            self.notifications.start_polling()

    async def _end_session(self) -> None:
        self.notifications.detach()
        await self.notifications.stop_polling()
        self.notifications.clear()
        await self.live.disconnect()

    async def stop(self) -> None:
        await self._end_session()
        await self.client.aclose()
        logger.info("GigSync stopped")

    @asynccontextmanager
    async def lifespan(self) -> AsyncIterator["GigSync"]:
        await self.start()
        try:
            yield self
        finally:
            await self.stop()
