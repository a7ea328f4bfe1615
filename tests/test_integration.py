from datetime import datetime, timezone

import httpx
import pytest

from gigsync.devserver.main import create_app
from gigsync.errors import SessionExpiredError
from gigsync.main import GigSync
from gigsync.navigation import Navigator
from gigsync.schemas import (
    ConnectionStatus, EventType, LiveEvent, Notification, NotificationType, SessionState,
)
from gigsync.storage import TOKEN_KEY, MemoryStorage
from fakes import FakeConnector

pytestmark = pytest.mark.anyio


def make_app(storage, connector, sleeps, path="/login"):
    return GigSync(
        storage=storage,
        navigator=Navigator(path),
        api_url="http://testserver",
        ws_url="ws://testserver",
        transport=httpx.ASGITransport(app=create_app()),
        connector=connector,
        sleep=sleeps,
    )


async def test_login_chat_and_logout_end_to_end(sleeps):
    storage = MemoryStorage()
    connector = FakeConnector()
    app = make_app(storage, connector, sleeps)

    state = await app.start()
    assert state is SessionState.ANONYMOUS

    user = await app.login("freelancer@gigsync.dev", "password123")
    assert user.id == "1"
    assert app.navigator.current_path == "/freelancer/dashboard"
    assert await app.live.wait_connected(1)
    assert connector.urls == [f"ws://testserver/ws?token={storage.get(TOKEN_KEY)}"]

    chat = app.conversation("2")
    await chat.mount()
    sent = await chat.send_message("Hello from the freelancer")
    # 서버 에코가 뒤늦게 도착해도 한 번만 보임
    await app.live.dispatch(LiveEvent(type=EventType.MESSAGE_SENT, payload={"message": sent.to_wire()}))
    assert [m.content for m in chat.messages] == ["Hello from the freelancer"]
    chat.unmount()

    await app.session.logout()
    assert storage.get(TOKEN_KEY) is None
    assert app.session.state is SessionState.ANONYMOUS
    assert app.navigator.current_path == "/login"
    assert connector.connections[0].closed
    await app.stop()


async def test_restart_restores_session_and_notifications(sleeps):
    storage = MemoryStorage()
    first = make_app(storage, FakeConnector(), sleeps)
    await first.login("freelancer@gigsync.dev", "password123")
    await first.stop()

    # 같은 저장소로 다시 시작하면 토큰/사용자 스냅샷이 복원됨 (서버는 새 인스턴스라 토큰이 여전히 유효)
    second = make_app(storage, FakeConnector(), sleeps, path="/login")
    async with second.lifespan() as running:
        assert running.session.state is SessionState.AUTHENTICATED
        assert running.session.user.id == "1"
        assert running.navigator.current_path == "/freelancer/dashboard"

        await running.notifications.fetch()
        assert running.notifications.unread_count == 0


async def test_revoked_token_on_startup_goes_anonymous(sleeps):
    storage = MemoryStorage({TOKEN_KEY: "not-a-jwt", "user": '{"id": "1", "role": "FREELANCER"}'})
    app = make_app(storage, FakeConnector(), sleeps, path="/freelancer/proposals")

    state = await app.start()

    assert state is SessionState.ANONYMOUS
    assert storage.get(TOKEN_KEY) is None
    assert app.navigator.current_path == "/login"
    assert app.navigator.pop_redirect() == "/freelancer/proposals"
    await app.stop()


async def test_login_wires_notifications_until_logout(sleeps):
    app = make_app(MemoryStorage(), FakeConnector(), sleeps)
    assert await app.start() is SessionState.ANONYMOUS
    assert app.live.listener_count(EventType.NOTIFICATION) == 0

    await app.login("freelancer@gigsync.dev", "password123")
    assert app.live.listener_count(EventType.NOTIFICATION) == 1
    assert app.notifications.is_polling

    pushed = Notification(
        id="n-live", type=NotificationType.PROPOSAL, sender_id="2", created_at=datetime.now(timezone.utc)
    )
    await app.live.dispatch(LiveEvent(type=EventType.NOTIFICATION, payload={"notification": pushed.to_wire()}))
    assert app.notifications.unread_count == 1

    await app.session.logout()
    assert app.live.listener_count(EventType.NOTIFICATION) == 0
    assert not app.notifications.is_polling
    assert app.notifications.notifications == []
    await app.stop()


async def test_expired_session_then_new_login_opens_new_socket(sleeps):
    storage = MemoryStorage()
    connector = FakeConnector()
    app = make_app(storage, connector, sleeps)
    await app.start()
    await app.login("freelancer@gigsync.dev", "password123")
    assert await app.live.wait_connected(1)

    # 서버가 토큰을 더 이상 받지 않음
    storage.set(TOKEN_KEY, "revoked")
    with pytest.raises(SessionExpiredError):
        await app.notifications.fetch()

    assert app.session.state is SessionState.ANONYMOUS
    assert app.live.status is ConnectionStatus.DISCONNECTED
    assert connector.connections[0].closed
    assert app.live.listener_count(EventType.NOTIFICATION) == 0
    assert not app.notifications.is_polling

    user = await app.login("client@gigsync.dev", "password123")
    assert user.id == "2"
    assert await app.live.wait_connected(1)
    assert len(connector.urls) == 2
    assert connector.urls[1] == f"ws://testserver/ws?token={storage.get(TOKEN_KEY)}"
    assert app.live.listener_count(EventType.NOTIFICATION) == 1
    await app.stop()


async def test_conversations_and_unread_count_over_rest(sleeps):
    app = make_app(MemoryStorage(), FakeConnector(), sleeps)
    await app.start()
    await app.login("freelancer@gigsync.dev", "password123")
    await app.messages_api.send_message("2", "About the landing page job")
    assert await app.messages_api.get_conversations() != []
    await app.session.logout()

    await app.login("client@gigsync.dev", "password123")
    conversations = await app.messages_api.get_conversations()
    assert [c.recipient_id for c in conversations] == ["1"]
    assert conversations[0].last_message == "About the landing page job"
    assert conversations[0].unread_count == 1

    assert await app.notifications_api.get_unread_count() == 1
    # 로그인 직후 조회로 이미 채워져 있음
    assert app.notifications.unread_count == 1

    await app.notifications.mark_all_as_read()
    assert await app.notifications_api.get_unread_count() == 0
    await app.stop()
