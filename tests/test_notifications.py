import asyncio
from datetime import datetime, timezone

import pytest

from gigsync.errors import NetworkError
from gigsync.schemas import EventType, LiveEvent, Notification, NotificationType
from gigsync.services.live_client import LiveEventClient
from gigsync.services.notifications import NotificationAggregator
from gigsync.storage import MemoryStorage
from fakes import FakeConnector

pytestmark = pytest.mark.anyio


def note(id, read=False, minute=0):
    return Notification(
        id=id,
        type=NotificationType.CHAT,
        sender_id="2",
        read=read,
        created_at=datetime(2024, 5, 1, 12, minute, tzinfo=timezone.utc),
    )


class FakeNotificationsApi:
    def __init__(self, items, fail_mark=None):
        self.items = list(items)
        self.fail_mark = fail_mark
        self.marked = []
        self.fetches = 0

    async def get_all(self):
        self.fetches += 1
        return list(self.items)

    async def mark_as_read(self, notification_id):
        self.marked.append(notification_id)
        # 다른 요청이 끼어들 수 있도록 한 번 양보
        await asyncio.sleep(0)
        if self.fail_mark is not None:
            raise self.fail_mark

    async def mark_all_as_read(self):
        self.marked.append("all")

    async def delete(self, notification_id):
        self.items = [n for n in self.items if n.id != notification_id]


async def test_unread_count_is_derived_from_fetch():
    agg = NotificationAggregator(FakeNotificationsApi([note("n1"), note("n2", read=True), note("n3")]))

    await agg.fetch()

    assert agg.unread_count == 2
    assert agg.is_loading is False


async def test_concurrent_double_mark_as_read_never_goes_negative():
    api = FakeNotificationsApi([note("n1")])
    agg = NotificationAggregator(api)
    await agg.fetch()
    assert agg.unread_count == 1

    await asyncio.gather(agg.mark_as_read("n1"), agg.mark_as_read("n1"))

    assert agg.unread_count == 0
    assert api.marked == ["n1", "n1"]


async def test_failed_mark_as_read_keeps_optimistic_update():
    api = FakeNotificationsApi([note("n1"), note("n2")], fail_mark=NetworkError("Unable to connect to the server"))
    agg = NotificationAggregator(api)
    await agg.fetch()

    with pytest.raises(NetworkError):
        await agg.mark_as_read("n1")

    assert agg.unread_count == 1
    assert agg.error == "Unable to connect to the server"
    assert [n.read for n in agg.notifications] == [True, False]


async def test_mark_all_and_delete():
    api = FakeNotificationsApi([note("n1"), note("n2")])
    agg = NotificationAggregator(api)
    await agg.fetch()

    await agg.mark_all_as_read()
    assert agg.unread_count == 0

    await agg.delete("n1")
    assert [n.id for n in agg.notifications] == ["n2"]


async def test_live_notification_is_upserted(sleeps):
    live = LiveEventClient(MemoryStorage(), connector=FakeConnector(), sleep=sleeps)
    agg = NotificationAggregator(FakeNotificationsApi([note("n1", minute=1)]), live)
    await agg.fetch()
    agg.attach()

    pushed = note("n2", minute=5).to_wire()
    await live.dispatch(LiveEvent(type=EventType.NOTIFICATION, payload={"notification": pushed}))
    await live.dispatch(LiveEvent(type=EventType.NOTIFICATION, payload={"notification": pushed}))

    assert [n.id for n in agg.notifications] == ["n2", "n1"]
    assert agg.unread_count == 2

    agg.detach()
    assert live.listener_count(EventType.NOTIFICATION) == 0


async def test_polling_refreshes_until_stopped():
    api = FakeNotificationsApi([note("n1")])
    agg = NotificationAggregator(api, poll_interval=0.01)

    agg.start_polling()
    agg.start_polling()
    await asyncio.sleep(0.05)
    await agg.stop_polling()
    fetches = api.fetches
    await asyncio.sleep(0.03)

    assert fetches >= 2
    assert api.fetches == fetches
    assert agg.unread_count == 1
