"""In-memory stand-ins for the live connection and backoff waits."""
import asyncio
import json
from typing import Any, List

from websockets.exceptions import ConnectionClosed

_CLOSED = object()


class FakeConnection:
    def __init__(self):
        self.sent: List[dict] = []
        self.close_code = None
        self.close_reason = None
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    def feed(self, event: dict):
        self._incoming.put_nowait(json.dumps(event))

    def feed_raw(self, raw: Any):
        self._incoming.put_nowait(raw)

    def server_close(self, code: int = 1000, reason: str = ""):
        self.close_code = code
        self.close_reason = reason
        self.closed = True
        self._incoming.put_nowait(_CLOSED)

    async def send(self, data: str):
        if self.closed:
            raise ConnectionClosed(None, None)
        self.sent.append(json.loads(data))

    async def close(self):
        if not self.closed:
            self.server_close(1000, "")

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._incoming.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item


class FakeConnector:
    """Returns queued outcomes in order (a connection or an exception), then fresh connections."""

    def __init__(self, *outcomes):
        self.urls: List[str] = []
        self.connections: List[FakeConnection] = []
        self._outcomes = list(outcomes)

    async def __call__(self, url: str):
        self.urls.append(url)
        outcome = self._outcomes.pop(0) if self._outcomes else FakeConnection()
        if isinstance(outcome, BaseException):
            raise outcome
        self.connections.append(outcome)
        return outcome


class RecordingSleep:
    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float):
        self.delays.append(delay)


async def settle(rounds: int = 20):
    """Let background tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)
