"""Live event client: one shared duplex connection with per-type event dispatch."""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, InvalidStatus, WebSocketException

from gigsync.config import (
    WS_URL, WS_CONNECT_TIMEOUT_SEC, WS_PING_INTERVAL_SEC, WS_PONG_TIMEOUT_SEC,
    WS_MAX_RECONNECT_ATTEMPTS, WS_RECONNECT_BASE_DELAY_SEC, WS_RECONNECT_MAX_DELAY_SEC,
)
from gigsync.errors import API_ERROR_MESSAGES, LiveConnectionError
from gigsync.schemas import ConnectionStatus, EventType, LiveEvent
from gigsync.storage import ClientStorage, TOKEN_KEY

logger = logging.getLogger(__name__)

Handler = Callable[[LiveEvent], Any]
Connector = Callable[[str], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[None]]

AUTH_FAILURE_CLOSE_CODE = 1008
CLOSE_CODE_NAMES = {
    1000: "Normal Closure",
    1001: "Going Away",
    1006: "Abnormal Closure",
    1008: "Policy Violation",
    1011: "Server Error",
}
_AUTH_FAILURE_MARKERS = ("401", "Invalid token", "No authentication")


def build_ws_url(base: str, token: str) -> str:
    base = base.rstrip("/")
    if not base.endswith("/ws"):
        base = f"{base}/ws"
    return f"{base}?token={quote(token, safe='')}"


def is_auth_failure(code: Optional[int], reason: Optional[str]) -> bool:
    if code == AUTH_FAILURE_CLOSE_CODE:
        return True
    return any(marker in (reason or "") for marker in _AUTH_FAILURE_MARKERS)


class LiveEventClient:
    """
    프로세스 전체에서 하나만 두는 실시간 연결.

    - connect()는 멱등: 이미 연결됐거나 연결 중이면 아무 일도 하지 않음
    - 예기치 않게 끊기면 지수 백오프로 재연결 (최대 max_reconnect_attempts 회)
    - 인증 실패(1008, 401)로 닫힌 경우는 재연결하지 않음
    - 연결이 없을 때의 전송은 큐에 쌓지 않고 LiveConnectionError로 실패
    """

    def __init__(
        self,
        storage: ClientStorage,
        *,
        ws_url: str = WS_URL,
        connector: Optional[Connector] = None,
        sleep: Optional[Sleep] = None,
        clock: Optional[Callable[[], float]] = None,
        connect_timeout: float = WS_CONNECT_TIMEOUT_SEC,
        ping_interval: float = WS_PING_INTERVAL_SEC,
        pong_timeout: float = WS_PONG_TIMEOUT_SEC,
        max_reconnect_attempts: int = WS_MAX_RECONNECT_ATTEMPTS,
        reconnect_base_delay: float = WS_RECONNECT_BASE_DELAY_SEC,
        reconnect_max_delay: float = WS_RECONNECT_MAX_DELAY_SEC,
    ) -> None:
        self._storage = storage
        self._ws_url = ws_url
        self._connector = connector or ws_connect
        self._sleep = sleep or asyncio.sleep
        self._clock = clock or time.monotonic
        self.connect_timeout = connect_timeout
        self.ping_interval = ping_interval
        self.pong_timeout = pong_timeout
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_base_delay = reconnect_base_delay
        self.reconnect_max_delay = reconnect_max_delay

        self._handlers: Dict[str, List[Handler]] = {}
        self._ws: Any = None
        self._status = ConnectionStatus.DISCONNECTED
        self._runner: Optional[asyncio.Task] = None
        self._ping_task: Optional[asyncio.Task] = None
        self._connected = asyncio.Event()
        self._stopped = False
        self._reconnect_attempts = 0
        self._last_pong = 0.0

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status is ConnectionStatus.CONNECTED and self._ws is not None

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    # --- 리스너 등록 ---
    def on(self, event_type: str, handler: Handler) -> None:
        handlers = self._handlers.setdefault(event_type, [])
        if handler not in handlers:
            handlers.append(handler)

    def off(self, event_type: str, handler: Handler) -> None:
        handlers = self._handlers.get(event_type)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def listener_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, ()))

    # --- 연결 수명 ---
    def connect(self) -> None:
        """Start the connection in the background; no-op while one is open or in progress."""
        if self._runner is not None and not self._runner.done():
            logger.debug("WebSocket already connected or connecting")
            return
        self._stopped = False
        self._reconnect_attempts = 0
        self._runner = asyncio.get_running_loop().create_task(self._run())

    async def wait_connected(self, timeout: Optional[float] = None) -> bool:
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def disconnect(self) -> None:
        """Close the shared connection. Safe to call when already closed."""
        self._stopped = True
        runner, self._runner = self._runner, None
        ws = self._ws
        if ws is not None:
            await ws.close()
        if runner is not None and runner is not asyncio.current_task() and not runner.done():
            runner.cancel()
            try:
                await runner
            except asyncio.CancelledError:
                logger.debug("WebSocket runner cancelled")
        self._stop_ping()
        self._ws = None
        self._connected.clear()
        await self._set_status(ConnectionStatus.DISCONNECTED)

    async def _run(self) -> None:
        while True:
            token = self._storage.get(TOKEN_KEY)
            if not token:
                logger.error("No authentication token available")
                await self._notify_error("No authentication token available")
                return

            await self._set_status(ConnectionStatus.CONNECTING)
            logger.info("Connecting to WebSocket %s (token length %d)", self._ws_url, len(token))
            try:
                ws = await asyncio.wait_for(self._connector(build_ws_url(self._ws_url, token)), self.connect_timeout)
            except asyncio.TimeoutError:
                logger.error("WebSocket connection timeout")
                await self._notify_error("Connection timeout")
            except InvalidStatus as exc:
                status_code = exc.response.status_code
                if status_code in (401, 403):
                    logger.warning("WebSocket handshake rejected with %d. Not attempting reconnect.", status_code)
                    await self._set_status(ConnectionStatus.DISCONNECTED)
                    await self._notify_error(API_ERROR_MESSAGES["AUTHENTICATION_FAILED"])
                    return
                logger.error("WebSocket handshake rejected with %d", status_code)
                await self._notify_error("WebSocket connection error")
            except (OSError, WebSocketException) as exc:
                logger.error("Failed to create WebSocket connection: %s", exc)
                await self._notify_error("WebSocket connection error")
            else:
                code, reason = await self._serve(ws)
                logger.info(
                    "WebSocket disconnected: Code %s (%s), Reason: %s",
                    code, CLOSE_CODE_NAMES.get(code, f"Unknown ({code})"), reason or "No reason provided",
                )
                if self._stopped:
                    return
                if is_auth_failure(code, reason):
                    logger.warning("WebSocket closed due to authentication failure. Not attempting reconnect.")
                    await self._set_status(ConnectionStatus.DISCONNECTED)
                    await self._notify_error(API_ERROR_MESSAGES["AUTHENTICATION_FAILED"])
                    return

            await self._set_status(ConnectionStatus.DISCONNECTED)
            if self._stopped:
                return
            if self._reconnect_attempts >= self.max_reconnect_attempts:
                logger.error("Max reconnection attempts reached")
                await self._notify_error("Max reconnection attempts reached")
                return

            delay = min(self.reconnect_base_delay * 2 ** self._reconnect_attempts, self.reconnect_max_delay)
            await self._sleep(delay)
            if self._stopped:
                return
            self._reconnect_attempts += 1
            logger.info("Attempting to reconnect (%d/%d)...", self._reconnect_attempts, self.max_reconnect_attempts)

    async def _serve(self, ws: Any) -> Tuple[Optional[int], Optional[str]]:
        self._ws = ws
        self._reconnect_attempts = 0
        self._last_pong = self._clock()
        await self._set_status(ConnectionStatus.CONNECTED)
        self._connected.set()
        self._ping_task = asyncio.create_task(self._ping_loop(ws))
        try:
            async for raw in ws:
                await self._handle_raw(raw)
        except ConnectionClosed as exc:
            logger.debug("WebSocket closed with error: %s", exc)
        finally:
            self._connected.clear()
            self._ws = None
            self._stop_ping()
        return getattr(ws, "close_code", None), getattr(ws, "close_reason", None)

    # --- 하트비트 ---
    async def _ping_loop(self, ws: Any) -> None:
        try:
            while True:
                await asyncio.sleep(self.ping_interval)
                if not await self.heartbeat(ws):
                    return
        except ConnectionClosed:
            logger.debug("Ping loop stopped: connection closed")

    async def heartbeat(self, ws: Any) -> bool:
        """Send one PING, or close the connection if no PONG arrived within pong_timeout."""
        if self._clock() - self._last_pong > self.pong_timeout:
            logger.error("No PONG received for %.0f seconds, reconnecting...", self.pong_timeout)
            await ws.close()
            return False
        await ws.send(json.dumps({"type": EventType.PING}))
        return True

    def _stop_ping(self) -> None:
        task, self._ping_task = self._ping_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    # --- 수신 / 디스패치 ---
    async def _handle_raw(self, raw: Any) -> None:
        try:
            data = json.loads(raw)
        except ValueError as exc:
            logger.error("Error processing WebSocket message: %s", exc)
            await self._notify_error("Error processing WebSocket message")
            return
        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            logger.error("Ignoring WebSocket message without a type: %r", data)
            await self._notify_error("Error processing WebSocket message")
            return

        event = LiveEvent.from_wire(data)
        if event.type == EventType.PONG:
            self._last_pong = self._clock()
            return
        await self.dispatch(event)

    async def dispatch(self, event: LiveEvent) -> None:
        """Invoke every listener for event.type in registration order."""
        for handler in list(self._handlers.get(event.type, ())):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                # 리스너 하나가 실패해도 나머지 리스너와 수신 루프는 계속
                logger.exception("Live event handler failed for %s", event.type)

    async def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        self._status = status
        await self.dispatch(LiveEvent(type=EventType.CONNECTION_STATUS, payload={"status": status.value}))

    async def _notify_error(self, message: str) -> None:
        await self.dispatch(LiveEvent(type=EventType.ERROR, payload={"message": message}))

    # --- 전송 ---
    async def send_chat_message(self, recipient_id: str, content: str) -> None:
        # 낙관적 업데이트 없음: 서버 에코(MESSAGE_SENT) 또는 REST 응답이 원본
        await self._send({"type": EventType.CHAT_MESSAGE, "recipientId": recipient_id, "content": content})

    async def send_proposal_update(self, proposal_id: str, status: str) -> None:
        await self._send({"type": EventType.PROPOSAL_UPDATE, "proposalId": proposal_id, "status": status})

    async def send_typing_status(self, conversation_id: str, is_typing: bool) -> None:
        await self._send({"type": EventType.TYPING_STATUS, "conversationId": conversation_id, "isTyping": is_typing})

    async def send_message_read(self, message_id: str) -> None:
        await self._send({"type": EventType.MESSAGE_READ, "messageId": message_id})

    async def _send(self, payload: Dict[str, Any]) -> None:
        ws = self._ws
        if ws is None or self._status is not ConnectionStatus.CONNECTED:
            logger.error("WebSocket not connected")
            await self._notify_error("WebSocket not connected")
            raise LiveConnectionError("WebSocket not connected")
        try:
            await ws.send(json.dumps(payload))
        except ConnectionClosed as exc:
            raise LiveConnectionError("WebSocket connection closed while sending") from exc
