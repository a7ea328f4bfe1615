import logging
from typing import Any, Dict, List

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


class ConnectionManager:
    """사용자 id별로 열린 WebSocket 목록 (한 사용자가 여러 탭을 열 수 있음)."""

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, user_id: str):
        await websocket.accept()
        self.active_connections.setdefault(user_id, []).append(websocket)
        logger.info("User %s connected (%d sockets)", user_id, len(self.active_connections[user_id]))

    def disconnect(self, websocket: WebSocket, user_id: str):
        sockets = self.active_connections.get(user_id, [])
        if websocket in sockets:
            sockets.remove(websocket)
        if not sockets:
            self.active_connections.pop(user_id, None)
        logger.info("User %s disconnected", user_id)

    def is_online(self, user_id: str) -> bool:
        return bool(self.active_connections.get(user_id))

    async def send_personal_message(self, data: Dict[str, Any], user_id: str) -> bool:
        """해당 사용자의 모든 소켓으로 전송. 한 곳이라도 받았으면 True."""
        delivered = False
        for websocket in list(self.active_connections.get(user_id, [])):
            try:
                await websocket.send_json(data)
                delivered = True
            except (RuntimeError, WebSocketDisconnect) as e:
                # 이미 닫힌 소켓
                logger.warning("Dropping dead socket for user %s: %s", user_id, e)
                self.disconnect(websocket, user_id)
        return delivered
