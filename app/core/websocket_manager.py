# app/core/websocket_manager.py

from fastapi import WebSocket
from fastapi.requests import HTTPConnection
from typing import Any, Dict, List, Protocol
import logging

logger = logging.getLogger(__name__)


class NotificationFanout(Protocol):
    """即時推播介面：通知單一使用者，或廣播給所有連線中的使用者"""

    async def notify_user(self, user_id: str, event_name: str, payload: Dict[str, Any]) -> None: ...

    async def broadcast(self, event_name: str, payload: Dict[str, Any]) -> None: ...


# 連線管理器：維護 'user_id' -> List[WebSocket] 的映射
class NotificationHub:
    """
    管理推播用的 WebSocket 連線。

    - 至多一次、盡力送達，不保存任何事件
    - 由 app lifespan 建立與關閉 (見 app/main.py)
    """

    def __init__(self):
        # 結構: {user_id: [WebSocket, ...]} (同一使用者可能開多個分頁)
        self.active_connections: Dict[str, List[WebSocket]] = {}

    @property
    def connection_count(self) -> int:
        return sum(len(sockets) for sockets in self.active_connections.values())

    async def connect(self, user_id: str, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.setdefault(user_id, []).append(websocket)
        logger.info(f"User {user_id} connected. Total connections: {self.connection_count}")

    def disconnect(self, user_id: str, websocket: WebSocket):
        sockets = self.active_connections.get(user_id)
        if not sockets or websocket not in sockets:
            return # 可能是重複斷開
        sockets.remove(websocket)
        if not sockets:
            del self.active_connections[user_id]
        logger.info(f"User {user_id} disconnected. Remaining connections: {self.connection_count}")

    async def _send(self, user_id: str, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"Failed to send event to user {user_id}: {e}")
            return False

    async def notify_user(self, user_id: str, event_name: str, payload: Dict[str, Any]) -> None:
        message = {"event": event_name, "data": payload}
        sockets = list(self.active_connections.get(user_id, []))
        if not sockets:
            logger.info(f"User {user_id} 沒有連線，事件 {event_name} 不會送達")
            return
        for websocket in sockets:
            if not await self._send(user_id, websocket, message):
                # 清理已斷開的連線
                self.disconnect(user_id, websocket)

    async def broadcast(self, event_name: str, payload: Dict[str, Any]) -> None:
        message = {"event": event_name, "data": payload}
        for user_id, sockets in list(self.active_connections.items()):
            for websocket in list(sockets):
                if not await self._send(user_id, websocket, message):
                    self.disconnect(user_id, websocket)
        logger.info(f"📢 Broadcast {event_name} to {self.connection_count} connection(s)")

    async def close(self):
        """服務關閉時斷開所有連線"""
        for user_id, sockets in list(self.active_connections.items()):
            for websocket in list(sockets):
                try:
                    await websocket.close()
                except Exception as e:
                    logger.debug(f"Closing socket of user {user_id} failed: {e}")
        self.active_connections.clear()


def get_notification_hub(connection: HTTPConnection) -> NotificationHub:
    """依賴注入：取得 lifespan 建立的 NotificationHub (HTTP 與 WebSocket 皆可用)"""
    return connection.app.state.notification_hub
