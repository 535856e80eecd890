# app/services/notification_service.py

import logging
from fastapi import Depends

from app.core.websocket_manager import NotificationFanout, get_notification_hub
from app.schemas.event_schema import BaseEvent

logger = logging.getLogger(__name__)


class NotificationService:
    """
    其他 Service 發送推播事件的唯一入口

    推播是盡力而為：任何錯誤都只記錄下來，不會讓主要的狀態轉移失敗或回滾。
    """
    def __init__(self, fanout: NotificationFanout):
        self.fanout = fanout

    async def notify_user(self, user_id: str, event: BaseEvent) -> None:
        try:
            await self.fanout.notify_user(user_id, event.event_name, event.payload())
        except Exception as e:
            logger.error(f"推播 {event.event_name} 給 User {user_id} 失敗: {e}", exc_info=True)

    async def broadcast(self, event: BaseEvent) -> None:
        try:
            await self.fanout.broadcast(event.event_name, event.payload())
        except Exception as e:
            logger.error(f"廣播 {event.event_name} 失敗: {e}", exc_info=True)


def get_notification_service(
    fanout: NotificationFanout = Depends(get_notification_hub),
) -> NotificationService:
    """依賴注入：以 lifespan 建立的 NotificationHub 建立 NotificationService"""
    return NotificationService(fanout)
