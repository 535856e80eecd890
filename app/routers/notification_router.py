# app/routers/notification_router.py

import logging
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from app.core.security import get_current_user_from_websocket_token
from app.core.websocket_manager import NotificationHub, get_notification_hub
from app.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notifications"])


@router.websocket("/ws/notifications")
async def notifications_endpoint(
    websocket: WebSocket,
    # 前端連線 URL 必須是: /ws/notifications?token=...
    user: User = Depends(get_current_user_from_websocket_token),
    hub: NotificationHub = Depends(get_notification_hub),
):
    """
    即時推播端點 (伺服器 -> 前端)

    訊息格式: {"event": "<事件名稱>", "data": {...}}
    前端送來的訊息一律忽略，只用來維持連線
    """
    user_id = user.user_id
    await hub.connect(user_id, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        hub.disconnect(user_id, websocket)
    except Exception as e:
        logger.error(f"Unexpected error in notification socket for user {user_id}: {e}")
        hub.disconnect(user_id, websocket)
