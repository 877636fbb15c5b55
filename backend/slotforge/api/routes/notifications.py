from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from slotforge.api.deps import get_db, get_tenant_id
from slotforge.schemas.notification import NotificationOut
from slotforge.services.notification_hub import notification_hub, topic_for
from slotforge.services.notifications import list_notifications

router = APIRouter()


@router.get("/notifications", response_model=list[NotificationOut])
def get_notifications(
    class_group: str | None = Query(default=None, max_length=100),
    limit: int = Query(default=50, ge=1, le=500),
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
) -> list[NotificationOut]:
    return list_notifications(db, tenant_id=tenant_id, class_group_name=class_group, limit=limit)


def _extract_ws_tenant(websocket: WebSocket) -> str | None:
    tenant_id = websocket.query_params.get("tenant") or websocket.headers.get("x-tenant-id")
    if not tenant_id or not tenant_id.strip():
        return None
    return tenant_id.strip()


@router.websocket("/notifications/ws/{class_group}")
async def notifications_websocket(websocket: WebSocket, class_group: str) -> None:
    tenant_id = _extract_ws_tenant(websocket)
    if not tenant_id:
        await websocket.close(code=1008)
        return

    topic = topic_for(tenant_id, class_group)
    await notification_hub.connect(topic, websocket)
    try:
        await websocket.send_json({"event": "connected", "class_group_name": class_group})
        while True:
            message = await websocket.receive_text()
            if message.strip().lower() == "ping":
                await websocket.send_json({"event": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        await notification_hub.disconnect(topic, websocket)
