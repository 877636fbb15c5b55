from datetime import datetime

from pydantic import BaseModel

from slotforge.models.notification import NotificationType


class NotificationOut(BaseModel):
    id: str
    tenant_id: str
    class_group_name: str
    term: str
    title: str
    message: str
    notification_type: NotificationType
    created_at: datetime

    model_config = {"from_attributes": True}
