from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from app.models.enums import NotificationType, RequestType


class NotificationRead(BaseModel):
    notification_id: UUID
    type: NotificationType
    title: str
    message: str
    related_request_type: Optional[RequestType] = None
    related_request_id: Optional[UUID] = None
    is_old: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationListResponse(BaseModel):
    items: List[NotificationRead]
    unread: int


class NotificationCountResponse(BaseModel):
    unread: int
