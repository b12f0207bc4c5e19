from datetime import datetime
from typing import List, Optional

from pydantic import Field

from editorial.db.models import NotificationType
from editorial.schemas.camel_base_model import CamelCaseBaseModel as BaseModel


class NotificationItem(BaseModel):
    id: str = Field(..., description="Notification ID")
    submission_id: Optional[str] = Field(None, description="Related submission")
    sender_id: Optional[str] = Field(None, description="Who triggered it")
    receiver_id: str
    type: NotificationType
    message: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationFeed(BaseModel):
    notifications: List[NotificationItem]
    unread_count: int = Field(..., description="Count of unread notifications")
    limit: int
    offset: int
    has_more: bool = Field(..., description="Whether more notifications are available")


class SendMessageRequest(BaseModel):
    receiver_id: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    submission_id: Optional[str] = None


class NotificationStats(BaseModel):
    unread_count: Optional[int] = Field(None, description="Count of unread notifications")
    all_as_read_count: Optional[int] = Field(
        None, description="Count of notifications marked as read at the same time"
    )
