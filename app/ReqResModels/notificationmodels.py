from pydantic import BaseModel
from datetime import datetime
from typing import Optional, List

class NotificationResponse(BaseModel):
    id: int
    user_id: int
    type: str
    title: str
    message: str
    data: Optional[dict] = None
    read: bool
    created_at: datetime

class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int

class UnreadCountResponse(BaseModel):
    unread_count: int

class NotificationMessageResponse(BaseModel):
    message: str
