"""通知的响应模型"""

from datetime import datetime

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: str
    channel: str
    category: str
    title: str
    body: str
    status: str
    read_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    total: int
    unread_only: bool


class ReadAllResponse(BaseModel):
    updated: int
