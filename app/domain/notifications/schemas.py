"""Notification domain schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: int
    type: str
    text: str
    entity_id: Optional[str] = None
    sender_id: Optional[int] = None
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BroadcastRequest(BaseModel):
    text: str
    role: Optional[str] = None  # DRIVER, GARAGE, ADMIN; all users when omitted
