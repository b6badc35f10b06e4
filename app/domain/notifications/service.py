"""Notification service - Persist in-app notifications and fan them out to connected clients"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...cache import cache
from ...models import Notification, User
from ...shared.pagination import paginate
from .repository import NotificationRepository

logger = logging.getLogger(__name__)


def notification_channel(user_id: int) -> str:
    return f"notifications:{user_id}"


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "type": notification.type,
        "text": notification.text,
        "entity_id": notification.entity_id,
        "sender_id": notification.sender_id,
        "read_at": notification.read_at,
        "created_at": notification.created_at,
    }


class NotificationService:
    """Service layer for notifications"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = NotificationRepository()

    def create(
        self,
        receiver_id: int,
        type: str,
        text: str,
        sender_id: Optional[int] = None,
        entity_id: Optional[str] = None,
    ) -> Notification:
        """Persist a notification then push it to the receiver's channel"""
        notification = self.repo.create(
            self.db,
            receiver_id=receiver_id,
            sender_id=sender_id,
            entity_id=str(entity_id) if entity_id is not None else None,
            type=type,
            text=text,
        )
        self.push(notification)
        return notification

    def push(self, notification: Notification) -> None:
        published = cache.publish(
            notification_channel(notification.receiver_id),
            {"event": "notification", "data": serialize_notification(notification)},
        )
        if not published:
            logger.warning(f"⚠️ Push fan-out skipped for notification {notification.id}")

    def safe_create(self, receiver_id: int, type: str, text: str, **kwargs) -> Optional[Notification]:
        """Like create(), but a failure is logged instead of raised"""
        try:
            return self.create(receiver_id, type, text, **kwargs)
        except Exception as e:
            logger.error(f"❌ Failed to create {type} notification for user {receiver_id}: {e}")
            self.db.rollback()
            return None

    def send_to_all_admins(self, type: str, text: str, entity_id: Optional[str] = None) -> int:
        admin_ids = self.repo.get_admin_ids(self.db)
        sent = 0
        for admin_id in admin_ids:
            if self.safe_create(admin_id, type, text, entity_id=entity_id):
                sent += 1
        logger.info(f"📣 Admin notification sent to {sent}/{len(admin_ids)} admins: {type}")
        return sent

    def broadcast(self, text: str, sender: User, role: Optional[str] = None, type: str = "SYSTEM") -> int:
        user_ids = self.repo.get_user_ids(self.db, role)
        sent = 0
        for user_id in user_ids:
            if user_id == sender.id:
                continue
            if self.safe_create(user_id, type, text, sender_id=sender.id):
                sent += 1
        return sent

    def find_all(self, user: User, page: int = 1, limit: int = 10, unread_only: bool = False) -> dict:
        query = self.repo.query_for_user(self.db, user.id, unread_only)
        items, pagination = paginate(query, page, limit)
        return {
            "data": [serialize_notification(n) for n in items],
            "pagination": pagination,
            "unread_count": self.repo.count_unread(self.db, user.id),
        }

    def get_unread_count(self, user: User) -> int:
        return self.repo.count_unread(self.db, user.id)

    def mark_as_read(self, notification_id: int, user: User) -> Notification:
        notification = self.repo.get_for_user(self.db, notification_id, user.id)
        if not notification:
            raise HTTPException(status_code=404, detail="Notification not found")
        return self.repo.mark_read(self.db, notification)

    def mark_all_as_read(self, user: User) -> dict:
        updated = self.repo.mark_all_read(self.db, user.id)
        return {"message": "All notifications marked as read", "updated": updated}
