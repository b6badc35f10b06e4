"""Notification repository - Database operations for in-app notifications"""

from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Query, Session

from ...models import Notification, User, UserRole, UserStatus


class NotificationRepository:
    """Repository for notification database operations"""

    @staticmethod
    def create(db: Session, commit: bool = True, **data) -> Notification:
        notification = Notification(**data)
        db.add(notification)
        if commit:
            db.commit()
            db.refresh(notification)
        else:
            db.flush()
        return notification

    @staticmethod
    def query_for_user(db: Session, user_id: int, unread_only: bool = False) -> Query:
        query = db.query(Notification).filter(Notification.receiver_id == user_id)
        if unread_only:
            query = query.filter(Notification.read_at.is_(None))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc())

    @staticmethod
    def count_unread(db: Session, user_id: int) -> int:
        return (
            db.query(Notification)
            .filter(Notification.receiver_id == user_id, Notification.read_at.is_(None))
            .count()
        )

    @staticmethod
    def get_for_user(db: Session, notification_id: int, user_id: int) -> Optional[Notification]:
        return (
            db.query(Notification)
            .filter(Notification.id == notification_id, Notification.receiver_id == user_id)
            .first()
        )

    @staticmethod
    def mark_read(db: Session, notification: Notification) -> Notification:
        if notification.read_at is None:
            notification.read_at = datetime.utcnow()
            db.commit()
            db.refresh(notification)
        return notification

    @staticmethod
    def mark_all_read(db: Session, user_id: int) -> int:
        updated = (
            db.query(Notification)
            .filter(Notification.receiver_id == user_id, Notification.read_at.is_(None))
            .update({Notification.read_at: datetime.utcnow()}, synchronize_session=False)
        )
        db.commit()
        return updated

    @staticmethod
    def get_admin_ids(db: Session) -> list[int]:
        rows = (
            db.query(User.id)
            .filter(User.role == UserRole.ADMIN, User.status == UserStatus.ACTIVE)
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def get_user_ids(db: Session, role: Optional[str] = None) -> list[int]:
        query = db.query(User.id).filter(User.status == UserStatus.ACTIVE)
        if role:
            query = query.filter(User.role == role)
        return [row[0] for row in query.all()]
