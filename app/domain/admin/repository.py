"""Admin repository - Cross-account database queries"""

from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session, joinedload

from ...models import Order, User, UserRole
from ...shared.validators import normalize_status_filter


class AdminRepository:
    """Repository for admin database operations"""

    @staticmethod
    def users_query(
        db: Session, role: Optional[str] = None, status: Optional[str] = None, search: Optional[str] = None
    ) -> Query:
        query = db.query(User)
        if role:
            query = query.filter(User.role == role)
        status = normalize_status_filter(status)
        if status:
            query = query.filter(User.status == status)
        if search:
            term = f"%{search.strip()}%"
            query = query.filter(
                or_(User.email.ilike(term), User.name.ilike(term), User.garage_name.ilike(term))
            )
        return query.order_by(User.created_at.desc(), User.id.desc())

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def count_role(db: Session, role: str) -> int:
        return db.query(User).filter(User.role == role).count()

    @staticmethod
    def count_pending_garages(db: Session) -> int:
        return db.query(User).filter(User.role == UserRole.GARAGE, User.approved_at.is_(None)).count()

    @staticmethod
    def count_orders_by_status(db: Session) -> dict[str, int]:
        rows = db.query(Order.status, func.count(Order.id)).group_by(Order.status)
        return {status: count for status, count in rows.all()}

    @staticmethod
    def bookings_query(
        db: Session,
        status: Optional[str] = None,
        garage_id: Optional[int] = None,
        driver_id: Optional[int] = None,
    ) -> Query:
        query = db.query(Order).options(
            joinedload(Order.driver), joinedload(Order.garage), joinedload(Order.vehicle), joinedload(Order.slot)
        )
        status = normalize_status_filter(status)
        if status:
            query = query.filter(Order.status == status)
        if garage_id:
            query = query.filter(Order.garage_id == garage_id)
        if driver_id:
            query = query.filter(Order.driver_id == driver_id)
        return query.order_by(Order.created_at.desc(), Order.id.desc())

    @staticmethod
    def get_booking(db: Session, order_id: int) -> Optional[Order]:
        return (
            db.query(Order)
            .options(
                joinedload(Order.driver), joinedload(Order.garage), joinedload(Order.vehicle), joinedload(Order.slot)
            )
            .filter(Order.id == order_id)
            .first()
        )
