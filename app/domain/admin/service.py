"""Admin service - Account approval, moderation and platform overview"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...email_service import send_garage_approved_email
from ...models import NotificationType, Order, OrderStatus, SubscriptionStatus, User, UserRole, UserStatus
from ...shared.pagination import paginate
from ..billing.repository import BillingRepository
from ..billing.subscription_service import serialize_subscription
from ..garages.service import serialize_garage_booking
from ..notifications.service import NotificationService
from .repository import AdminRepository
from .schemas import AdminUserResponse

logger = logging.getLogger(__name__)


def serialize_admin_booking(order: Order) -> dict:
    data = serialize_garage_booking(order)
    garage = order.garage
    data["garage"] = {"id": garage.id, "garage_name": garage.garage_name, "email": garage.email} if garage else None
    return data


class AdminService:
    """Service for the admin console"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AdminRepository()
        self.billing_repo = BillingRepository()
        self.notifications = NotificationService(db)

    # ========================================================================
    # DASHBOARD
    # ========================================================================

    def get_dashboard_stats(self) -> dict:
        bookings = self.repo.count_orders_by_status(self.db)
        subscriptions = self.billing_repo.count_by_status(self.db)
        return {
            "drivers": self.repo.count_role(self.db, UserRole.DRIVER),
            "garages": self.repo.count_role(self.db, UserRole.GARAGE),
            "pending_garages": self.repo.count_pending_garages(self.db),
            "bookings": {
                "total": sum(bookings.values()),
                **{status.lower(): bookings.get(status, 0) for status in (
                    OrderStatus.PENDING,
                    OrderStatus.ACCEPTED,
                    OrderStatus.REJECTED,
                    OrderStatus.COMPLETED,
                    OrderStatus.CANCELLED,
                )},
            },
            "active_subscriptions": subscriptions.get(SubscriptionStatus.ACTIVE, 0),
            "revenue": self.billing_repo.total_revenue(self.db),
        }

    # ========================================================================
    # USERS
    # ========================================================================

    def list_users(
        self,
        role: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        users, pagination = paginate(self.repo.users_query(self.db, role, status, search), page, limit)
        return {"data": [AdminUserResponse.model_validate(u) for u in users], "pagination": pagination}

    def get_user(self, user_id: int) -> User:
        user = self.repo.get_user(self.db, user_id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        return user

    async def approve_garage(self, user_id: int, admin: User) -> User:
        user = self.get_user(user_id)
        if user.role != UserRole.GARAGE:
            raise HTTPException(status_code=400, detail="Only garage accounts need approval")
        if user.approved_at:
            raise HTTPException(status_code=409, detail="Garage is already approved")

        user.approved_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"✅ Garage {user.id} approved by admin {admin.id}")

        self.notifications.safe_create(
            user.id,
            NotificationType.GARAGE_APPROVED,
            "Your garage has been approved. Choose a subscription plan to start taking bookings.",
            sender_id=admin.id,
        )
        try:
            await send_garage_approved_email(user.email, user.garage_name or user.name or user.email)
        except Exception as e:
            logger.error(f"❌ Failed to send approval email to garage {user.id}: {e}")
        return user

    def ban_user(self, user_id: int, admin: User) -> User:
        user = self.get_user(user_id)
        if user.id == admin.id or user.role == UserRole.ADMIN:
            raise HTTPException(status_code=400, detail="Admin accounts cannot be banned")
        if user.status != UserStatus.BANNED:
            user.status = UserStatus.BANNED
            self.db.commit()
            self.db.refresh(user)
            logger.warning(f"⚠️ User {user.id} banned by admin {admin.id}")
        return user

    def unban_user(self, user_id: int, admin: User) -> User:
        user = self.get_user(user_id)
        if user.status == UserStatus.BANNED:
            user.status = UserStatus.ACTIVE
            self.db.commit()
            self.db.refresh(user)
            logger.info(f"✅ User {user.id} unbanned by admin {admin.id}")
        return user

    # ========================================================================
    # BOOKINGS
    # ========================================================================

    def list_bookings(
        self,
        status: Optional[str] = None,
        garage_id: Optional[int] = None,
        driver_id: Optional[int] = None,
        page: int = 1,
        limit: int = 10,
    ) -> dict:
        orders, pagination = paginate(self.repo.bookings_query(self.db, status, garage_id, driver_id), page, limit)
        return {"data": [serialize_admin_booking(o) for o in orders], "pagination": pagination}

    def get_booking(self, order_id: int) -> dict:
        order = self.repo.get_booking(self.db, order_id)
        if not order:
            raise HTTPException(status_code=404, detail="Booking not found")
        return serialize_admin_booking(order)

    # ========================================================================
    # GARAGE SUBSCRIPTIONS
    # ========================================================================

    def list_garage_subscriptions(self, status: Optional[str] = None, page: int = 1, limit: int = 10) -> dict:
        subscriptions, pagination = paginate(self.billing_repo.subscriptions_query(self.db, status), page, limit)
        data = []
        for subscription in subscriptions:
            item = serialize_subscription(subscription)
            garage = subscription.garage
            item["garage"] = (
                {"id": garage.id, "garage_name": garage.garage_name, "email": garage.email} if garage else None
            )
            data.append(item)
        return {"data": data, "pagination": pagination}

    # ========================================================================
    # BROADCAST
    # ========================================================================

    def broadcast(self, text: str, admin: User, role: Optional[str] = None) -> dict:
        sent = self.notifications.broadcast(text, admin, role)
        logger.info(f"📣 Admin {admin.id} broadcast to {sent} users (role={role or 'ALL'})")
        return {"success": True, "sent": sent}
