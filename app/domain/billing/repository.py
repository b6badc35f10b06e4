"""Billing repository - Database operations for plans, garage subscriptions, payments and invoices"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from ...models import (
    GarageSubscription,
    Invoice,
    PaymentTransaction,
    SubscriptionPlan,
    SubscriptionStatus,
    User,
    UserRole,
)
from ...shared.validators import normalize_status_filter


class BillingRepository:
    """Repository for billing database operations"""

    # ------------------------------------------------------------------
    # Plans
    # ------------------------------------------------------------------

    @staticmethod
    def get_plan(db: Session, plan_id: int) -> Optional[SubscriptionPlan]:
        return db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()

    @staticmethod
    def get_plan_by_name(db: Session, name: str) -> Optional[SubscriptionPlan]:
        return db.query(SubscriptionPlan).filter(func.lower(SubscriptionPlan.name) == name.lower()).first()

    @staticmethod
    def available_plans_query(db: Session) -> Query:
        return (
            db.query(SubscriptionPlan)
            .filter(SubscriptionPlan.is_active.is_(True), SubscriptionPlan.is_legacy_price.is_(False))
            .order_by(SubscriptionPlan.price_pence.asc())
        )

    @staticmethod
    def all_plans_query(db: Session) -> Query:
        return db.query(SubscriptionPlan).order_by(SubscriptionPlan.price_pence.asc())

    @staticmethod
    def create_plan(db: Session, **data) -> SubscriptionPlan:
        plan = SubscriptionPlan(**data)
        db.add(plan)
        db.commit()
        db.refresh(plan)
        return plan

    @staticmethod
    def save(db: Session, obj):
        db.commit()
        db.refresh(obj)
        return obj

    # ------------------------------------------------------------------
    # Garage subscriptions
    # ------------------------------------------------------------------

    @staticmethod
    def get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_billing_id(db: Session, customer_id: str) -> Optional[User]:
        return db.query(User).filter(User.billing_id == customer_id).first()

    @staticmethod
    def get_subscription(db: Session, subscription_id: int) -> Optional[GarageSubscription]:
        return db.query(GarageSubscription).filter(GarageSubscription.id == subscription_id).first()

    @staticmethod
    def get_subscription_by_stripe_id(db: Session, stripe_subscription_id: str) -> Optional[GarageSubscription]:
        return (
            db.query(GarageSubscription)
            .filter(GarageSubscription.stripe_subscription_id == stripe_subscription_id)
            .first()
        )

    @staticmethod
    def get_latest_subscription(
        db: Session, garage_id: int, statuses: Optional[list[str]] = None
    ) -> Optional[GarageSubscription]:
        query = db.query(GarageSubscription).filter(GarageSubscription.garage_id == garage_id)
        if statuses:
            query = query.filter(GarageSubscription.status.in_(statuses))
        return query.order_by(GarageSubscription.created_at.desc(), GarageSubscription.id.desc()).first()

    @staticmethod
    def create_subscription(db: Session, **data) -> GarageSubscription:
        subscription = GarageSubscription(**data)
        db.add(subscription)
        db.commit()
        db.refresh(subscription)
        return subscription

    @staticmethod
    def get_subscriptions_due(db: Session, cutoff: datetime) -> list[GarageSubscription]:
        """ACTIVE / PAST_DUE subscriptions whose period ended on or before ``cutoff``"""
        return (
            db.query(GarageSubscription)
            .filter(
                GarageSubscription.status.in_([SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE]),
                GarageSubscription.current_period_end.isnot(None),
                GarageSubscription.current_period_end <= cutoff,
            )
            .all()
        )

    @staticmethod
    def count_expiring_between(db: Session, start: datetime, end: datetime) -> int:
        return (
            db.query(GarageSubscription)
            .filter(
                GarageSubscription.status == SubscriptionStatus.ACTIVE,
                GarageSubscription.current_period_end > start,
                GarageSubscription.current_period_end <= end,
            )
            .count()
        )

    @staticmethod
    def count_by_status(db: Session) -> dict[str, int]:
        rows = db.query(GarageSubscription.status, func.count(GarageSubscription.id)).group_by(
            GarageSubscription.status
        )
        return {status: count for status, count in rows.all()}

    @staticmethod
    def count_expired_between(db: Session, start: datetime, end: datetime) -> int:
        return (
            db.query(GarageSubscription)
            .filter(
                GarageSubscription.status.in_(
                    [SubscriptionStatus.PAST_DUE, SubscriptionStatus.SUSPENDED, SubscriptionStatus.CANCELLED]
                ),
                GarageSubscription.current_period_end >= start,
                GarageSubscription.current_period_end <= end,
            )
            .count()
        )

    @staticmethod
    def subscriptions_query(db: Session, status: Optional[str] = None) -> Query:
        query = db.query(GarageSubscription)
        status = normalize_status_filter(status)
        if status:
            query = query.filter(GarageSubscription.status == status)
        return query.order_by(GarageSubscription.created_at.desc(), GarageSubscription.id.desc())

    @staticmethod
    def get_garage_ids(db: Session) -> list[int]:
        return [row[0] for row in db.query(User.id).filter(User.role == UserRole.GARAGE).all()]

    # ------------------------------------------------------------------
    # Payments + invoices
    # ------------------------------------------------------------------

    @staticmethod
    def create_transaction(db: Session, commit: bool = True, **data) -> PaymentTransaction:
        transaction = PaymentTransaction(**data)
        db.add(transaction)
        if commit:
            db.commit()
            db.refresh(transaction)
        else:
            db.flush()
        return transaction

    @staticmethod
    def get_transaction_by_reference(db: Session, reference: str) -> Optional[PaymentTransaction]:
        return db.query(PaymentTransaction).filter(PaymentTransaction.reference_number == reference).first()

    @staticmethod
    def count_invoices_with_prefix(db: Session, prefix: str) -> int:
        return db.query(Invoice).filter(Invoice.invoice_number.like(f"{prefix}%")).count()

    @staticmethod
    def find_recent_invoice(db: Session, garage_id: int, amount: float, since: datetime) -> Optional[Invoice]:
        return (
            db.query(Invoice)
            .filter(
                Invoice.garage_id == garage_id,
                Invoice.order_id.is_(None),
                Invoice.amount == amount,
                Invoice.issue_date >= since,
            )
            .first()
        )

    @staticmethod
    def create_invoice(db: Session, commit: bool = True, **data) -> Invoice:
        invoice = Invoice(**data)
        db.add(invoice)
        if commit:
            db.commit()
            db.refresh(invoice)
        else:
            db.flush()
        return invoice

    @staticmethod
    def payments_query(db: Session, garage_id: int) -> Query:
        return (
            db.query(PaymentTransaction)
            .filter(PaymentTransaction.garage_id == garage_id)
            .order_by(PaymentTransaction.created_at.desc(), PaymentTransaction.id.desc())
        )

    @staticmethod
    def invoices_query(db: Session, garage_id: int) -> Query:
        return (
            db.query(Invoice)
            .filter(Invoice.garage_id == garage_id)
            .order_by(Invoice.issue_date.desc(), Invoice.id.desc())
        )

    @staticmethod
    def total_revenue(db: Session) -> float:
        total = (
            db.query(func.coalesce(func.sum(PaymentTransaction.amount), 0))
            .filter(PaymentTransaction.status == "PAID")
            .scalar()
        )
        return float(total or 0)
