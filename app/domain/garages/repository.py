"""Garage repository - Database operations for the garage dashboard"""

from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session, joinedload

from ...models import Invoice, Order, OrderItem, PaymentTransaction, Service, ServiceType, User, Vehicle
from ...shared.validators import normalize_status_filter


class GarageRepository:
    """Repository for garage dashboard database operations"""

    @staticmethod
    def get_services(db: Session, garage_id: int) -> list[Service]:
        return db.query(Service).filter(Service.garage_id == garage_id).order_by(Service.type, Service.name).all()

    @staticmethod
    def get_service(db: Session, garage_id: int, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id, Service.garage_id == garage_id).first()

    @staticmethod
    def get_service_by_type(db: Session, garage_id: int, service_type: str) -> Optional[Service]:
        return db.query(Service).filter(Service.garage_id == garage_id, Service.type == service_type).first()

    @staticmethod
    def get_additionals(db: Session, garage_id: int) -> list[Service]:
        return (
            db.query(Service)
            .filter(Service.garage_id == garage_id, Service.type == ServiceType.ADDITIONAL)
            .all()
        )

    @staticmethod
    def bookings_query(
        db: Session, garage_id: int, status: Optional[str] = None, search: Optional[str] = None
    ) -> Query:
        query = (
            db.query(Order)
            .options(joinedload(Order.driver), joinedload(Order.vehicle), joinedload(Order.slot))
            .filter(Order.garage_id == garage_id)
        )
        status = normalize_status_filter(status)
        if status:
            query = query.filter(Order.status == status)
        if search:
            term = f"%{search.strip()}%"
            driver_ids = db.query(User.id).filter(or_(User.name.ilike(term), User.email.ilike(term)))
            vehicle_ids = db.query(Vehicle.id).filter(Vehicle.registration_number.ilike(term))
            query = query.filter(or_(Order.driver_id.in_(driver_ids), Order.vehicle_id.in_(vehicle_ids)))
        return query.order_by(Order.created_at.desc(), Order.id.desc())

    @staticmethod
    def get_booking(db: Session, garage_id: int, order_id: int) -> Optional[Order]:
        return (
            db.query(Order)
            .options(joinedload(Order.driver), joinedload(Order.vehicle), joinedload(Order.slot))
            .filter(Order.id == order_id, Order.garage_id == garage_id)
            .first()
        )

    @staticmethod
    def get_payment(db: Session, garage_id: int, payment_id: int) -> Optional[PaymentTransaction]:
        return (
            db.query(PaymentTransaction)
            .filter(PaymentTransaction.id == payment_id, PaymentTransaction.garage_id == garage_id)
            .first()
        )

    @staticmethod
    def get_invoice(db: Session, garage_id: int, invoice_id: int) -> Optional[Invoice]:
        return db.query(Invoice).filter(Invoice.id == invoice_id, Invoice.garage_id == garage_id).first()

    @staticmethod
    def service_has_orders(db: Session, service_id: int) -> bool:
        return db.query(OrderItem.id).filter(OrderItem.service_id == service_id).first() is not None
