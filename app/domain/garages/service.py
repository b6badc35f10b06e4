"""Garage dashboard service - Profile, pricing, bookings and billing history"""

import logging
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...email_service import send_booking_status_email
from ...models import Invoice, NotificationType, Order, OrderStatus, PaymentTransaction, Service, ServiceType, User
from ...services.geocoding import get_lat_lng
from ...shared.pagination import paginate
from ..billing.repository import BillingRepository
from ..booking.service import release_slot
from ..notifications.service import NotificationService
from .repository import GarageRepository
from .schemas import GarageProfileUpdate, PricingUpsert

logger = logging.getLogger(__name__)

# Status a garage may move a booking to, keyed by the current status
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.ACCEPTED, OrderStatus.REJECTED, OrderStatus.CANCELLED},
    OrderStatus.ACCEPTED: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
}
SLOT_RELEASING_STATUSES = {OrderStatus.REJECTED, OrderStatus.CANCELLED}


def serialize_garage_booking(order: Order) -> dict:
    slot = order.slot
    driver = order.driver
    vehicle = order.vehicle
    return {
        "id": order.id,
        "status": order.status,
        "total_amount": order.total_amount,
        "order_date": order.order_date,
        "driver": {"id": driver.id, "name": driver.name, "email": driver.email, "phone_number": driver.phone_number}
        if driver
        else None,
        "vehicle": {
            "id": vehicle.id,
            "registration_number": vehicle.registration_number,
            "make": vehicle.make,
            "model": vehicle.model,
            "mot_expiry_date": vehicle.mot_expiry_date,
        }
        if vehicle
        else None,
        "slot": {
            "id": slot.id,
            "date": slot.start_datetime.date().isoformat(),
            "start_time": slot.start_datetime.strftime("%H:%M"),
            "end_time": slot.end_datetime.strftime("%H:%M"),
        }
        if slot
        else None,
        "items": [
            {"service_id": item.service_id, "quantity": item.quantity, "price": item.price} for item in order.items
        ],
    }


def serialize_payment(payment: PaymentTransaction) -> dict:
    return {
        "id": payment.id,
        "amount": payment.amount,
        "currency": payment.currency,
        "type": payment.type,
        "status": payment.status,
        "provider": payment.provider,
        "reference_number": payment.reference_number,
        "created_at": payment.created_at,
    }


def serialize_invoice(invoice: Invoice) -> dict:
    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "membership_period": invoice.membership_period,
        "issue_date": invoice.issue_date,
        "due_date": invoice.due_date,
        "amount": invoice.amount,
        "status": invoice.status,
        "order_id": invoice.order_id,
    }


class GarageService:
    """Service for the garage dashboard"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = GarageRepository()
        self.billing_repo = BillingRepository()
        self.notifications = NotificationService(db)

    # ========================================================================
    # PROFILE
    # ========================================================================

    def get_profile(self, garage: User) -> User:
        return garage

    async def update_profile(self, garage: User, request: GarageProfileUpdate) -> User:
        updates = request.model_dump(exclude_unset=True)

        new_zip = updates.get("zip_code")
        if new_zip and new_zip != garage.zip_code:
            location = await get_lat_lng(self.db, new_zip)
            garage.latitude = location["latitude"]
            garage.longitude = location["longitude"]
            logger.info(f"📍 Re-geocoded garage {garage.id} to {location['postcode']}")

        for field, value in updates.items():
            setattr(garage, field, value)
        self.db.commit()
        self.db.refresh(garage)
        return garage

    # ========================================================================
    # PRICING
    # ========================================================================

    def get_services(self, garage: User) -> list:
        return self.repo.get_services(self.db, garage.id)

    def upsert_pricing(self, garage: User, request: PricingUpsert) -> list:
        """Create or update MOT and retest prices, and replace the additional services"""
        for service_type, priced in ((ServiceType.MOT, request.mot), (ServiceType.RETEST, request.retest)):
            service = self.repo.get_service_by_type(self.db, garage.id, service_type)
            if service:
                service.name = priced.name
                service.price = priced.price
            else:
                self.db.add(Service(garage_id=garage.id, name=priced.name, price=priced.price, type=service_type))

        wanted = {a.name.lower(): a for a in request.additionals}
        for existing in self.repo.get_additionals(self.db, garage.id):
            match = wanted.pop(existing.name.lower(), None)
            if match:
                existing.price = match.price
            else:
                self.db.delete(existing)
        for additional in wanted.values():
            self.db.add(
                Service(
                    garage_id=garage.id, name=additional.name, price=additional.price, type=ServiceType.ADDITIONAL
                )
            )

        self.db.commit()
        logger.info(f"💷 Updated pricing for garage {garage.id}")
        return self.repo.get_services(self.db, garage.id)

    def delete_service(self, garage: User, service_id: int) -> dict:
        service = self.repo.get_service(self.db, garage.id, service_id)
        if not service:
            raise HTTPException(status_code=404, detail="Service not found")
        if self.repo.service_has_orders(self.db, service.id):
            raise HTTPException(status_code=409, detail="Service has bookings and cannot be deleted")
        self.db.delete(service)
        self.db.commit()
        return {"success": True, "message": "Service deleted successfully"}

    # ========================================================================
    # BOOKINGS
    # ========================================================================

    def list_bookings(
        self, garage: User, status: Optional[str] = None, search: Optional[str] = None, page: int = 1, limit: int = 10
    ) -> dict:
        orders, pagination = paginate(self.repo.bookings_query(self.db, garage.id, status, search), page, limit)
        return {"data": [serialize_garage_booking(o) for o in orders], "pagination": pagination}

    def _get_booking(self, garage: User, order_id: int) -> Order:
        order = self.repo.get_booking(self.db, garage.id, order_id)
        if not order:
            raise HTTPException(status_code=404, detail="Booking not found")
        return order

    def get_booking(self, garage: User, order_id: int) -> dict:
        return serialize_garage_booking(self._get_booking(garage, order_id))

    async def update_booking_status(self, garage: User, order_id: int, status: str) -> dict:
        order = self._get_booking(garage, order_id)
        if status not in ALLOWED_TRANSITIONS.get(order.status, set()):
            raise HTTPException(status_code=400, detail=f"Cannot change booking from {order.status} to {status}")

        previous = order.status
        order.status = status
        slot_time = order.order_date.strftime("%d %b %Y %H:%M") if order.order_date else ""
        if status in SLOT_RELEASING_STATUSES:
            release_slot(order)
        self.db.commit()
        logger.info(f"📋 Booking {order.id} {previous} -> {status} by garage {garage.id}")

        garage_name = garage.garage_name or garage.name or garage.email
        self.notifications.safe_create(
            order.driver_id,
            NotificationType.BOOKING_STATUS,
            f"Your booking at {garage_name} on {slot_time} is now {status.lower()}",
            sender_id=garage.id,
            entity_id=str(order.id),
        )
        driver = order.driver
        if driver:
            try:
                await send_booking_status_email(driver.email, driver.name or driver.email, garage_name, status, slot_time)
            except Exception as e:
                logger.error(f"❌ Failed to send booking status email for order {order.id}: {e}")

        return serialize_garage_booking(order)

    # ========================================================================
    # BILLING HISTORY
    # ========================================================================

    def list_payments(self, garage: User, page: int = 1, limit: int = 10) -> dict:
        payments, pagination = paginate(self.billing_repo.payments_query(self.db, garage.id), page, limit)
        return {"data": [serialize_payment(p) for p in payments], "pagination": pagination}

    def get_payment(self, garage: User, payment_id: int) -> dict:
        payment = self.repo.get_payment(self.db, garage.id, payment_id)
        if not payment:
            raise HTTPException(status_code=404, detail="Payment not found")
        return serialize_payment(payment)

    def list_invoices(self, garage: User, page: int = 1, limit: int = 10) -> dict:
        invoices, pagination = paginate(self.billing_repo.invoices_query(self.db, garage.id), page, limit)
        return {"data": [serialize_invoice(i) for i in invoices], "pagination": pagination}

    def get_invoice(self, garage: User, invoice_id: int) -> dict:
        invoice = self.repo.get_invoice(self.db, garage.id, invoice_id)
        if not invoice:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return serialize_invoice(invoice)
