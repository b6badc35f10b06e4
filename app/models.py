from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class UserRole:
    ADMIN = "ADMIN"
    DRIVER = "DRIVER"
    GARAGE = "GARAGE"


class UserStatus:
    ACTIVE = "ACTIVE"
    BANNED = "BANNED"


class ServiceType:
    MOT = "MOT"
    RETEST = "RETEST"
    ADDITIONAL = "ADDITIONAL"


class OrderStatus:
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class SlotModificationType:
    MANUAL_BLOCK = "MANUAL_BLOCK"
    BOOKED = "BOOKED"
    TIME_MODIFIED = "TIME_MODIFIED"


class SubscriptionStatus:
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"
    CANCELLED = "CANCELLED"
    PAST_DUE = "PAST_DUE"


class PaymentType:
    SUBSCRIPTION = "SUBSCRIPTION"
    ORDER = "ORDER"


class PaymentStatus:
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CANCELLED = "CANCELLED"


class NotificationType:
    BOOKING = "BOOKING"
    BOOKING_STATUS = "BOOKING_STATUS"
    GARAGE_APPROVED = "GARAGE_APPROVED"
    SUBSCRIPTION = "SUBSCRIPTION"
    PAYMENT = "PAYMENT"
    MOT_EXPIRY_REMINDER = "MOT_EXPIRY_REMINDER"
    SYSTEM = "SYSTEM"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    role = Column(String(20), nullable=False, index=True)  # ADMIN, DRIVER, GARAGE
    status = Column(String(20), default=UserStatus.ACTIVE, nullable=False)  # ACTIVE, BANNED
    approved_at = Column(DateTime, nullable=True)  # Garages stay null until an admin approves

    # Garage profile
    garage_name = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    zip_code = Column(String(20), nullable=True, index=True)
    vts_number = Column(String(50), nullable=True)  # DVSA Vehicle Testing Station number
    primary_contact = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)

    # Driver-facing visibility, derived from garage_subscriptions
    has_subscription = Column(Boolean, default=False, nullable=False)
    subscription_expires_at = Column(DateTime, nullable=True)
    billing_id = Column(String(255), nullable=True)  # Stripe customer id

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    vehicles = relationship("Vehicle", back_populates="owner", cascade="all, delete-orphan")
    services = relationship("Service", back_populates="garage", cascade="all, delete-orphan")
    schedule = relationship("Schedule", back_populates="garage", uselist=False, cascade="all, delete-orphan")


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    registration_number = Column(String(20), unique=True, index=True, nullable=False)
    make = Column(String(100), nullable=True)
    model = Column(String(100), nullable=True)
    color = Column(String(50), nullable=True)
    fuel_type = Column(String(50), nullable=True)
    year_of_manufacture = Column(Integer, nullable=True)
    engine_capacity = Column(Integer, nullable=True)
    co2_emissions = Column(Integer, nullable=True)
    mot_expiry_date = Column(Date, nullable=True, index=True)
    dvla_data = Column(JSON, nullable=True)  # Raw DVLA enquiry response
    mot_data = Column(JSON, nullable=True)  # Raw DVSA MOT history response
    is_expired = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="vehicles")
    mot_reports = relationship(
        "MotReport",
        back_populates="vehicle",
        cascade="all, delete-orphan",
        order_by="desc(MotReport.test_date)",
    )


class MotReport(Base):
    __tablename__ = "mot_reports"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="CASCADE"), nullable=False, index=True)
    test_number = Column(String(50), nullable=True)
    test_date = Column(DateTime, nullable=True)
    expiry_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=True)  # PASSED, FAILED
    odometer_value = Column(Integer, nullable=True)
    odometer_unit = Column(String(10), nullable=True)
    odometer_result = Column(String(20), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    vehicle = relationship("Vehicle", back_populates="mot_reports")
    defects = relationship("MotDefect", back_populates="report", cascade="all, delete-orphan")


class MotDefect(Base):
    __tablename__ = "mot_defects"

    id = Column(Integer, primary_key=True, index=True)
    report_id = Column(Integer, ForeignKey("mot_reports.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(50), nullable=True)  # ADVISORY, MAJOR, DANGEROUS, ...
    text = Column(Text, nullable=True)
    dangerous = Column(Boolean, default=False, nullable=False)

    report = relationship("MotReport", back_populates="defects")


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    garage_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)  # GBP
    type = Column(String(20), nullable=False)  # MOT, RETEST, ADDITIONAL
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    garage = relationship("User", back_populates="services")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    driver_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id", ondelete="SET NULL"), nullable=True)
    garage_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    slot_id = Column(Integer, ForeignKey("time_slots.id", ondelete="SET NULL"), nullable=True, unique=True)
    order_date = Column(DateTime, server_default=func.now())
    status = Column(String(20), default=OrderStatus.PENDING, nullable=False, index=True)
    total_amount = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    driver = relationship("User", foreign_keys=[driver_id])
    garage = relationship("User", foreign_keys=[garage_id])
    vehicle = relationship("Vehicle")
    slot = relationship("TimeSlot", foreign_keys=[slot_id])
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, default=1, nullable=False)
    price = Column(Float, nullable=False)

    order = relationship("Order", back_populates="items")
    service = relationship("Service")


class TimeSlot(Base):
    __tablename__ = "time_slots"
    __table_args__ = (UniqueConstraint("garage_id", "start_datetime", name="uq_time_slots_garage_start"),)

    id = Column(Integer, primary_key=True, index=True)
    garage_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id", ondelete="SET NULL"), nullable=True)
    start_datetime = Column(DateTime, nullable=False)
    end_datetime = Column(DateTime, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    is_blocked = Column(Boolean, default=False, nullable=False)
    # Set inside the booking transaction; unique so a slot can back one order only
    order_id = Column(Integer, unique=True, nullable=True)
    modification_type = Column(String(20), nullable=True)  # MANUAL_BLOCK, BOOKED, TIME_MODIFIED
    modification_reason = Column(String(500), nullable=True)
    modified_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Schedule(Base):
    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True, index=True)
    garage_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    start_time = Column(String(5), nullable=False)  # "HH:MM"
    end_time = Column(String(5), nullable=False)  # "HH:MM"
    slot_duration = Column(Integer, default=60, nullable=False)  # minutes
    # [{type: HOLIDAY|BREAK, date?, month?, day?, day_of_week?, start_time?, end_time?, description?}]
    restrictions = Column(JSON, default=list, nullable=True)
    # {"0".."6" (0 = Sunday): {is_closed, intervals: [{start_time, end_time}]}}
    daily_hours = Column(JSON, default=dict, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    garage = relationship("User", back_populates="schedule")


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    price_pence = Column(Integer, nullable=False)
    currency = Column(String(3), default="GBP", nullable=False)
    max_bookings_per_month = Column(Integer, nullable=True)  # null = unlimited
    max_vehicles = Column(Integer, nullable=True)
    priority_support = Column(Boolean, default=False, nullable=False)
    advanced_analytics = Column(Boolean, default=False, nullable=False)
    custom_branding = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    stripe_price_id = Column(String(255), nullable=True)
    stripe_product_id = Column(String(255), nullable=True)
    is_legacy_price = Column(Boolean, default=False, nullable=False)
    trial_period_days = Column(Integer, default=14, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class GarageSubscription(Base):
    __tablename__ = "garage_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    garage_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=False)
    status = Column(String(20), default=SubscriptionStatus.INACTIVE, nullable=False, index=True)
    current_period_start = Column(DateTime, nullable=True)
    current_period_end = Column(DateTime, nullable=True, index=True)
    next_billing_date = Column(DateTime, nullable=True)
    cancel_at = Column(DateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    cancellation_reason = Column(String(500), nullable=True)
    price_pence = Column(Integer, nullable=False)
    currency = Column(String(3), default="GBP", nullable=False)
    stripe_subscription_id = Column(String(255), unique=True, nullable=True)
    stripe_customer_id = Column(String(255), nullable=True)
    is_grandfathered = Column(Boolean, default=False, nullable=False)  # Kept on a legacy price
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    garage = relationship("User")
    plan = relationship("SubscriptionPlan")


class PaymentTransaction(Base):
    __tablename__ = "payment_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    garage_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Float, nullable=False)
    currency = Column(String(3), default="GBP", nullable=False)
    type = Column(String(20), nullable=False)  # SUBSCRIPTION, ORDER
    status = Column(String(20), default=PaymentStatus.PENDING, nullable=False)
    provider = Column(String(50), default="stripe", nullable=False)
    reference_number = Column(String(255), nullable=True, index=True)  # Stripe invoice / payment intent id
    raw_status = Column(String(50), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(50), unique=True, nullable=False)  # INV-YYYYMMDD-NNNN
    garage_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    membership_period = Column(String(100), nullable=True)  # "Jan 15, 2025 - Feb 15, 2025"
    issue_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=True)
    amount = Column(Float, nullable=False)
    status = Column(String(20), default=PaymentStatus.PENDING, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    receiver_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    entity_id = Column(String(64), nullable=True)  # Related order/subscription/vehicle id
    type = Column(String(50), nullable=False)
    text = Column(Text, nullable=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), index=True)


class PostcodeGeoCache(Base):
    __tablename__ = "postcode_geo_cache"

    id = Column(Integer, primary_key=True, index=True)
    postcode_normalized = Column(String(10), unique=True, index=True, nullable=False)  # "SW1A1AA"
    postcode_display = Column(String(10), nullable=True)  # "SW1A 1AA"
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    outcode = Column(String(5), nullable=True)
    source = Column(String(50), default="postcodes.io", nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
