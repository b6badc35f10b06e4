"""Row builders shared by the test modules"""

from datetime import date, datetime, timedelta
from itertools import count

from app.models import (
    GarageSubscription,
    Schedule,
    Service,
    ServiceType,
    SubscriptionPlan,
    SubscriptionStatus,
    User,
    UserRole,
    UserStatus,
    Vehicle,
)
from app.security_utils import create_access_token, hash_password

PASSWORD = "correct-horse-battery"

_ids = count(1)


def future_weekday(weekday: int, weeks_ahead: int = 4) -> date:
    """A date ``weeks_ahead`` weeks out falling on ``weekday`` (0 = Monday, Python numbering)"""
    d = date.today() + timedelta(weeks=weeks_ahead)
    return d + timedelta(days=(weekday - d.weekday()) % 7)


def auth_headers(user: User) -> dict:
    token = create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


def make_user(db, role: str = UserRole.DRIVER, email: str = None, **kwargs) -> User:
    data = {
        "email": email or f"{role.lower()}-{next(_ids)}@example.com",
        "password_hash": hash_password(PASSWORD),
        "name": f"Test {role.title()}",
        "role": role,
        "status": UserStatus.ACTIVE,
        "approved_at": datetime.utcnow(),
        "has_subscription": False,
    }
    data.update(kwargs)
    user = User(**data)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_garage(db, email: str = "garage@example.com", **kwargs) -> User:
    data = {
        "garage_name": "Kwik MOT Centre",
        "address": "1 High Street",
        "zip_code": "SW1A 1AA",
        "latitude": 51.501,
        "longitude": -0.1416,
        "has_subscription": True,
    }
    data.update(kwargs)
    return make_user(db, UserRole.GARAGE, email=email, **data)


def make_service(db, garage: User, type: str = ServiceType.MOT, price: float = 54.85, name: str = None) -> Service:
    service = Service(garage_id=garage.id, name=name or f"{type} test", price=price, type=type)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def make_schedule(db, garage: User, **kwargs) -> Schedule:
    data = {
        "start_time": "09:00",
        "end_time": "17:00",
        "slot_duration": 60,
        "restrictions": [],
        "daily_hours": {},
        "is_active": True,
    }
    data.update(kwargs)
    schedule = Schedule(garage_id=garage.id, **data)
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return schedule


def make_vehicle(db, owner: User, registration_number: str = "AB12CDE", **kwargs) -> Vehicle:
    data = {"make": "FORD", "model": "FOCUS", "color": "BLUE", "fuel_type": "PETROL"}
    data.update(kwargs)
    vehicle = Vehicle(user_id=owner.id, registration_number=registration_number, **data)
    db.add(vehicle)
    db.commit()
    db.refresh(vehicle)
    return vehicle


def make_plan(db, name: str = "Standard", price_pence: int = 2999, **kwargs) -> SubscriptionPlan:
    data = {"currency": "GBP", "is_active": True, "trial_period_days": 14, "stripe_price_id": "price_standard"}
    data.update(kwargs)
    plan = SubscriptionPlan(name=name, price_pence=price_pence, **data)
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return plan


def make_subscription(db, garage: User, plan: SubscriptionPlan, **kwargs) -> GarageSubscription:
    now = datetime.utcnow()
    data = {
        "status": SubscriptionStatus.ACTIVE,
        "price_pence": plan.price_pence,
        "currency": plan.currency,
        "current_period_start": now - timedelta(days=5),
        "current_period_end": now + timedelta(days=25),
        "stripe_subscription_id": f"sub_{garage.id}_{plan.id}",
        "stripe_customer_id": f"cus_{garage.id}",
    }
    data.update(kwargs)
    subscription = GarageSubscription(garage_id=garage.id, plan_id=plan.id, **data)
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    return subscription
