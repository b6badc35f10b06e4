"""
MOT expiry reminders
Notifies drivers 15 and 7 days before a vehicle's MOT runs out
"""

import logging
from datetime import date, timedelta
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ..domain.notifications.service import NotificationService
from ..email_service import send_mot_reminder_email
from ..models import NotificationType, Vehicle

logger = logging.getLogger(__name__)

REMINDER_DAYS = (15, 7)


def mark_expired_vehicles(db: Session, today: date) -> int:
    """Flag vehicles whose MOT expiry date has passed"""
    updated = (
        db.query(Vehicle)
        .filter(Vehicle.mot_expiry_date < today, Vehicle.is_expired.is_(False))
        .update({Vehicle.is_expired: True}, synchronize_session=False)
    )
    db.commit()
    if updated:
        logger.info(f"🔄 Marked {updated} vehicles as MOT expired")
    return updated


async def send_mot_reminders(db: Session, today: Optional[date] = None) -> dict:
    """
    Send in-app and email reminders for MOTs expiring in exactly 15 or 7 days.
    Should be run once a day.

    Returns:
        dict: Summary of reminders sent and failures
    """
    today = today or date.today()
    notifications = NotificationService(db)
    summary = {"sent": 0, "failed": 0, "expired_marked": 0}

    for days in REMINDER_DAYS:
        expiry = today + timedelta(days=days)
        vehicles = (
            db.query(Vehicle)
            .options(joinedload(Vehicle.owner))
            .filter(Vehicle.mot_expiry_date == expiry)
            .all()
        )

        for vehicle in vehicles:
            owner = vehicle.owner
            if not owner:
                continue
            try:
                name = " ".join(filter(None, [vehicle.make, vehicle.model])) or "vehicle"
                notifications.create(
                    owner.id,
                    NotificationType.MOT_EXPIRY_REMINDER,
                    f"Your {name} ({vehicle.registration_number}) has an MOT expiring in {days} days.",
                    entity_id=str(vehicle.id),
                )
                await send_mot_reminder_email(
                    owner.email,
                    owner.name or owner.email,
                    vehicle.registration_number,
                    expiry.strftime("%d %B %Y"),
                    days,
                )
                summary["sent"] += 1
                logger.info(f"✅ MOT reminder ({days} days) sent to {owner.email} for {vehicle.registration_number}")
            except Exception as e:
                db.rollback()
                summary["failed"] += 1
                logger.error(f"❌ Failed MOT reminder ({days} days) for vehicle {vehicle.registration_number}: {e}")

    summary["expired_marked"] = mark_expired_vehicles(db, today)
    return summary
