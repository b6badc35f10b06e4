"""Vehicle repository - Database operations for vehicles, MOT reports and garage search"""

from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ...models import MotDefect, MotReport, Service, User, UserRole, UserStatus, Vehicle


class VehicleRepository:
    """Repository for vehicle database operations"""

    @staticmethod
    def get_by_registration(db: Session, registration: str) -> Optional[Vehicle]:
        return db.query(Vehicle).filter(Vehicle.registration_number == registration).first()

    @staticmethod
    def get_user_vehicle(db: Session, user_id: int, vehicle_id: int, with_reports: bool = False) -> Optional[Vehicle]:
        query = db.query(Vehicle)
        if with_reports:
            query = query.options(joinedload(Vehicle.mot_reports).joinedload(MotReport.defects))
        return query.filter(Vehicle.id == vehicle_id, Vehicle.user_id == user_id).first()

    @staticmethod
    def list_user_vehicles(db: Session, user_id: int) -> list[Vehicle]:
        return (
            db.query(Vehicle)
            .filter(Vehicle.user_id == user_id)
            .order_by(Vehicle.created_at.desc(), Vehicle.id.desc())
            .all()
        )

    @staticmethod
    def get_owner(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def add_vehicle(db: Session, **data) -> Vehicle:
        vehicle = Vehicle(**data)
        db.add(vehicle)
        db.flush()
        return vehicle

    @staticmethod
    def existing_test_numbers(db: Session, vehicle_id: int) -> set[str]:
        rows = db.query(MotReport.test_number).filter(MotReport.vehicle_id == vehicle_id).all()
        return {row[0] for row in rows if row[0]}

    @staticmethod
    def add_mot_report(db: Session, vehicle_id: int, defects: list[dict], **data) -> MotReport:
        report = MotReport(vehicle_id=vehicle_id, **data)
        db.add(report)
        db.flush()
        for defect in defects:
            db.add(MotDefect(report_id=report.id, **defect))
        return report

    @staticmethod
    def delete_vehicle(db: Session, vehicle: Vehicle) -> None:
        db.delete(vehicle)
        db.commit()

    @staticmethod
    def visible_garages(db: Session) -> list[User]:
        """Garages drivers may book: approved, active, subscribed and geocoded"""
        return (
            db.query(User)
            .options(joinedload(User.services))
            .filter(
                User.role == UserRole.GARAGE,
                User.status == UserStatus.ACTIVE,
                User.approved_at.isnot(None),
                User.has_subscription.is_(True),
                User.latitude.isnot(None),
                User.longitude.isnot(None),
            )
            .all()
        )

    @staticmethod
    def get_visible_garage(db: Session, garage_id: int) -> Optional[User]:
        return (
            db.query(User)
            .filter(
                User.id == garage_id,
                User.role == UserRole.GARAGE,
                User.status == UserStatus.ACTIVE,
                User.approved_at.isnot(None),
                User.has_subscription.is_(True),
            )
            .first()
        )

    @staticmethod
    def garage_services(db: Session, garage_id: int) -> list[Service]:
        return db.query(Service).filter(Service.garage_id == garage_id).order_by(Service.type, Service.name).all()
