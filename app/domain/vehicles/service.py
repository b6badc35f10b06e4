"""Vehicle service - Driver vehicles, MOT history and garage search"""

import logging
from datetime import date, datetime, timezone
from typing import Optional

from dateutil import parser as date_parser
from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import ServiceType, User, Vehicle
from ...services.geocoding import get_lat_lng, haversine_miles
from .dvla_service import dvla_service
from .repository import VehicleRepository
from .schemas import GarageSearchRequest, VehicleUpdate

logger = logging.getLogger(__name__)


def parse_api_datetime(value) -> Optional[datetime]:
    """Parse DVLA/DVSA date strings ("2024-09-11", "2023.09.12 10:55:00", ISO with Z) to naive UTC"""
    if not value:
        return None
    try:
        parsed = date_parser.parse(str(value))
    except (ValueError, OverflowError):
        logger.warning(f"⚠️ Unparseable date from vehicle API: {value}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_api_date(value) -> Optional[date]:
    parsed = parse_api_datetime(value)
    return parsed.date() if parsed else None


def _to_int(value) -> Optional[int]:
    try:
        return int(value) if value not in (None, "") else None
    except (TypeError, ValueError):
        return None


def mot_tests(mot_data: Optional[dict]) -> list[dict]:
    if not mot_data:
        return []
    return mot_data.get("motTests") or []


def parse_mot_test(test: dict) -> tuple[dict, list[dict]]:
    """Map one DVSA MOT test to MotReport columns plus its defects"""
    report = {
        "test_number": test.get("motTestNumber"),
        "test_date": parse_api_datetime(test.get("completedDate")),
        "expiry_date": parse_api_date(test.get("expiryDate")),
        "status": test.get("testResult") or test.get("motTestResult"),
        "odometer_value": _to_int(test.get("odometerValue")),
        "odometer_unit": test.get("odometerUnit"),
        "odometer_result": test.get("odometerResultType"),
    }
    raw_defects = test.get("defects") or test.get("rfrAndComments") or []
    defects = [
        {"type": d.get("type"), "text": d.get("text"), "dangerous": bool(d.get("dangerous"))} for d in raw_defects
    ]
    return report, defects


def latest_mot_expiry(mot_data: Optional[dict]) -> Optional[date]:
    expiries = [parse_api_date(t.get("expiryDate")) for t in mot_tests(mot_data)]
    expiries = [e for e in expiries if e]
    return max(expiries) if expiries else None


def merge_vehicle_fields(registration: str, dvla: Optional[dict], mot: Optional[dict], today: date) -> dict:
    """Vehicle columns from both registries; MOT history wins where both have a value"""
    dvla = dvla or {}
    mot = mot or {}

    manufacture = parse_api_date(mot.get("manufactureDate"))
    mot_expiry = latest_mot_expiry(mot) or parse_api_date(dvla.get("motExpiryDate"))

    return {
        "registration_number": registration,
        "make": mot.get("make") or dvla.get("make"),
        "model": mot.get("model"),
        "color": mot.get("primaryColour") or dvla.get("colour"),
        "fuel_type": mot.get("fuelType") or dvla.get("fuelType"),
        "year_of_manufacture": (manufacture.year if manufacture else None) or _to_int(dvla.get("yearOfManufacture")),
        "engine_capacity": _to_int(mot.get("engineSize")) or _to_int(dvla.get("engineCapacity")),
        "co2_emissions": _to_int(dvla.get("co2Emissions")),
        "mot_expiry_date": mot_expiry,
        "is_expired": bool(mot_expiry and mot_expiry < today),
        "dvla_data": dvla or None,
        "mot_data": mot or None,
    }


def serialize_garage_result(garage: User, distance: float) -> dict:
    prices = {s.type: s for s in garage.services}
    mot = prices.get(ServiceType.MOT)
    retest = prices.get(ServiceType.RETEST)
    return {
        "id": garage.id,
        "garage_name": garage.garage_name or "Unnamed Garage",
        "address": garage.address,
        "postcode": garage.zip_code,
        "vts_number": garage.vts_number,
        "primary_contact": garage.primary_contact,
        "phone_number": garage.phone_number,
        "distance_miles": round(distance, 2),
        "mot_price": mot.price if mot else None,
        "retest_price": retest.price if retest else None,
    }


class VehicleService:
    """Service for driver vehicles"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = VehicleRepository()

    def _check_not_registered(self, driver: User, registration: str) -> None:
        existing = self.repo.get_by_registration(self.db, registration)
        if not existing:
            return
        if existing.user_id == driver.id:
            raise HTTPException(
                status_code=409, detail=f"Vehicle with registration {registration} already exists for this user"
            )
        logger.warning(f"⚠️ Vehicle {registration} already registered by user {existing.user_id}")
        raise HTTPException(
            status_code=409,
            detail=f"Vehicle with registration {registration} is already registered by another user. "
            "Each vehicle registration number can only be associated with one account.",
        )

    def _create_vehicle(self, driver: User, registration: str, vehicle_data: dict) -> Vehicle:
        fields = merge_vehicle_fields(
            registration, vehicle_data.get("dvla_data"), vehicle_data.get("mot_data"), date.today()
        )
        try:
            vehicle = self.repo.add_vehicle(self.db, user_id=driver.id, **fields)
            for test in mot_tests(vehicle_data.get("mot_data")):
                report, defects = parse_mot_test(test)
                self.repo.add_mot_report(self.db, vehicle.id, defects, **report)
            self.db.commit()
            self.db.refresh(vehicle)
            return vehicle
        except IntegrityError as e:
            self.db.rollback()
            existing = self.repo.get_by_registration(self.db, registration)
            if existing and existing.user_id == driver.id:
                logger.info(f"🔄 Vehicle {registration} was added concurrently for user {driver.id}")
                return existing
            raise HTTPException(
                status_code=409,
                detail=f"Vehicle with registration {registration} is already registered by another user. "
                "Each vehicle registration number can only be associated with one account.",
            ) from e

    async def add_vehicle(self, driver: User, registration: str) -> Vehicle:
        registration = dvla_service.validate_registration_number(registration)
        self._check_not_registered(driver, registration)

        vehicle_data = await dvla_service.get_complete_vehicle_data(registration)
        vehicle = self._create_vehicle(driver, registration, vehicle_data)
        logger.info(f"🚗 Added vehicle {registration} for user {driver.id}")
        return vehicle

    def list_vehicles(self, driver: User) -> list[Vehicle]:
        return self.repo.list_user_vehicles(self.db, driver.id)

    def get_vehicle(self, driver: User, vehicle_id: int) -> Vehicle:
        vehicle = self.repo.get_user_vehicle(self.db, driver.id, vehicle_id, with_reports=True)
        if not vehicle:
            raise HTTPException(status_code=404, detail="Vehicle not found")
        return vehicle

    def update_vehicle(self, driver: User, vehicle_id: int, request: VehicleUpdate) -> Vehicle:
        vehicle = self.get_vehicle(driver, vehicle_id)
        for field, value in request.model_dump(exclude_unset=True).items():
            setattr(vehicle, field, value)
        self.db.commit()
        self.db.refresh(vehicle)
        return vehicle

    def delete_vehicle(self, driver: User, vehicle_id: int) -> dict:
        vehicle = self.get_vehicle(driver, vehicle_id)
        registration = vehicle.registration_number
        self.repo.delete_vehicle(self.db, vehicle)
        logger.info(f"🗑️ Deleted vehicle {registration} for user {driver.id}")
        return {"success": True, "message": "Vehicle deleted successfully"}

    async def refresh_mot_history(self, driver: User, vehicle_id: int) -> dict:
        vehicle = self.get_vehicle(driver, vehicle_id)
        mot_data = await dvla_service.get_mot_history(vehicle.registration_number)

        tests = mot_tests(mot_data)
        if not tests:
            return {"success": True, "message": "No MOT history found", "data": {"new_records": 0}}

        known = self.repo.existing_test_numbers(self.db, vehicle.id)
        new_tests = [t for t in tests if t.get("motTestNumber") not in known]

        for test in new_tests:
            report, defects = parse_mot_test(test)
            self.repo.add_mot_report(self.db, vehicle.id, defects, **report)

        latest_expiry = latest_mot_expiry(mot_data)
        if latest_expiry:
            vehicle.mot_expiry_date = latest_expiry
            vehicle.is_expired = latest_expiry < date.today()
        vehicle.mot_data = mot_data
        self.db.commit()

        if not new_tests:
            message = "MOT history is already up to date"
        else:
            message = f"Successfully added {len(new_tests)} new MOT records"
        logger.info(f"🔄 Refreshed MOT history for {vehicle.registration_number}: {len(new_tests)} new")
        return {
            "success": True,
            "message": message,
            "data": {
                "new_records": len(new_tests),
                "latest_expiry": latest_expiry.isoformat() if latest_expiry else None,
            },
        }

    # ========================================================================
    # GARAGE SEARCH
    # ========================================================================

    async def search_garages(self, driver: User, request: GarageSearchRequest) -> dict:
        """Garages near a postcode, nearest first, for a vehicle the driver owns"""
        registration = dvla_service.validate_registration_number(request.registration_number)

        vehicle = self.repo.get_by_registration(self.db, registration)
        if vehicle and vehicle.user_id != driver.id:
            raise HTTPException(
                status_code=409,
                detail=f"Vehicle with registration {registration} is already registered by another user",
            )
        if not vehicle:
            vehicle_data = await dvla_service.get_complete_vehicle_data(registration)
            vehicle = self._create_vehicle(driver, registration, vehicle_data)
            logger.info(f"🚗 Added vehicle {registration} for user {driver.id} during garage search")

        origin = await get_lat_lng(self.db, request.postcode)

        results = []
        for garage in self.repo.visible_garages(self.db):
            distance = haversine_miles(origin["latitude"], origin["longitude"], garage.latitude, garage.longitude)
            if request.radius_miles is not None and distance > request.radius_miles:
                continue
            results.append(serialize_garage_result(garage, distance))
        results.sort(key=lambda g: g["distance_miles"])

        return {
            "vehicle": {
                "id": vehicle.id,
                "registration_number": vehicle.registration_number,
                "make": vehicle.make,
                "model": vehicle.model,
                "mot_expiry_date": vehicle.mot_expiry_date,
            },
            "search_postcode": origin["postcode"],
            "garages": results,
            "total": len(results),
        }

    def get_garage_services(self, garage_id: int) -> dict:
        garage = self.repo.get_visible_garage(self.db, garage_id)
        if not garage:
            raise HTTPException(status_code=404, detail="Garage not found or inactive")

        services = self.repo.garage_services(self.db, garage_id)
        return {
            "garage": {
                "id": garage.id,
                "garage_name": garage.garage_name,
                "address": garage.address,
                "zip_code": garage.zip_code,
                "vts_number": garage.vts_number,
                "primary_contact": garage.primary_contact,
                "phone_number": garage.phone_number,
            },
            "services": [
                {"id": s.id, "name": s.name, "type": s.type, "price": s.price}
                for s in services
                if s.type in (ServiceType.MOT, ServiceType.RETEST)
            ],
            "additionals": [
                {"id": s.id, "name": s.name, "type": s.type} for s in services if s.type == ServiceType.ADDITIONAL
            ],
        }
