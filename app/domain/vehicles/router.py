"""Vehicle router - Driver vehicle, MOT history and garage search endpoints"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_driver
from ...database import get_db
from ...models import User
from .schemas import GarageSearchRequest, VehicleCreate, VehicleDetailResponse, VehicleResponse, VehicleUpdate
from .service import VehicleService

router = APIRouter(prefix="/vehicles", tags=["Vehicles"])


def get_vehicle_service(db: Session = Depends(get_db)) -> VehicleService:
    """Dependency injection for VehicleService"""
    return VehicleService(db)


# ============================================================================
# GARAGE SEARCH
# ============================================================================


@router.post("/search-garages")
async def search_garages(
    body: GarageSearchRequest,
    current_user: User = Depends(get_current_driver),
    service: VehicleService = Depends(get_vehicle_service),
):
    return await service.search_garages(current_user, body)


@router.get("/garages/{garage_id}/services")
async def get_garage_services(
    garage_id: int,
    current_user: User = Depends(get_current_driver),
    service: VehicleService = Depends(get_vehicle_service),
):
    return service.get_garage_services(garage_id)


# ============================================================================
# VEHICLES
# ============================================================================


@router.post("", response_model=VehicleDetailResponse, status_code=201)
async def add_vehicle(
    body: VehicleCreate,
    current_user: User = Depends(get_current_driver),
    service: VehicleService = Depends(get_vehicle_service),
):
    return await service.add_vehicle(current_user, body.registration_number)


@router.get("", response_model=list[VehicleResponse])
async def list_vehicles(
    current_user: User = Depends(get_current_driver),
    service: VehicleService = Depends(get_vehicle_service),
):
    return service.list_vehicles(current_user)


@router.get("/{vehicle_id}", response_model=VehicleDetailResponse)
async def get_vehicle(
    vehicle_id: int,
    current_user: User = Depends(get_current_driver),
    service: VehicleService = Depends(get_vehicle_service),
):
    return service.get_vehicle(current_user, vehicle_id)


@router.patch("/{vehicle_id}", response_model=VehicleResponse)
async def update_vehicle(
    vehicle_id: int,
    body: VehicleUpdate,
    current_user: User = Depends(get_current_driver),
    service: VehicleService = Depends(get_vehicle_service),
):
    return service.update_vehicle(current_user, vehicle_id, body)


@router.delete("/{vehicle_id}")
async def delete_vehicle(
    vehicle_id: int,
    current_user: User = Depends(get_current_driver),
    service: VehicleService = Depends(get_vehicle_service),
):
    return service.delete_vehicle(current_user, vehicle_id)


@router.post("/{vehicle_id}/refresh-mot")
async def refresh_mot_history(
    vehicle_id: int,
    current_user: User = Depends(get_current_driver),
    service: VehicleService = Depends(get_vehicle_service),
):
    return await service.refresh_mot_history(current_user, vehicle_id)
