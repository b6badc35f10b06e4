"""Admin router - Platform management endpoints (ADMIN role only)"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_admin
from ...database import get_db
from ...models import User
from ..billing.plan_service import PlanService
from ..billing.schemas import PlanCreate, PlanUpdate
from ..billing.status_service import SubscriptionStatusService
from ..billing.subscription_service import serialize_plan
from ..billing.visibility_service import SubscriptionVisibilityService
from .schemas import AdminUserResponse, BroadcastRequest
from .service import AdminService

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(get_current_admin)])


def get_admin_service(db: Session = Depends(get_db)) -> AdminService:
    """Dependency injection for AdminService"""
    return AdminService(db)


def get_plan_service(db: Session = Depends(get_db)) -> PlanService:
    return PlanService(db)


# ============================================================================
# DASHBOARD
# ============================================================================


@router.get("/dashboard")
async def get_dashboard(service: AdminService = Depends(get_admin_service)):
    return service.get_dashboard_stats()


# ============================================================================
# USERS
# ============================================================================


@router.get("/users")
async def list_users(
    role: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: AdminService = Depends(get_admin_service),
):
    return service.list_users(role, status, search, page, limit)


@router.get("/users/{user_id}", response_model=AdminUserResponse)
async def get_user(user_id: int, service: AdminService = Depends(get_admin_service)):
    return service.get_user(user_id)


@router.patch("/users/{user_id}/approve", response_model=AdminUserResponse)
async def approve_garage(
    user_id: int,
    current_user: User = Depends(get_current_admin),
    service: AdminService = Depends(get_admin_service),
):
    return await service.approve_garage(user_id, current_user)


@router.patch("/users/{user_id}/ban", response_model=AdminUserResponse)
async def ban_user(
    user_id: int,
    current_user: User = Depends(get_current_admin),
    service: AdminService = Depends(get_admin_service),
):
    return service.ban_user(user_id, current_user)


@router.patch("/users/{user_id}/unban", response_model=AdminUserResponse)
async def unban_user(
    user_id: int,
    current_user: User = Depends(get_current_admin),
    service: AdminService = Depends(get_admin_service),
):
    return service.unban_user(user_id, current_user)


# ============================================================================
# BOOKINGS
# ============================================================================


@router.get("/bookings")
async def list_bookings(
    status: Optional[str] = None,
    garage_id: Optional[int] = None,
    driver_id: Optional[int] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: AdminService = Depends(get_admin_service),
):
    return service.list_bookings(status, garage_id, driver_id, page, limit)


@router.get("/bookings/{order_id}")
async def get_booking(order_id: int, service: AdminService = Depends(get_admin_service)):
    return service.get_booking(order_id)


# ============================================================================
# SUBSCRIPTION PLANS
# ============================================================================


@router.get("/plans")
async def list_plans(
    include_inactive: bool = True,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: PlanService = Depends(get_plan_service),
):
    return service.list_plans(page, limit, include_inactive)


@router.get("/plans/{plan_id}")
async def get_plan(plan_id: int, service: PlanService = Depends(get_plan_service)):
    return serialize_plan(service.get_plan(plan_id))


@router.post("/plans", status_code=201)
async def create_plan(body: PlanCreate, service: PlanService = Depends(get_plan_service)):
    return await service.create_plan(body)


@router.patch("/plans/{plan_id}")
async def update_plan(plan_id: int, body: PlanUpdate, service: PlanService = Depends(get_plan_service)):
    return await service.update_plan(plan_id, body)


@router.delete("/plans/{plan_id}")
async def deactivate_plan(plan_id: int, service: PlanService = Depends(get_plan_service)):
    return service.deactivate_plan(plan_id)


# ============================================================================
# GARAGE SUBSCRIPTIONS
# ============================================================================


@router.get("/subscriptions")
async def list_garage_subscriptions(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: AdminService = Depends(get_admin_service),
):
    return service.list_garage_subscriptions(status, page, limit)


@router.get("/subscriptions/health")
async def get_subscription_health(db: Session = Depends(get_db)):
    return SubscriptionStatusService(db).get_subscription_health_summary()


@router.get("/subscriptions/visibility")
async def check_visibility(db: Session = Depends(get_db)):
    return SubscriptionVisibilityService(db).validate_consistency()


@router.post("/subscriptions/visibility/fix")
async def fix_visibility(db: Session = Depends(get_db)):
    return SubscriptionVisibilityService(db).fix_inconsistencies()


# ============================================================================
# NOTIFICATIONS
# ============================================================================


@router.post("/notifications/broadcast")
async def broadcast(
    body: BroadcastRequest,
    current_user: User = Depends(get_current_admin),
    service: AdminService = Depends(get_admin_service),
):
    return service.broadcast(body.text, current_user, body.role)
