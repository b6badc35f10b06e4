"""Auth service - Registration, login and account management"""

import logging
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...email_service import send_welcome_email
from ...models import NotificationType, User, UserRole, UserStatus
from ...security_utils import create_access_token, hash_password, verify_password
from ...services.geocoding import get_lat_lng
from ..billing.stripe_service import stripe_service
from ..notifications.service import NotificationService
from .repository import AuthRepository
from .schemas import ChangePasswordRequest, LoginRequest, RegisterRequest, UserResponse

logger = logging.getLogger(__name__)


class AuthService:
    """Service for account operations"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AuthRepository()

    def _token_response(self, user: User) -> dict:
        token = create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})
        return {
            "access_token": token,
            "token_type": "bearer",
            "user": UserResponse.model_validate(user),
        }

    async def register(self, request: RegisterRequest) -> dict:
        """
        Create a driver or garage account.

        Drivers are approved straight away. Garages stay unapproved until an
        admin signs them off, and are geocoded from their postcode so they can
        appear in distance searches once approved.
        """
        if self.repo.get_by_email(self.db, request.email):
            raise HTTPException(status_code=409, detail="Email already registered")

        is_garage = request.role == UserRole.GARAGE
        if is_garage and not request.garage_name:
            raise HTTPException(status_code=400, detail="garage_name is required for garage accounts")

        data = request.model_dump(exclude={"password"})
        data["password_hash"] = hash_password(request.password)
        data["status"] = UserStatus.ACTIVE
        data["approved_at"] = None if is_garage else datetime.utcnow()

        if is_garage and request.zip_code:
            try:
                location = await get_lat_lng(self.db, request.zip_code)
                data["latitude"] = location["latitude"]
                data["longitude"] = location["longitude"]
            except HTTPException as e:
                logger.warning(f"⚠️ Could not geocode {request.zip_code} for new garage: {e.detail}")

        try:
            user = self.repo.create_user(self.db, **data)
        except IntegrityError as e:
            self.db.rollback()
            raise HTTPException(status_code=409, detail="Email already registered") from e

        logger.info(f"✅ Registered {user.role} account {user.id} ({user.email})")

        if stripe_service.is_available():
            try:
                user.billing_id = await stripe_service.create_customer(
                    user.email, user.garage_name or user.name, {"user_id": str(user.id)}
                )
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.error(f"❌ Failed to create Stripe customer for user {user.id}: {e}")

        if is_garage:
            NotificationService(self.db).send_to_all_admins(
                NotificationType.SYSTEM,
                f"New garage awaiting approval: {user.garage_name} ({user.email})",
                entity_id=str(user.id),
            )

        try:
            await send_welcome_email(user.email, user.garage_name or user.name or user.email, is_garage=is_garage)
        except Exception as e:
            logger.error(f"❌ Failed to send welcome email to {user.email}: {e}")

        return self._token_response(user)

    def login(self, request: LoginRequest) -> dict:
        user = self.repo.get_by_email(self.db, request.email)
        if not user or not verify_password(request.password, user.password_hash):
            logger.warning(f"⚠️ Failed login for {request.email}")
            raise HTTPException(status_code=401, detail="Invalid credentials")

        if not user.approved_at or user.status == UserStatus.BANNED:
            raise HTTPException(status_code=403, detail="Account not approved or banned")

        logger.info(f"🔑 User {user.id} logged in")
        return self._token_response(user)

    def change_password(self, user: User, request: ChangePasswordRequest) -> dict:
        if not verify_password(request.old_password, user.password_hash):
            raise HTTPException(status_code=400, detail="Current password is incorrect")
        user.password_hash = hash_password(request.new_password)
        self.db.commit()
        logger.info(f"🔑 Password changed for user {user.id}")
        return {"success": True, "message": "Password updated successfully"}
