import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import User, UserRole, UserStatus
from .security_utils import decode_access_token

logger = logging.getLogger(__name__)

security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Resolve the user behind the bearer token"""
    token = credentials.credentials

    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received, length: {len(token)}")
        raise HTTPException(status_code=401, detail="Invalid token format. Expected a valid JWT token.")

    payload = decode_access_token(token)
    if not payload:
        raise HTTPException(
            status_code=401,
            detail="Token has expired or is invalid. Please sign in again.",
            headers={"X-Token-Expired": "true"},
        )

    user_id = payload.get("sub")
    if not user_id:
        logger.error(f"❌ Token missing user ID claim. Available claims: {list(payload.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    user = db.query(User).filter(User.id == int(user_id)).first()
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if user.status == UserStatus.BANNED:
        logger.warning(f"⚠️ Banned user {user.id} attempted access")
        raise HTTPException(status_code=403, detail="Account not approved or banned")

    return user


def require_roles(*roles: str):
    """Dependency factory restricting an endpoint to the given roles"""

    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            logger.warning(
                f"⚠️ User {current_user.id} with role {current_user.role} denied (requires {roles})"
            )
            raise HTTPException(status_code=403, detail="You do not have permission to access this resource")
        return current_user

    return dependency


get_current_admin = require_roles(UserRole.ADMIN)
get_current_driver = require_roles(UserRole.DRIVER)
_garage_role = require_roles(UserRole.GARAGE)


async def get_current_garage(current_user: User = Depends(_garage_role)) -> User:
    """Garage endpoints additionally require admin approval"""
    if not current_user.approved_at:
        raise HTTPException(status_code=403, detail="Garage account is awaiting admin approval")
    return current_user
