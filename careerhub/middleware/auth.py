from fastapi import Header, HTTPException, Depends
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional
import jwt

from careerhub.config import get_settings
from careerhub.middleware.correlation import request_user_id_var
from careerhub.models.user import ROLE_ADMIN, role_name
from careerhub.utils.logger import logger


@dataclass
class TokenUser:
    """Identity carried by the bearer token: user id and role id."""
    id: int
    role_id: int

    @property
    def role(self) -> str:
        return role_name(self.role_id)

    @property
    def is_admin(self) -> bool:
        return self.role_id == ROLE_ADMIN


def create_access_token(user_id: int, role_id: int, expires_in: timedelta = timedelta(hours=24)) -> str:
    settings = get_settings()
    payload = {
        "id": user_id,
        "roleID": role_id,
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(authorization: Optional[str]) -> TokenUser:
    """
    Validate "Bearer <jwt>" and return the identity it carries.

    Raises 401 for a missing, malformed, expired or tampered token.
    """
    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
            headers={"WWW-Authenticate": "Bearer"}
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid authorization header format. Expected: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"}
        )

    settings = get_settings()
    try:
        payload = jwt.decode(parts[1], settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=401,
            detail="Token expired. Please sign in again.",
            headers={"WWW-Authenticate": "Bearer"}
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=401,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user_id = payload.get("id")
    role_id = payload.get("roleID")
    if user_id is None or role_id is None:
        raise HTTPException(status_code=401, detail="Invalid token: missing user ID or role")

    try:
        user = TokenUser(id=int(user_id), role_id=int(role_id))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid token: malformed claims")

    request_user_id_var.set(str(user.id))
    return user


async def get_current_user(authorization: Optional[str] = Header(None)) -> TokenUser:
    """
    Dependency for authenticated endpoints

    Usage:
        @router.get("/endpoint")
        async def protected_endpoint(current_user: TokenUser = Depends(get_current_user)):
            # current_user.id, current_user.role_id
    """
    return decode_token(authorization)


async def get_optional_user(authorization: Optional[str] = Header(None)) -> Optional[TokenUser]:
    """
    Optional authentication - None without a token or with an invalid one
    Use this for endpoints that work both with and without auth
    """
    if not authorization:
        return None
    try:
        return decode_token(authorization)
    except HTTPException as e:
        logger.warning(f"[Auth] Ignoring invalid token on optional-auth route: {e.detail}")
        return None


async def require_admin(current_user: TokenUser = Depends(get_current_user)) -> TokenUser:
    if not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user
