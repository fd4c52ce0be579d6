"""
Authentication and Authorization Module

FastAPI dependencies for JWT validation and role-based access control.

SECURITY NOTE:
- Development mode test tokens are ONLY accepted when PYTHON_ENV=development
- Production and staging must never set PYTHON_ENV=development
- Revoked (logged out) tokens are rejected on every request
"""

import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from rtb_assets.core.config import settings
from rtb_assets.core.security import decode_token
from rtb_assets.core.token_blacklist import is_token_blacklisted

logger = logging.getLogger(__name__)

security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)

ROLE_ADMIN = "admin"
ROLE_RTB_STAFF = "rtb-staff"
ROLE_SCHOOL = "school"
ROLE_TECHNICIAN = "technician"


@dataclass
class CurrentUser:
    """
    The authenticated caller, populated from JWT claims.

    Attributes:
        id: User's integer ID
        email: User's email address
        role: One of admin, rtb-staff, school, technician
        name: Display name (optional)
        token: The raw bearer token, kept so logout can revoke it
    """

    id: int
    email: str
    role: str
    name: str | None = None
    token: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def __str__(self) -> str:
        return f"CurrentUser(id={self.id}, email={self.email}, role={self.role})"


def _is_dev_mode_safe() -> bool:
    """
    Development test tokens require PYTHON_ENV=development in both the
    settings and the raw environment, and never production or staging.
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var not in ("production", "staging")
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

_DEV_ADMIN = CurrentUser(
    id=1,
    email="admin@rtb-assets.dev",
    role=ROLE_ADMIN,
    name="Development Admin",
)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _validate_jwt_token(token: str) -> CurrentUser:
    """
    Validate a bearer token and build the CurrentUser from its claims.

    Raises:
        HTTPException 401: If the token is revoked, invalid, expired, not an
            access token or missing required claims
    """
    if _DEVELOPMENT_MODE and token in ("dev-token", "test-token"):
        logger.debug("Development mode: Using test token")
        return CurrentUser(**{**_DEV_ADMIN.__dict__, "token": token})

    if await is_token_blacklisted(token):
        logger.warning("Rejected revoked token")
        raise _unauthorized("TOKEN_REVOKED", "This token has been revoked. Please log in again.")

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    token_type = payload.get("type", "access")
    if token_type != "access":
        logger.warning(f"Invalid token type: {token_type}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e

    return CurrentUser(
        id=user_id,
        email=payload.get("email", ""),
        role=payload.get("role", ""),
        name=payload.get("name"),
        token=token,
    )


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """
    FastAPI dependency that returns the authenticated user.

    Usage:
        @router.get("/me")
        async def me(user: CurrentUser = Depends(get_current_user)):
            ...
    """
    user = await _validate_jwt_token(credentials.credentials)
    logger.debug(f"Authenticated user: {user.id} ({user.email})")
    return user


def require_roles(*roles: str) -> Callable[..., Awaitable[CurrentUser]]:
    """
    Build a dependency that admits only the given roles.

    Admins always pass.

    Usage:
        @router.post("/devices")
        async def create(user: CurrentUser = Depends(require_roles("rtb-staff"))):
            ...
    """
    allowed = set(roles)

    async def dependency(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.is_admin or user.role in allowed:
            return user

        logger.warning(
            f"Access denied: User {user.id} ({user.email}) has role '{user.role}', "
            f"requires one of {sorted(allowed)}"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "INSUFFICIENT_ROLE",
                "message": "You do not have permission to perform this action.",
            },
        )

    return dependency


require_admin = require_roles(ROLE_ADMIN)
require_staff = require_roles(ROLE_RTB_STAFF)


__all__ = [
    "ROLE_ADMIN",
    "ROLE_RTB_STAFF",
    "ROLE_SCHOOL",
    "ROLE_TECHNICIAN",
    "CurrentUser",
    "get_current_user",
    "require_admin",
    "require_roles",
    "require_staff",
]
