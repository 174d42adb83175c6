"""FastAPI authentication dependencies."""

from __future__ import annotations

import jwt
from fastapi import Depends, Header, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from pglms.auth.jwt import verify_token
from pglms.auth.service_keys import verify_service_key
from pglms.config import get_settings
from pglms.database import get_session
from pglms.db.models import ADMIN_ROLES, User

_bearer = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Security(_bearer),
    db: AsyncSession = Depends(get_session),
) -> User:
    """
    Extract and verify JWT, return User model.

    Raises 401 for a bad token or unknown user, 403 for accounts that are
    not approved.
    """
    try:
        payload = verify_token(credentials.credentials, expected_type="access")
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError) as e:
        raise HTTPException(status_code=401, detail=str(e) or "Invalid token") from e

    user = await db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="User not found")
    if user.status != "APPROVED":
        raise HTTPException(status_code=403, detail="Account is not approved")
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    """Same as get_current_user but restricted to ADMIN and SUPER_ADMIN."""
    if user.role not in ADMIN_ROLES:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


async def require_service_key(
    x_service_key: str | None = Header(None, alias="X-Service-Key"),
) -> None:
    """Authenticate a trusted internal service calling the award endpoints."""
    if not verify_service_key(x_service_key or "", get_settings().service_api_key_hash):
        raise HTTPException(status_code=401, detail="Invalid service key")
