# auth.py — Bearer authentication and permission guards for FastAPI routes
# Features:
# - Process-wide TokenService built from config (HMAC-signed access/refresh pairs)
# - Access-token validation with revocation and token-type checks
# - Active-user enforcement on every authenticated request
# - Permission guards driven by the role permission table

import logging
from datetime import timedelta
from typing import List

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from todolist import config
from todolist.database import get_db_session
from todolist.errors import ForbiddenError, RecordNotFoundError, TokenError, UnauthorisedError
from todolist.repositories.sql import SqlUserRepository
from todolist.tokens import RevocationStore, TokenService
from todolist.valueobjects import ALL_PERMISSIONS

logger = logging.getLogger("todolist.auth")

# ============================================================
# CONFIGURATION
# ============================================================

security = HTTPBearer(auto_error=False)

token_service = TokenService(
    secret_key=config.JWT_SECRET_KEY,
    access_ttl=timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
    refresh_ttl=timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS),
    algorithm=config.JWT_ALGORITHM,
    leeway=config.TOKEN_LEEWAY_SECONDS,
    revocations=RevocationStore(),
    revoke_refresh_on_rotation=config.REVOKE_REFRESH_ON_ROTATION,
)


def get_token_service() -> TokenService:
    return token_service


# ============================================================
# CURRENT USER
# ============================================================

class CurrentUser(BaseModel):
    id: int
    person_id: int
    username: str
    role: str
    status: str
    permissions: List[str] = []
    token: str
    token_id: str


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db_session),
    tokens: TokenService = Depends(get_token_service),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise UnauthorisedError("UNAUTHENTICATED", "missing bearer token")

    result = tokens.validate_access_token(credentials.credentials)

    try:
        user = await SqlUserRepository(db).find_by_id(result.user_id)
    except RecordNotFoundError:
        raise TokenError("INVALID_TOKEN", "token subject no longer exists") from None

    if not user.is_active:
        raise UnauthorisedError("USER_NOT_ACTIVE")

    return CurrentUser(
        id=user.id,
        person_id=user.person_id,
        username=user.username,
        role=user.role.value,
        status=user.status.value,
        permissions=sorted(p for p in ALL_PERMISSIONS if user.has_permission(p)),
        token=credentials.credentials,
        token_id=result.metadata.token_id,
    )


def require_permission(*scopes: str):
    """Dependency factory: require the user to hold every listed permission"""
    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        for scope in scopes:
            if scope not in user.permissions:
                logger.warning(f"User {user.id} denied {scope}")
                raise ForbiddenError("PERMISSION_DENIED", f"Missing required permission: {scope}")
        return user
    return _check
