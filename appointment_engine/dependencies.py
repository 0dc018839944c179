"""FastAPI dependencies."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from appointment_engine.config import settings
from appointment_engine.core.clock import Clock, SystemClock
from appointment_engine.core.redis_client import CacheManager, get_redis_client
from appointment_engine.core.security import decode_access_token
from appointment_engine.database import get_db
from appointment_engine.schemas.auth import Caller, CallerRole

# Security
security = HTTPBearer(auto_error=False)

_system_clock = SystemClock()


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_caller(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Caller:
    """
    Extract and validate the caller identity from a JWT token.

    Args:
        credentials: Bearer token credentials

    Returns:
        Caller with id, role and (for staff) clinic

    Raises:
        HTTPException: If the token is missing, invalid or expired
    """
    if credentials is None:
        raise _credentials_error("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _credentials_error()

    subject = payload.get("sub")
    role = payload.get("role")
    if not isinstance(subject, str) or role not in {r.value for r in CallerRole}:
        raise _credentials_error()

    try:
        caller_id = UUID(subject)
        clinic_id = UUID(payload["clinic_id"]) if payload.get("clinic_id") else None
    except (TypeError, ValueError):
        raise _credentials_error("Invalid identifier format")

    if role == CallerRole.STAFF.value and clinic_id is None:
        raise _credentials_error("Staff token without clinic")

    return Caller(id=caller_id, role=CallerRole(role), clinic_id=clinic_id)


def get_cache_manager() -> CacheManager | None:
    """Slot cache, or None when caching is disabled."""
    if not settings.cache_enabled:
        return None
    return CacheManager(get_redis_client())


def get_clock() -> Clock:
    """Time source for request handling."""
    return _system_clock


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentCaller = Annotated[Caller, Depends(get_current_caller)]
CacheManagerDep = Annotated[CacheManager | None, Depends(get_cache_manager)]
ClockDep = Annotated[Clock, Depends(get_clock)]
