"""FastAPI dependency injection providers.

Usage in routers:
    async def endpoint(db: DB, staff: StaffUser):
        ...
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from consentlink.config import settings
from consentlink.db.session import async_session_factory
from consentlink.exceptions import AuthorizationError
from consentlink.services.storage import LocalDocumentStore, document_store

# --- Database ---

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# --- Redis ---

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Provide a Redis connection from the pool."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_pool


# --- Storage ---

def get_document_store() -> LocalDocumentStore:
    return document_store


# --- Auth ---

security = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"


def _decode_token(token: str) -> dict:
    """Decode and validate a JWT token."""
    try:
        payload = jwt.decode(token, settings.APP_SECRET_KEY, algorithms=[ALGORITHM])
        return payload
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Extract and validate the current user from JWT bearer token.

    Returns:
        dict with sub (user id), role, email.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return _decode_token(credentials.credentials)


async def get_staff_user(user: dict = Depends(get_current_user)) -> dict:
    """Like get_current_user but also requires a staff role (admin, recruiter)."""
    if user.get("role") not in settings.staff_roles:
        raise AuthorizationError("Insufficient permissions")
    if not user.get("sub"):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


# --- Request metadata ---

def client_ip(request: Request) -> str:
    """Best-effort client IP for the consent audit trail (proxy headers first)."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()
    if request.client:
        return request.client.host
    return "unknown"


# Type aliases for cleaner router signatures
DB = Annotated[AsyncSession, Depends(get_db)]
Redis = Annotated[aioredis.Redis, Depends(get_redis)]
Store = Annotated[LocalDocumentStore, Depends(get_document_store)]
CurrentUser = Annotated[dict, Depends(get_current_user)]
StaffUser = Annotated[dict, Depends(get_staff_user)]
ClientIP = Annotated[str, Depends(client_ip)]
