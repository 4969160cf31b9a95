"""
Common Dependencies
===================

Shared dependencies used across the application.
"""

import logging
from datetime import datetime, timezone
from typing import Annotated, Any, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.errors import ErrorCodes
from app.core.security import decode_identity_provider_token, decode_token
from app.db.session import get_db
from app.models.user import Profile
from app.services.auth_service import AuthService
from app.services.cache import CacheKeys, CacheManager

logger = logging.getLogger(__name__)

# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]

# Security scheme for JWT authentication
security = HTTPBearer(auto_error=False)

# Development test user (consistent id for testing)
DEV_USER_ID = "00000000-0000-0000-0000-000000000001"
DEV_USER_EMAIL = "dev@test.local"


# =============================================================================
# Profile Auth Cache Helpers
# =============================================================================

def _serialize_user_for_cache(user: Profile) -> dict:
    """Serialize a Profile to a JSON-safe dict."""
    return {
        "id": user.id,
        "email": user.email,
        "full_name": user.full_name,
        "last_login": user.last_login.isoformat() if user.last_login else None,
        "created_at": user.created_at.isoformat() if getattr(user, "created_at", None) else None,
    }


def _parse_dt(value: str | None) -> datetime | None:
    """Parse an ISO datetime string, returning None on missing input."""
    if not value:
        return None
    return datetime.fromisoformat(value)


def _build_user_from_cache(data: dict) -> Profile:
    """
    Reconstruct a *transient* (session-free) Profile from a cached dict.

    The returned object is not attached to any session; endpoints that
    modify the profile load it from the database first.
    """
    return Profile(
        id=data["id"],
        email=data["email"],
        full_name=data.get("full_name"),
        last_login=_parse_dt(data.get("last_login")),
        created_at=_parse_dt(data.get("created_at")) or datetime.now(timezone.utc),
    )


async def _get_cached_user(user_id: str) -> Profile | None:
    """Return the cached Profile, or ``None`` on miss / Redis failure."""
    data = await CacheManager.get(CacheKeys.user_auth(user_id))
    if not data:
        return None
    try:
        return _build_user_from_cache(data)
    except (KeyError, TypeError, ValueError):
        return None


async def _cache_user(user: Profile) -> None:
    """Best-effort cache of a DB-loaded Profile into Redis."""
    await CacheManager.set(
        CacheKeys.user_auth(user.id),
        _serialize_user_for_cache(user),
        ttl=CacheManager.TTL_SHORT,
    )


# =============================================================================
# User resolution
# =============================================================================

async def get_or_create_dev_user(db: AsyncSession) -> Profile:
    """
    Get or create a development test user.
    Only used when DEV_AUTH_DISABLED is True.
    """
    cached = await _get_cached_user(DEV_USER_ID)
    if cached is not None:
        return cached

    user = await AuthService(db).get_or_create_from_claims({
        "sub": DEV_USER_ID,
        "email": DEV_USER_EMAIL,
        "user_metadata": {"full_name": "Development User"},
    })

    await _cache_user(user)
    return user


def _decode_claims(token: str) -> Optional[dict[str, Any]]:
    """
    Decode a bearer token from either issuer.

    Returns the claims with an ``_issuer`` marker: ``local`` for access
    tokens minted by this API, ``identity_provider`` for Supabase Auth.
    """
    payload = decode_token(token)
    if payload is not None:
        if payload.get("type") != "access":
            return None
        return {**payload, "_issuer": "local"}

    payload = decode_identity_provider_token(token)
    if payload is not None:
        return {**payload, "_issuer": "identity_provider"}

    return None


async def _resolve_user_from_token(
    credentials: HTTPAuthorizationCredentials,
    db: AsyncSession,
) -> Profile | None:
    """
    Decode the JWT, then return the Profile from Redis cache or DB.

    Identity-provider users get a profile created on their first request.
    """
    claims = _decode_claims(credentials.credentials)
    if claims is None:
        logger.debug("Bearer token rejected by both issuers")
        return None

    user_id = claims.get("sub")
    if not user_id:
        return None

    cached = await _get_cached_user(str(user_id))
    if cached is not None:
        return cached

    auth_service = AuthService(db)
    if claims["_issuer"] == "identity_provider":
        user = await auth_service.get_or_create_from_claims(claims)
    else:
        user = await auth_service.get_user_by_id(str(user_id))

    if user is not None:
        await _cache_user(user)
    return user


def _tag_request(request: Request, user: Optional[Profile]) -> None:
    """Expose the user id to the request-level middleware."""
    if user is not None:
        request.state.user_id = user.id


async def get_current_user_optional(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: DBSession,
) -> Optional[Profile]:
    """
    Get current user if authenticated, None otherwise.

    In development with DEV_AUTH_DISABLED=True, returns the dev user.
    """
    if settings.auth_disabled:
        user = await get_or_create_dev_user(db)
    elif credentials is None:
        return None
    else:
        user = await _resolve_user_from_token(credentials, db)

    _tag_request(request, user)
    return user


async def get_current_user(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    db: DBSession,
) -> Profile:
    """
    Get current authenticated user.

    Raises 401 if not authenticated or token is invalid.
    In development with DEV_AUTH_DISABLED=True, returns the dev user.
    """
    if settings.auth_disabled:
        user = await get_or_create_dev_user(db)
        _tag_request(request, user)
        return user

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": ErrorCodes.AUTH_TOKEN_EXPIRED,
                "message": "Not authenticated",
            },
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = await _resolve_user_from_token(credentials, db)

    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": ErrorCodes.AUTH_TOKEN_EXPIRED,
                "message": "Invalid or expired token",
            },
            headers={"WWW-Authenticate": "Bearer"},
        )

    _tag_request(request, user)
    return user


# Type alias for authenticated user dependency
CurrentUser = Annotated[Profile, Depends(get_current_user)]
CurrentUserOptional = Annotated[Optional[Profile], Depends(get_current_user_optional)]
