"""
Authentication Service
======================

Business logic for user authentication, registration, and token management.
"""

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import (
    create_tokens_for_user,
    decode_token,
    hash_password,
    verify_password,
)
from app.models.user import Profile
from app.schemas.auth import UserRegister
from app.utils.helpers import utc_now

logger = logging.getLogger(__name__)


def display_name_from_claims(claims: dict[str, Any]) -> str:
    """
    Display name for a profile created from identity-provider claims.

    Prefers ``user_metadata.full_name``, then the email local part.
    """
    metadata = claims.get("user_metadata") or {}
    full_name = metadata.get("full_name")
    if full_name:
        return full_name

    email = claims.get("email") or ""
    local_part = email.split("@")[0]
    return local_part or "User"


class AuthService:
    """Service for authentication operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_email(self, email: str) -> Optional[Profile]:
        """Get profile by email address."""
        stmt = select(Profile).where(Profile.email == email)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: str) -> Optional[Profile]:
        """Get profile by ID."""
        stmt = select(Profile).where(Profile.id == user_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_user(self, user_data: UserRegister) -> Profile:
        """
        Create a new profile with a password login.

        Args:
            user_data: Registration data

        Returns:
            Created profile
        """
        email = user_data.email.lower()
        profile = Profile(
            email=email,
            password_hash=hash_password(user_data.password),
            full_name=user_data.full_name or email.split("@")[0],
        )
        self.db.add(profile)
        await self.db.flush()
        await self.db.refresh(profile)

        logger.info("Profile registered: id=%s", profile.id)
        return profile

    async def get_or_create_from_claims(self, claims: dict[str, Any]) -> Optional[Profile]:
        """
        Resolve the profile for a verified token, creating it on first use.

        A created profile is committed straight away, before the endpoint
        runs, so a billing failure that rolls the request back cannot remove
        a profile the auth cache already holds.

        Args:
            claims: Decoded token payload. ``sub`` is the user id.

        Returns:
            Profile, or None if the claims carry no subject.
        """
        user_id = claims.get("sub")
        if not user_id:
            return None

        profile = await self.get_user_by_id(str(user_id))
        if profile is not None:
            return profile

        email = (claims.get("email") or f"{user_id}@users.invalid").lower()
        profile = Profile(
            id=str(user_id),
            email=email,
            full_name=display_name_from_claims(claims),
        )
        self.db.add(profile)
        try:
            await self.db.commit()
        except IntegrityError:
            # Concurrent first request for the same subject won the insert
            await self.db.rollback()
            return await self.get_user_by_id(str(user_id))
        await self.db.refresh(profile)

        logger.info("Profile created on first authentication: id=%s", profile.id)
        return profile

    async def authenticate_user(
        self,
        email: str,
        password: str,
    ) -> Optional[Profile]:
        """
        Authenticate user by email and password.

        Args:
            email: User's email
            password: Plain text password

        Returns:
            Profile if authentication successful, None otherwise
        """
        profile = await self.get_user_by_email(email.lower())

        if profile is None:
            return None

        if profile.password_hash is None:
            # Identity-provider user without a local password
            return None

        if not verify_password(password, profile.password_hash):
            return None

        profile.last_login = utc_now()

        return profile

    async def refresh_tokens(self, refresh_token: str) -> Optional[dict]:
        """
        Generate new tokens from a refresh token.

        Args:
            refresh_token: Valid refresh token

        Returns:
            New tokens if refresh token is valid, None otherwise
        """
        payload = decode_token(refresh_token)

        if payload is None or payload.get("type") != "refresh":
            return None

        user_id = payload.get("sub")
        if user_id is None:
            return None

        profile = await self.get_user_by_id(user_id)
        if profile is None:
            return None

        return create_tokens_for_user(user_id=profile.id, email=profile.email)
