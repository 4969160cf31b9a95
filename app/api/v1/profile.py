"""
Profile API Endpoints
=====================

Handles user profile retrieval and updates.
"""

from fastapi import APIRouter

from app.core.errors import NotFoundError
from app.dependencies import CurrentUser, DBSession
from app.schemas.profile import (
    ProfileResponse,
    ProfileUpdate,
    ProfileUpdateResponse,
)
from app.services.auth_service import AuthService
from app.services.cache import CacheInvalidator, CacheKeys, CacheManager
from app.services.revenuecat import RevenueCatService
from app.utils.helpers import format_datetime

router = APIRouter()


@router.get(
    "",
    response_model=ProfileResponse,
)
async def get_profile(
    current_user: CurrentUser,
    db: DBSession,
):
    """
    Get complete user profile.

    Includes user info and a summary of the current subscription.
    """
    # Try cache first
    cached = await CacheManager.get(CacheKeys.profile(current_user.id))
    if cached:
        return ProfileResponse(success=True, data=cached)

    user_info = {
        "id": current_user.id,
        "email": current_user.email,
        "full_name": current_user.full_name,
        "display_name": current_user.display_name,
        "created_at": format_datetime(current_user.created_at),
    }

    subscription = await RevenueCatService(db).get_subscription(current_user.id)
    subscription_info = RevenueCatService.summarize_subscription(subscription)

    profile_data = {
        "user": user_info,
        "subscription": subscription_info,
    }

    await CacheManager.set(
        CacheKeys.profile(current_user.id),
        profile_data,
        ttl=CacheManager.TTL_SHORT,
    )

    return ProfileResponse(success=True, data=profile_data)


@router.put(
    "",
    response_model=ProfileUpdateResponse,
)
async def update_profile(
    profile_data: ProfileUpdate,
    current_user: CurrentUser,
    db: DBSession,
):
    """
    Update user profile.

    The current user may come from the auth cache, so the row is reloaded
    before it is modified.
    """
    profile = await AuthService(db).get_user_by_id(current_user.id)
    if profile is None:
        raise NotFoundError(message="Profile not found")

    if profile_data.full_name is not None:
        profile.full_name = profile_data.full_name

    await db.flush()

    await CacheInvalidator.on_profile_update(profile.id)

    return ProfileUpdateResponse(
        success=True,
        data={
            "id": profile.id,
            "email": profile.email,
            "full_name": profile.full_name,
        },
        message="Profile updated successfully",
    )
