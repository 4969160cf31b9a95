"""
Authentication API Endpoints
============================

Handles user registration, login, logout and token refresh.

Clients that sign in through Supabase Auth skip these endpoints and send
the identity provider's access token directly; see ``app.dependencies``.
"""

import logging

from fastapi import APIRouter, status

from app.core.errors import AuthenticationError, ConflictError, ErrorCodes
from app.core.security import create_tokens_for_user
from app.dependencies import DBSession
from app.models.user import Profile
from app.schemas.auth import (
    AuthResponse,
    LogoutResponse,
    RefreshTokenRequest,
    UserLogin,
    UserRegister,
)
from app.schemas.common import ErrorResponse
from app.services.auth_service import AuthService
from app.services.revenuecat import RevenueCatService
from app.utils.helpers import format_datetime

logger = logging.getLogger(__name__)

router = APIRouter()


def _session_payload(user: Profile, subscription=None, include_created: bool = False) -> dict:
    """User, billing summary and a fresh token pair for a signed-in account."""
    account = {"id": user.id, "email": user.email, "full_name": user.full_name}
    if include_created:
        account["created_at"] = format_datetime(user.created_at)

    return {
        "user": account,
        "subscription": RevenueCatService.summarize_subscription(subscription),
        "tokens": create_tokens_for_user(user_id=user.id, email=user.email),
    }


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        409: {"model": ErrorResponse, "description": "Email already registered"},
    },
)
async def register(
    user_data: UserRegister,
    db: DBSession,
):
    """
    Register a new account with an email and password.
    """
    auth_service = AuthService(db)

    # Check if email already exists
    existing_user = await auth_service.get_user_by_email(user_data.email.lower())
    if existing_user is not None:
        raise ConflictError(
            code=ErrorCodes.AUTH_EMAIL_EXISTS,
            message="Email already registered",
        )

    user = await auth_service.create_user(user_data)

    return AuthResponse(
        success=True,
        data=_session_payload(user, include_created=True),
        message="Account created successfully",
    )


@router.post(
    "/login",
    response_model=AuthResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials"},
    },
)
async def login(
    credentials: UserLogin,
    db: DBSession,
):
    """
    Authenticate user and return tokens.
    """
    auth_service = AuthService(db)

    user = await auth_service.authenticate_user(
        email=credentials.email,
        password=credentials.password,
    )

    if user is None:
        logger.warning("Failed login attempt for %s", credentials.email)
        raise AuthenticationError(message="Invalid credentials")

    subscription = await RevenueCatService(db).get_subscription(user.id)

    return AuthResponse(success=True, data=_session_payload(user, subscription))


@router.post(
    "/logout",
    response_model=LogoutResponse,
)
async def logout():
    """
    Logout user (client should discard tokens).

    Tokens are stateless, so nothing is revoked server-side.
    """
    return LogoutResponse(
        success=True,
        message="Logged out successfully",
    )


@router.post(
    "/refresh-token",
    response_model=AuthResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid refresh token"},
    },
)
async def refresh_token(
    request: RefreshTokenRequest,
    db: DBSession,
):
    """
    Refresh access token using refresh token.
    """
    auth_service = AuthService(db)

    tokens = await auth_service.refresh_tokens(request.refresh_token)

    if tokens is None:
        raise AuthenticationError(
            code=ErrorCodes.AUTH_TOKEN_EXPIRED,
            message="Invalid or expired refresh token",
        )

    return AuthResponse(
        success=True,
        data={"tokens": tokens},
        message="Tokens refreshed successfully",
    )
