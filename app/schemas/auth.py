"""
Authentication Schemas
======================

Request bodies for email/password accounts and the payload returned when a
session is opened or renewed. Profiles created from identity provider
tokens never pass through these schemas.
"""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator


PASSWORD_RULES = (
    (str.isupper, "Password must contain at least one uppercase letter"),
    (str.islower, "Password must contain at least one lowercase letter"),
    (str.isdigit, "Password must contain at least one number"),
)


class UserRegister(BaseModel):
    """Body of POST /auth/register."""

    email: EmailStr
    password: str = Field(min_length=8, max_length=100)
    full_name: Optional[str] = Field(None, max_length=255)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        for check, message in PASSWORD_RULES:
            if not any(check(c) for c in v):
                raise ValueError(message)
        return v


class UserLogin(BaseModel):
    """Body of POST /auth/login."""

    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class TokenPair(BaseModel):
    """Locally issued access/refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class AccountUser(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    created_at: Optional[str] = None


class SubscriptionSummary(BaseModel):
    """Compact billing state shown next to the account."""

    status: Optional[str] = None
    product_id: Optional[str] = None
    expires_at: Optional[str] = None
    has_active_subscription: bool = False
    entitlements: list[str] = []


class AuthData(BaseModel):
    user: Optional[AccountUser] = None
    subscription: Optional[SubscriptionSummary] = None
    tokens: TokenPair


class AuthResponse(BaseModel):
    """Envelope for register, login and refresh."""

    success: bool = True
    data: AuthData
    message: Optional[str] = None


class LogoutResponse(BaseModel):
    success: bool = True
    message: str = "Logged out successfully"
