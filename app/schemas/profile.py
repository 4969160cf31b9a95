"""
Profile Schemas
===============

Pydantic schemas for user profile endpoints.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class ProfileUpdate(BaseModel):
    """Request schema for profile updates."""

    full_name: Optional[str] = Field(None, min_length=1, max_length=255)


class ProfileResponse(BaseModel):
    """Response schema for profile endpoint."""

    success: bool = True
    data: dict[str, Any]


class ProfileUpdateResponse(BaseModel):
    """Response schema for profile update."""

    success: bool = True
    data: dict[str, Any]
    message: str = "Profile updated successfully"
