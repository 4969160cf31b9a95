"""
Pydantic Schemas
================

Request/response schemas for API validation.
"""

from app.schemas.common import (
    ErrorResponse,
)

__all__ = [
    "ErrorResponse",
]
