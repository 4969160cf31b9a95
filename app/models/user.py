"""
Profile Model
=============

SQLAlchemy model for user profiles.
"""

from datetime import datetime
from typing import Optional
import uuid

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base, TimestampMixin


def _new_profile_id() -> str:
    return str(uuid.uuid4())


class Profile(Base, TimestampMixin):
    """
    User profile model.

    Keyed by an opaque user id: either generated on registration or the
    subject of an identity-provider token, in which case the row is created
    on the first authenticated request.
    """

    __tablename__ = "profiles"

    # Primary Key
    id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        default=_new_profile_id,
    )

    # Account fields
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )
    full_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,  # Nullable for identity-provider users
    )

    # Status fields
    last_login: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id}, email={self.email})>"

    @property
    def display_name(self) -> str:
        """Name shown to the user, falling back to the email local part."""
        if self.full_name:
            return self.full_name
        return self.email.split("@")[0] if self.email else "User"
