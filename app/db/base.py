"""
Declarative Base
================

Shared base class and timestamp mixins for the billing tables.
"""

from datetime import datetime

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    # Every datetime column is stored timezone-aware
    type_annotation_map = {
        datetime: DateTime(timezone=True),
    }


class CreatedAtMixin:
    """
    Insert timestamp only. Used by append-only tables such as the
    purchase event log, whose rows are never updated.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class TimestampMixin(CreatedAtMixin):
    """
    Insert and last-update timestamps, both filled in by the database.

    ``updated_at`` is refreshed server-side on UPDATE, so it is expired on
    the instance after a flush and must not be read back without a refresh.
    """

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
