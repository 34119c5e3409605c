"""
SQLAlchemy Declarative Base and shared mixins
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """
    Declarative base shared by every table
    """

    pass


class TimestampMixin:
    """
    Created/updated timestamps maintained by the database
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class StringIDMixin:
    """
    Opaque string primary key (UUID4 text by default)
    """

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
        default=new_id,
    )
