"""SQLAlchemy ORM models — single source of truth for the identity schema.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Alembic auto-generates migrations by comparing these models to the actual DB.

Key concepts:
- UUID primary keys (portable `Uuid` type: native on PostgreSQL, CHAR(32) on SQLite)
- UNIQUE constraints on username and email are the authoritative collision
  detectors — existence probes in the service layer are only advisory
- roles as a JSON list, like API-key scopes elsewhere in the platform
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import JSON, DateTime, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

USERNAME_MAX_LENGTH = 50


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_uuid() -> uuid.UUID:
    return uuid.uuid4()


class User(Base):
    """An account backing a principal.

    Learn: One row per person regardless of how they signed up. Local
    accounts carry a bcrypt hash; Google/GitHub accounts leave it NULL and
    can only sign in through their provider. `provider` is written once at
    creation and never updated.
    """

    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("username", name="uq_users_username"),
        UniqueConstraint("email", name="uq_users_email"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=new_uuid
    )
    username: Mapped[str] = mapped_column(
        String(USERNAME_MAX_LENGTH), nullable=False
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )  # NULL for federated accounts
    provider: Mapped[str] = mapped_column(
        String(20), nullable=False, default="LOCAL"
    )
    roles: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=lambda: ["USER"]
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
