"""
NoteKeep Backend — User SQLAlchemy Model
========================================

What:  ORM model for the `users` table.
Who:   Created by AuthService.register; referenced by notes, invitations,
       the Access Ledger, API keys and webhooks.

Users are never deleted in normal operation, so foreign keys pointing at
`users.id` do not cascade.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from notekeep.database import Base
from notekeep.timeutils import utcnow


class User(Base):
    """A registered account. Identity is (id, email)."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        comment="Unique identifier",
    )

    # Compared exactly (case-sensitive) against invitation recipients
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        index=True,
        comment="Login email; unique across the instance",
    )

    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="bcrypt hash produced by passlib",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="When the account was registered (UTC)",
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}')>"
