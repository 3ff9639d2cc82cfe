"""
NoteKeep Backend — Note & Checkbox SQLAlchemy Models
====================================================

What:  ORM models for the `notes` and `checkboxes` tables.
How:   Inherit from the shared DeclarativeBase; Alembic and the test fixtures
       build the schema from this metadata.
Who:   Used by NoteService, AccessService and the Conversion Guard.

Table Design:
    - user_id is the owner and never changes after creation.
    - is_shared is a cache of "the Access Ledger has at least one row for this
      note". AccessService.recompute_shared() refreshes it after every ledger
      mutation, inside the same transaction.
    - is_template notes are never shared and never pinned.
    - `order` is the display position inside the owner's list; PUT /notes/order
      rewrites it for a batch of notes at once.

Index on (user_id, is_template):
    Both the note list and the template list filter on exactly these two
    columns.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notekeep.database import Base
from notekeep.timeutils import utcnow


class Note(Base):
    """
    A note (or template) owned by a single user.

    Lifecycle:
        1. Created by its owner, optionally from a template
        2. Shared through invitations; collaborators act through the ledger
        3. May be converted to a template (sharing cleared) and back
        4. Deleted by the owner or an ADMIN collaborator; checkboxes,
           invitations and ledger rows go with it
    """

    __tablename__ = "notes"

    # ── Primary Key ───────────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
        comment="Unique identifier",
    )

    # ── Content ───────────────────────────────────────────────────────────
    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        comment="Note title (1-200 characters)",
    )

    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        comment="Free text body (up to 10000 characters)",
    )

    # #rgb or #rrggbb
    color: Mapped[Optional[str]] = mapped_column(
        String(7),
        nullable=True,
        default=None,
        comment="Optional hex display color",
    )

    # ── Flags ─────────────────────────────────────────────────────────────
    is_pinned: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Pinned to the top of the owner's list",
    )

    is_shared: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Cached: note has at least one Access Ledger row",
    )

    is_template: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        comment="Template rows are excluded from the note list and never shared",
    )

    order: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Display position within the owner's list",
    )

    # ── Ownership ─────────────────────────────────────────────────────────
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        comment="Owner; immutable",
    )

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="When this note was created (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="Last content change (UTC); pinning does not touch it",
    )

    # ── Relationships ─────────────────────────────────────────────────────
    # selectin: async sessions cannot lazy-load on attribute access
    checkboxes: Mapped[List["Checkbox"]] = relationship(
        back_populates="note",
        cascade="all, delete-orphan",
        order_by="Checkbox.position",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_notes_owner_template", "user_id", "is_template"),
    )

    def __repr__(self) -> str:
        return (
            f"<Note(id={self.id}, owner={self.user_id}, "
            f"template={self.is_template}, shared={self.is_shared})>"
        )


class Checkbox(Base):
    """One item of a note's checklist. Replaced wholesale on update."""

    __tablename__ = "checkboxes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    label: Mapped[str] = mapped_column(String(500), nullable=False)
    checked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Zero-based index in the note's list",
    )

    note: Mapped["Note"] = relationship(back_populates="checkboxes")

    def __repr__(self) -> str:
        return f"<Checkbox(id={self.id}, note={self.note_id}, checked={self.checked})>"
