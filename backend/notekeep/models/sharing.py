"""
NoteKeep Backend — Sharing Models (Invitations & Access Ledger)
===============================================================

What:  ORM models for `note_invitations` and `note_access`, plus the two
       closed enumerations they use.
Who:   InvitationService writes both tables; AccessService reads and prunes
       the ledger; NoteService clears the ledger on template conversion.

Invitation lifecycle:

    PENDING ──accept──▶ ACCEPTED
       │────decline──▶ DECLINED
       │────revoke───▶ REVOKED
       └────expire───▶ EXPIRED

    All four targets are terminal. A terminal row for a (note, email) pair is
    deleted before a new invitation for the same pair is inserted, which keeps
    the unique constraint on (note_id, invited_email) satisfiable.

Access Ledger:
    One row per (note, user) that was granted access by accepting an
    invitation. The unique constraint on (note_id, user_id) makes a second
    grant for the same pair fail at the database, whatever the interleaving of
    concurrent accepts.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notekeep.database import Base
from notekeep.models.note import Note
from notekeep.models.user import User
from notekeep.timeutils import utcnow


class InvitationStatus(str, enum.Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    EXPIRED = "EXPIRED"
    REVOKED = "REVOKED"


class AccessPermission(str, enum.Enum):
    """Permission carried by an invitation and copied into the ledger."""

    READ = "READ"
    WRITE = "WRITE"
    ADMIN = "ADMIN"


class Invitation(Base):
    """An offer of access to one note, addressed to one email."""

    __tablename__ = "note_invitations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    invited_email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Recipient email, matched exactly on accept/decline",
    )

    invited_by_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        index=True,
        comment="Owner of the note at creation time",
    )

    permission: Mapped[AccessPermission] = mapped_column(
        Enum(AccessPermission, name="access_permission", native_enum=False, length=16),
        nullable=False,
        default=AccessPermission.READ,
    )

    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # 64 hex characters (256 bits of entropy); never logged
    token: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Bearer secret that identifies the invitation to its recipient",
    )

    status: Mapped[InvitationStatus] = mapped_column(
        Enum(InvitationStatus, name="invitation_status", native_enum=False, length=16),
        nullable=False,
        default=InvitationStatus.PENDING,
        index=True,
    )

    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    accepted_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=True,
    )
    accepted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    note: Mapped[Note] = relationship(lazy="selectin")
    invited_by: Mapped[User] = relationship(foreign_keys=[invited_by_id], lazy="selectin")

    __table_args__ = (
        UniqueConstraint("note_id", "invited_email", name="uq_invitation_note_email"),
    )

    def __repr__(self) -> str:
        # never includes the token
        return (
            f"<Invitation(id={self.id}, note={self.note_id}, "
            f"email='{self.invited_email}', status={self.status.value})>"
        )


class NoteAccess(Base):
    """An Access Ledger entry: `user_id` may act on `note_id` at `permission`."""

    __tablename__ = "note_access"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    note_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    permission: Mapped[AccessPermission] = mapped_column(
        Enum(AccessPermission, name="access_permission", native_enum=False, length=16),
        nullable=False,
    )

    granted_by_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
    )

    granted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    note: Mapped[Note] = relationship(lazy="selectin")
    user: Mapped[User] = relationship(foreign_keys=[user_id], lazy="selectin")
    granted_by: Mapped[User] = relationship(foreign_keys=[granted_by_id], lazy="selectin")

    __table_args__ = (
        UniqueConstraint("note_id", "user_id", name="uq_note_access_note_user"),
    )

    def __repr__(self) -> str:
        return (
            f"<NoteAccess(note={self.note_id}, user={self.user_id}, "
            f"permission={self.permission.value})>"
        )
