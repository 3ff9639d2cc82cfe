"""
NoteKeep Backend — API Key Model
================================

What:  ORM model for `api_keys`, plus the closed set of capabilities a key
       can carry.
How:   Capabilities are stored as a JSON array of ApiKeyPermission values.
"""

import enum
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from notekeep.database import Base
from notekeep.models.user import User
from notekeep.timeutils import utcnow


class ApiKeyPermission(str, enum.Enum):
    CREATE_NOTES = "create_notes"
    READ_NOTES = "read_notes"
    UPDATE_NOTES = "update_notes"
    DELETE_NOTES = "delete_notes"
    SHARE_NOTES = "share_notes"
    READ_TEMPLATES = "read_templates"
    CREATE_TEMPLATES = "create_templates"
    UPDATE_TEMPLATES = "update_templates"
    DELETE_TEMPLATES = "delete_templates"
    USE_TEMPLATES = "use_templates"


API_KEY_PERMISSION_LABELS = {
    ApiKeyPermission.CREATE_NOTES: "Create notes",
    ApiKeyPermission.READ_NOTES: "Read notes",
    ApiKeyPermission.UPDATE_NOTES: "Update notes",
    ApiKeyPermission.DELETE_NOTES: "Delete notes",
    ApiKeyPermission.SHARE_NOTES: "Share notes and manage invitations",
    ApiKeyPermission.READ_TEMPLATES: "Read templates",
    ApiKeyPermission.CREATE_TEMPLATES: "Create templates",
    ApiKeyPermission.UPDATE_TEMPLATES: "Update templates",
    ApiKeyPermission.DELETE_TEMPLATES: "Delete templates",
    ApiKeyPermission.USE_TEMPLATES: "Create notes from templates",
}


class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # "ak_" + 64 hex characters; never logged
    key: Mapped[str] = mapped_column(String(67), nullable=False, unique=True)

    permissions: Mapped[List[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="JSON array of ApiKeyPermission values",
    )

    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_used_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    user: Mapped[User] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<ApiKey(id={self.id}, user={self.user_id}, name='{self.name}')>"
