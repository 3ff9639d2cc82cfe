"""
NoteKeep Backend — Webhook Model
================================

What:  ORM model for `webhooks`: one (user, action, url) subscription.
Who:   Managed through /webhooks; read by WebhookNotifier.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from notekeep.database import Base
from notekeep.timeutils import utcnow


class WebhookAction(str, enum.Enum):
    NOTE_CREATED = "note_created"
    NOTE_UPDATED = "note_updated"
    NOTE_DELETED = "note_deleted"


class Webhook(Base):
    __tablename__ = "webhooks"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    action: Mapped[WebhookAction] = mapped_column(
        Enum(
            WebhookAction,
            name="webhook_action",
            native_enum=False,
            length=32,
            values_callable=lambda actions: [a.value for a in actions],
        ),
        nullable=False,
    )

    url: Mapped[str] = mapped_column(String(2048), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<Webhook(id={self.id}, user={self.user_id}, action={self.action.value})>"
