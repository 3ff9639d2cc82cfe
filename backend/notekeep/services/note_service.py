"""
NoteKeep Backend — Note Service (Notes, Templates & Conversion Guard)
=====================================================================

What:  Note and template CRUD, checkbox updates, pinning, reordering and the
       Conversion Guard that turns a note into a template and back.
Who:   Called by the /notes and /templates routes.

Permission map (AccessService decides the level):

    read note, list checkboxes          READ
    update note, replace/toggle boxes   WRITE
    delete note                         ADMIN
    pin, reorder, templates, convert    owner only

Conversion Guard:
    convert_note_to_template() clears the Access Ledger, revokes PENDING
    invitations and flips the flags in the request transaction, so either
    all of it commits or none of it does. Afterwards:

        is_template = True, is_shared = False, is_pinned = False
        no ledger rows, no PENDING invitations

    convert_template_to_note() only clears is_template; sharing is not
    restored.

Design Decision:
    Templates are rows of the notes table. Note endpoints never return a
    template and template endpoints never return a note; a mismatch is a 404.
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.exceptions import DatabaseError, NoteNotFoundOrForbiddenError, NotFoundError
from notekeep.models.note import Checkbox, Note
from notekeep.models.sharing import Invitation, InvitationStatus
from notekeep.schemas.note import (
    CheckboxIn,
    NoteCreate,
    NoteUpdate,
    TemplateCreate,
    TemplateUpdate,
    TemplateUse,
)
from notekeep.services.access_service import AccessLevel, access_service
from notekeep.timeutils import utcnow

logger = logging.getLogger(__name__)


def _build_checkboxes(items: List[CheckboxIn]) -> List[Checkbox]:
    return [
        Checkbox(label=item.label, checked=item.checked, position=index)
        for index, item in enumerate(items)
    ]


def _template_not_found(template_id: UUID) -> NotFoundError:
    return NotFoundError(
        resource="Template",
        resource_id=str(template_id),
        message="Template not found or not authorized",
    )


class NoteService:
    """
    Business logic layer for notes and templates.

    Stateless: every method receives the request's session and flushes;
    get_db_session() commits.
    """

    # ══════════════════════════════════════════════════════════════════════
    # Notes
    # ══════════════════════════════════════════════════════════════════════

    async def list_notes(self, db: AsyncSession, user_id: UUID) -> List[Note]:
        """
        The caller's own notes (templates excluded).

        Order: pinned first, then the owner's `order`, then newest first.
        Notes shared with the caller are listed by AccessService.
        """
        try:
            result = await db.execute(
                select(Note)
                .where(Note.user_id == user_id, Note.is_template.is_(False))
                .order_by(Note.is_pinned.desc(), Note.order.asc(), Note.created_at.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error listing notes: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve notes. Please try again.",
                context={"user_id": str(user_id)},
            )

    async def get_note(self, db: AsyncSession, note_id: UUID, actor_id: UUID) -> Note:
        note, _ = await self._authorize_note(db, note_id, actor_id, AccessLevel.READ)
        return note

    async def create_note(
        self,
        db: AsyncSession,
        user_id: UUID,
        data: NoteCreate,
        now: Optional[datetime] = None,
    ) -> Note:
        now = now or utcnow()
        note = Note(
            title=data.title,
            content=data.content,
            color=data.color,
            is_pinned=data.is_pinned,
            user_id=user_id,
            checkboxes=_build_checkboxes(data.checkboxes),
            created_at=now,
            updated_at=now,
        )
        db.add(note)
        await db.flush()
        logger.info("Note %s created by user %s", note.id, user_id)
        return note

    async def update_note(
        self,
        db: AsyncSession,
        note_id: UUID,
        actor_id: UUID,
        data: NoteUpdate,
        now: Optional[datetime] = None,
    ) -> Note:
        """Applies the fields present in `data`; requires WRITE."""
        note, level = await self._authorize_note(db, note_id, actor_id, AccessLevel.WRITE)
        self._apply_update(note, data, now or utcnow())
        await db.flush()
        logger.info("Note %s updated by user %s (level=%s)", note_id, actor_id, level.name)
        return note

    async def delete_note(self, db: AsyncSession, note_id: UUID, actor_id: UUID) -> Note:
        """
        Deletes a note with its checkboxes, invitations and ledger rows.

        Requires ADMIN (the owner always has it). Returns the deleted row,
        still populated, for the notifier payload.
        """
        note, _ = await self._authorize_note(db, note_id, actor_id, AccessLevel.ADMIN)
        await self._delete_with_sharing(db, note)
        logger.info("Note %s deleted by user %s", note_id, actor_id)
        return note

    async def toggle_checkbox(
        self,
        db: AsyncSession,
        checkbox_id: UUID,
        actor_id: UUID,
        checked: bool,
        now: Optional[datetime] = None,
    ) -> Checkbox:
        """Sets one checkbox's state; requires WRITE on its note."""
        checkbox = await db.get(Checkbox, checkbox_id)
        if checkbox is None:
            raise NotFoundError(resource="Checkbox", resource_id=str(checkbox_id))

        try:
            note, _ = await self._authorize_note(db, checkbox.note_id, actor_id, AccessLevel.WRITE)
        except NotFoundError:
            raise NotFoundError(resource="Checkbox", resource_id=str(checkbox_id))

        checkbox.checked = checked
        note.updated_at = now or utcnow()
        await db.flush()
        return checkbox

    async def set_pinned(
        self, db: AsyncSession, note_id: UUID, caller_id: UUID, is_pinned: bool
    ) -> Note:
        """Owner-only. updated_at is left alone: pinning is not an edit."""
        note = await access_service.load_owned_note(db, note_id, caller_id)
        if note.is_template:
            raise NoteNotFoundOrForbiddenError(note_id=str(note_id))
        note.is_pinned = is_pinned
        await db.flush()
        return note

    async def reorder_notes(
        self, db: AsyncSession, user_id: UUID, note_ids: List[UUID]
    ) -> List[Note]:
        """
        Sets order = index for each id. Every id must be one of the caller's
        own notes, otherwise nothing is changed.
        """
        result = await db.execute(
            select(Note).where(
                Note.user_id == user_id,
                Note.is_template.is_(False),
                Note.id.in_(note_ids),
            )
        )
        notes = {note.id: note for note in result.scalars().all()}
        if len(notes) != len(note_ids):
            raise NoteNotFoundOrForbiddenError(
                context={"user_id": str(user_id), "requested": len(note_ids), "found": len(notes)},
            )

        for index, note_id in enumerate(note_ids):
            notes[note_id].order = index
        await db.flush()
        return [notes[note_id] for note_id in note_ids]

    # ══════════════════════════════════════════════════════════════════════
    # Templates
    # ══════════════════════════════════════════════════════════════════════

    async def list_templates(self, db: AsyncSession, user_id: UUID) -> List[Note]:
        result = await db.execute(
            select(Note)
            .where(Note.user_id == user_id, Note.is_template.is_(True))
            .order_by(Note.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_template(self, db: AsyncSession, template_id: UUID, user_id: UUID) -> Note:
        """Templates are private to their owner."""
        template = await db.get(Note, template_id)
        if template is None or not template.is_template or template.user_id != user_id:
            raise _template_not_found(template_id)
        return template

    async def create_template(
        self,
        db: AsyncSession,
        user_id: UUID,
        data: TemplateCreate,
        now: Optional[datetime] = None,
    ) -> Note:
        now = now or utcnow()
        template = Note(
            title=data.title,
            content=data.content,
            color=data.color,
            is_template=True,
            user_id=user_id,
            checkboxes=_build_checkboxes(data.checkboxes),
            created_at=now,
            updated_at=now,
        )
        db.add(template)
        await db.flush()
        logger.info("Template %s created by user %s", template.id, user_id)
        return template

    async def update_template(
        self,
        db: AsyncSession,
        template_id: UUID,
        user_id: UUID,
        data: TemplateUpdate,
        now: Optional[datetime] = None,
    ) -> Note:
        template = await self.get_template(db, template_id, user_id)
        self._apply_update(template, data, now or utcnow())
        await db.flush()
        return template

    async def delete_template(self, db: AsyncSession, template_id: UUID, user_id: UUID) -> None:
        template = await self.get_template(db, template_id, user_id)
        await self._delete_with_sharing(db, template)
        logger.info("Template %s deleted by user %s", template_id, user_id)

    async def create_note_from_template(
        self,
        db: AsyncSession,
        template_id: UUID,
        user_id: UUID,
        overrides: Optional[TemplateUse] = None,
        now: Optional[datetime] = None,
    ) -> Note:
        """
        Copies title, content, color and checkboxes into a new note.

        The new note is never pinned, shared or a template. Overrides replace
        the copied title/content/color when given.
        """
        template = await self.get_template(db, template_id, user_id)
        overrides = overrides or TemplateUse()
        now = now or utcnow()

        note = Note(
            title=overrides.title or template.title,
            content=overrides.content if overrides.content is not None else template.content,
            color=overrides.color or template.color,
            is_pinned=False,
            is_template=False,
            user_id=user_id,
            checkboxes=[
                Checkbox(label=cb.label, checked=cb.checked, position=cb.position)
                for cb in template.checkboxes
            ],
            created_at=now,
            updated_at=now,
        )
        db.add(note)
        await db.flush()
        logger.info("Note %s created from template %s", note.id, template_id)
        return note

    # ══════════════════════════════════════════════════════════════════════
    # Conversion Guard
    # ══════════════════════════════════════════════════════════════════════

    async def convert_note_to_template(
        self,
        db: AsyncSession,
        note_id: UUID,
        caller_id: UUID,
        now: Optional[datetime] = None,
    ) -> Note:
        """
        Turns an owned note into a template, dropping all sharing.

        One transaction:
            1. delete every Access Ledger row of the note
            2. PENDING invitations → REVOKED, so a late accept cannot
               re-share the template
            3. is_template = True, is_shared = False, is_pinned = False

        Content and checkboxes are unchanged.

        Raises:
            NoteNotFoundOrForbiddenError: note missing or not owned by caller
        """
        now = now or utcnow()
        note = await access_service.load_owned_note(db, note_id, caller_id)

        removed = await access_service.clear_ledger(db, note.id)
        revoked = await db.execute(
            update(Invitation)
            .where(
                Invitation.note_id == note.id,
                Invitation.status == InvitationStatus.PENDING,
            )
            .values(status=InvitationStatus.REVOKED, updated_at=now)
            .execution_options(synchronize_session="fetch")
        )

        note.is_template = True
        note.is_pinned = False
        await access_service.recompute_shared(db, note)

        logger.info(
            "Note %s converted to template by %s (access removed=%d, invitations revoked=%d)",
            note_id, caller_id, removed, revoked.rowcount or 0,
        )
        return note

    async def convert_template_to_note(
        self, db: AsyncSession, template_id: UUID, caller_id: UUID
    ) -> Note:
        """Owner-only; clears is_template. Previous sharing is not restored."""
        template = await self.get_template(db, template_id, caller_id)
        template.is_template = False
        await db.flush()
        logger.info("Template %s converted to note by %s", template_id, caller_id)
        return template

    # ══════════════════════════════════════════════════════════════════════
    # Helpers
    # ══════════════════════════════════════════════════════════════════════

    async def _authorize_note(
        self,
        db: AsyncSession,
        note_id: UUID,
        actor_id: UUID,
        required: AccessLevel,
    ):
        note, level = await access_service.authorize(db, note_id, actor_id, required)
        if note.is_template:
            raise NotFoundError(resource="Note", resource_id=str(note_id))
        return note, level

    def _apply_update(self, note: Note, data: NoteUpdate, now: datetime) -> None:
        fields = data.model_dump(exclude_unset=True, exclude={"checkboxes"})
        for name, value in fields.items():
            if name in ("title", "content") and value is None:
                continue
            setattr(note, name, value)
        if data.checkboxes is not None:
            note.checkboxes = _build_checkboxes(data.checkboxes)
        note.updated_at = now

    async def _delete_with_sharing(self, db: AsyncSession, note: Note) -> None:
        await db.execute(delete(Invitation).where(Invitation.note_id == note.id))
        await access_service.clear_ledger(db, note.id)
        await db.delete(note)
        await db.flush()


# ── Singleton Instance ────────────────────────────────────────────────────
note_service = NoteService()
