"""
NoteKeep Backend — Access Service (Access Ledger & Authorization Resolver)
==========================================================================

What:  Decides, for any (user, note) pair, what the user may do with the note,
       and owns every mutation of the Access Ledger except the insert done by
       accept_invitation.
Who:   Called by NoteService before every read/write on a note, by
       InvitationService for owner checks, and by the sharing routes for
       remove-access / leave / shared-notes listing.

Resolution rule:

    owner of the note                → ADMIN
    ledger row (note_id, user_id)    → the row's permission
    anything else                    → NONE

    NONE < READ < WRITE < ADMIN

Existence hiding:
    authorize() reports a missing note and an insufficient level the same way
    (NotFoundError), so a caller cannot probe for note ids it has no access to.
    Owner-only operations on resources whose existence the caller may know
    (revoke, remove-access, note-invitation listing) use load_note_for_owner(),
    which distinguishes 404 from 403.

is_shared:
    Note.is_shared is a cached "ledger has rows" flag. recompute_shared() runs
    after every ledger mutation in the same transaction; nothing else writes
    the flag except create_invitation (optimistic True) and template
    conversion (False, after the ledger is cleared).
"""

import enum
import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.exceptions import (
    DatabaseError,
    NoSuchAccessError,
    NotAuthorizedError,
    NoteNotFoundOrForbiddenError,
    NotFoundError,
)
from notekeep.models.note import Note
from notekeep.models.sharing import AccessPermission, NoteAccess
from notekeep.schemas.note import NoteResponse
from notekeep.schemas.sharing import SharedNoteResponse, UserSummary

logger = logging.getLogger(__name__)


class AccessLevel(enum.IntEnum):
    """Totally ordered effective access of an actor on a note."""

    NONE = 0
    READ = 1
    WRITE = 2
    ADMIN = 3

    @classmethod
    def from_permission(cls, permission: AccessPermission) -> "AccessLevel":
        return cls[permission.value]


class AccessService:
    """
    Stateless resolver over the notes and note_access tables.

    Every method takes the request's AsyncSession first and only flushes;
    committing is left to get_db_session().
    """

    # ── Ledger queries ────────────────────────────────────────────────────

    async def get_entry(
        self, db: AsyncSession, note_id: UUID, user_id: UUID
    ) -> Optional[NoteAccess]:
        result = await db.execute(
            select(NoteAccess).where(
                NoteAccess.note_id == note_id,
                NoteAccess.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def count_entries(self, db: AsyncSession, note_id: UUID) -> int:
        result = await db.execute(
            select(func.count(NoteAccess.id)).where(NoteAccess.note_id == note_id)
        )
        return result.scalar() or 0

    async def recompute_shared(self, db: AsyncSession, note: Note) -> bool:
        """Sets note.is_shared from the ledger and returns the new value."""
        await db.flush()
        note.is_shared = await self.count_entries(db, note.id) > 0
        await db.flush()
        return note.is_shared

    # ── Resolver ──────────────────────────────────────────────────────────

    async def resolve(self, db: AsyncSession, note: Note, actor_id: UUID) -> AccessLevel:
        """
        Effective access of `actor_id` on `note`.

        Ownership always wins; the ledger is consulted only for non-owners.
        """
        if note.user_id == actor_id:
            return AccessLevel.ADMIN
        entry = await self.get_entry(db, note.id, actor_id)
        if entry is None:
            return AccessLevel.NONE
        return AccessLevel.from_permission(entry.permission)

    async def authorize(
        self,
        db: AsyncSession,
        note_id: UUID,
        actor_id: UUID,
        required: AccessLevel,
    ) -> Tuple[Note, AccessLevel]:
        """
        Loads the note and checks the actor reaches `required`.

        Raises:
            NotFoundError: note missing, or the actor's level is below
                           `required` (existence is not revealed)
        """
        note = await db.get(Note, note_id)
        if note is None:
            raise NotFoundError(resource="Note", resource_id=str(note_id))

        level = await self.resolve(db, note, actor_id)
        if level < required:
            logger.info(
                "Access denied: actor=%s note=%s level=%s required=%s",
                actor_id, note_id, level.name, required.name,
            )
            raise NotFoundError(
                resource="Note",
                resource_id=str(note_id),
                context={"actor_id": str(actor_id), "required": required.name},
            )
        return note, level

    # ── Ownership checks ──────────────────────────────────────────────────

    async def load_owned_note(self, db: AsyncSession, note_id: UUID, caller_id: UUID) -> Note:
        """Owner-only lookup that hides whether a foreign note exists."""
        note = await db.get(Note, note_id)
        if note is None or note.user_id != caller_id:
            raise NoteNotFoundOrForbiddenError(
                note_id=str(note_id),
                context={"caller_id": str(caller_id)},
            )
        return note

    async def load_note_for_owner(self, db: AsyncSession, note_id: UUID, caller_id: UUID) -> Note:
        """Owner-only lookup that distinguishes missing (404) from foreign (403)."""
        note = await db.get(Note, note_id)
        if note is None:
            raise NotFoundError(resource="Note", resource_id=str(note_id))
        if note.user_id != caller_id:
            raise NotAuthorizedError(
                message="Only the note owner can do this",
                context={"caller_id": str(caller_id), "note_id": str(note_id)},
            )
        return note

    # ── Ledger mutations ──────────────────────────────────────────────────

    async def remove_access(
        self,
        db: AsyncSession,
        note_id: UUID,
        target_user_id: UUID,
        caller_id: UUID,
    ) -> None:
        """
        Deletes the ledger row for (note_id, target_user_id).

        Allowed for the note owner and for the target itself. ACCEPTED
        invitation rows stay as they are; re-sharing requires a new invitation.

        Raises:
            NotFoundError: note missing
            NotAuthorizedError: caller is neither owner nor target
            NoSuchAccessError: no ledger row (includes losing a race with a
                               concurrent removal of the same row)
        """
        note = await db.get(Note, note_id)
        if note is None:
            raise NotFoundError(resource="Note", resource_id=str(note_id))

        if caller_id != note.user_id and caller_id != target_user_id:
            raise NotAuthorizedError(
                message="Only the note owner or the user themself can remove access",
                context={"caller_id": str(caller_id), "note_id": str(note_id)},
            )

        result = await db.execute(
            delete(NoteAccess).where(
                NoteAccess.note_id == note_id,
                NoteAccess.user_id == target_user_id,
            )
        )
        if result.rowcount == 0:
            raise NoSuchAccessError(
                context={"note_id": str(note_id), "user_id": str(target_user_id)},
            )

        await self.recompute_shared(db, note)
        logger.info(
            "Access removed: note=%s user=%s by=%s shared=%s",
            note_id, target_user_id, caller_id, note.is_shared,
        )

    async def leave_shared_note(self, db: AsyncSession, note_id: UUID, user_id: UUID) -> None:
        """A collaborator drops their own access."""
        await self.remove_access(db, note_id, target_user_id=user_id, caller_id=user_id)

    async def clear_ledger(self, db: AsyncSession, note_id: UUID) -> int:
        """Deletes every ledger row of a note; returns how many were removed."""
        result = await db.execute(delete(NoteAccess).where(NoteAccess.note_id == note_id))
        return result.rowcount or 0

    # ── Listings ──────────────────────────────────────────────────────────

    async def list_shared_notes(self, db: AsyncSession, user_id: UUID) -> List[SharedNoteResponse]:
        """Notes shared with the user, newest grant first."""
        try:
            result = await db.execute(
                select(NoteAccess)
                .where(NoteAccess.user_id == user_id)
                .order_by(NoteAccess.granted_at.desc())
            )
            entries = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error listing shared notes: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve shared notes. Please try again.",
                context={"user_id": str(user_id)},
            )

        return [
            SharedNoteResponse(
                note=NoteResponse.model_validate(entry.note),
                permission=entry.permission,
                shared_by=UserSummary.model_validate(entry.granted_by),
                shared_at=entry.granted_at,
            )
            for entry in entries
        ]


# ── Singleton Instance ────────────────────────────────────────────────────
access_service = AccessService()
