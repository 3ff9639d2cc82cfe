"""
NoteKeep Backend — Invitation Service (Invitation State Machine)
================================================================

What:  Manages an invitation from "owner invites an email" to "ledger entry
       created", including decline, revoke, expiry and re-invitation after a
       prior terminal state.
Who:   Called by the /invitations routes.

State machine:

    ┌─────────┐  accept   ┌──────────┐
    │ PENDING │──────────▶│ ACCEPTED │──▶ NoteAccess row written
    └─────────┘           └──────────┘    in the same transaction
        │  decline  ┌──────────┐
        ├──────────▶│ DECLINED │
        │  revoke   ┌──────────┐
        ├──────────▶│ REVOKED  │
        │  expire   ┌──────────┐
        └──────────▶│ EXPIRED  │   (lazy on read/accept, or bulk sweep)
                    └──────────┘

    Every non-PENDING state is terminal. Any transition attempted from a
    terminal state fails with InvitationNotPendingError (409), except revoke
    on ACCEPTED which has its own CannotRevokeAcceptedError.

Expiry:
    is_expired(invitation, now) is the single expiry predicate. The preview
    path, the accept path and expire_pending_invitations() all use it (the
    sweep expresses the same comparison in SQL).

    A lazily discovered expiry is committed before InvitationExpiredError is
    raised; the request transaction rolls back on the error and would
    otherwise discard the EXPIRED status.

Time:
    Every method takes an optional `now` so tests can advance the clock
    without patching datetime.
"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.config import settings
from notekeep.exceptions import (
    AlreadyHasAccessError,
    CannotRevokeAcceptedError,
    InvitationAlreadyPendingError,
    InvitationExpiredError,
    InvitationNotFoundError,
    InvitationNotPendingError,
    NotAuthorizedError,
    NotFoundError,
    SelfInvitationError,
    TemplateNotShareableError,
    WrongRecipientError,
)
from notekeep.models.sharing import AccessPermission, Invitation, InvitationStatus, NoteAccess
from notekeep.models.user import User
from notekeep.schemas.note import NoteResponse
from notekeep.schemas.sharing import (
    AccessGrantResponse,
    InvitationPreview,
    InvitationResponse,
    InvitationStats,
    NoteInvitationResponse,
    PendingInvitationResponse,
    UserSummary,
)
from notekeep.services.access_service import access_service
from notekeep.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


def generate_invitation_token() -> str:
    """64 hex characters, 256 bits from the OS CSPRNG."""
    return secrets.token_hex(TOKEN_BYTES)


def is_expired(invitation: Invitation, now: datetime) -> bool:
    """True once `now` is past the invitation's expiry. Status is not consulted."""
    return as_utc(now) > as_utc(invitation.expires_at)


class InvitationService:
    """
    Stateless service implementing the invitation state machine.

    Methods flush and leave the commit to get_db_session(), except for the
    lazy-expiry branch described in the module docstring.
    """

    # ══════════════════════════════════════════════════════════════════════
    # Transitions
    # ══════════════════════════════════════════════════════════════════════

    async def create_invitation(
        self,
        db: AsyncSession,
        note_id: UUID,
        invited_email: str,
        inviter_id: UUID,
        permission: AccessPermission = AccessPermission.READ,
        message: Optional[str] = None,
        expires_in_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Invitation:
        """
        Creates a PENDING invitation for (note, invited_email).

        Conflict resolution, in order:
            1. a PENDING invitation for the pair exists → InvitationAlreadyPendingError
            2. the email belongs to a user already in the ledger → AlreadyHasAccessError
            3. a terminal invitation for the pair exists → it is deleted

        Effect:
            New token, expires_at = now + expires_in_days, and the note is
            flagged is_shared optimistically.

        Returns:
            The invitation including its token, for the owner only.

        Raises:
            NoteNotFoundOrForbiddenError: note missing or caller is not its owner
            SelfInvitationError: inviting your own email
            TemplateNotShareableError: the note is a template
        """
        now = now or utcnow()
        if expires_in_days is None:
            expires_in_days = settings.invitation_default_expiry_days
        ctx = {"note_id": str(note_id), "inviter_id": str(inviter_id)}

        note = await access_service.load_owned_note(db, note_id, inviter_id)

        inviter = await db.get(User, inviter_id)
        if inviter is not None and inviter.email == invited_email:
            raise SelfInvitationError(context=ctx)

        if note.is_template:
            raise TemplateNotShareableError(context=ctx)

        existing = await self._find_for_pair(db, note_id, invited_email)
        if existing is not None and existing.status == InvitationStatus.PENDING:
            raise InvitationAlreadyPendingError(context=ctx)

        invitee = await self._find_user_by_email(db, invited_email)
        if invitee is not None:
            entry = await access_service.get_entry(db, note_id, invitee.id)
            if entry is not None:
                raise AlreadyHasAccessError(context={**ctx, "user_id": str(invitee.id)})

        if existing is not None:
            # Flushed on its own: the unit of work orders INSERTs before
            # DELETEs, which would trip uq_invitation_note_email
            logger.info(
                "Superseding %s invitation %s for note %s",
                existing.status.value, existing.id, note_id,
            )
            await db.delete(existing)
            await db.flush()

        invitation = Invitation(
            note=note,
            invited_by=inviter,
            invited_email=invited_email,
            permission=permission,
            message=message,
            token=generate_invitation_token(),
            status=InvitationStatus.PENDING,
            expires_at=now + timedelta(days=expires_in_days),
            created_at=now,
            updated_at=now,
        )
        db.add(invitation)
        note.is_shared = True
        await db.flush()

        logger.info(
            "Invitation %s created: note=%s inviter=%s permission=%s expires_in_days=%d",
            invitation.id, note_id, inviter_id, permission.value, expires_in_days,
        )
        return invitation

    async def accept_invitation(
        self,
        db: AsyncSession,
        token: str,
        accepting_user_id: UUID,
        now: Optional[datetime] = None,
    ) -> AccessGrantResponse:
        """
        Accepts an invitation and writes the Access Ledger row.

        The ledger insert, the ACCEPTED transition and the is_shared
        recompute share one transaction. If the insert hits the
        (note_id, user_id) unique constraint the whole transaction is rolled
        back and nothing changes.

        Raises:
            InvitationNotFoundError: unknown token
            InvitationNotPendingError: invitation already terminal
            InvitationExpiredError: past expiry (EXPIRED is committed first)
            WrongRecipientError: caller's email differs from invited_email
            AlreadyHasAccessError: caller is already in the ledger
        """
        now = now or utcnow()
        invitation = await self._get_by_token(db, token, for_update=True)
        ctx = {"invitation_id": str(invitation.id), "user_id": str(accepting_user_id)}

        if invitation.status != InvitationStatus.PENDING:
            raise InvitationNotPendingError(status=invitation.status.value, context=ctx)

        if is_expired(invitation, now):
            await self._expire_and_commit(db, invitation, now)
            raise InvitationExpiredError(context=ctx)

        user = await db.get(User, accepting_user_id)
        if user is None or user.email != invitation.invited_email:
            raise WrongRecipientError(context=ctx)

        note = invitation.note
        if await access_service.get_entry(db, note.id, user.id) is not None:
            raise AlreadyHasAccessError(context=ctx)

        entry = NoteAccess(
            note=note,
            user=user,
            granted_by=invitation.invited_by,
            permission=invitation.permission,
            granted_at=now,
        )
        db.add(entry)
        invitation.status = InvitationStatus.ACCEPTED
        invitation.accepted_by_id = user.id
        invitation.accepted_at = now
        invitation.updated_at = now

        try:
            await db.flush()
        except IntegrityError:
            # rollback expires every loaded instance; log from ctx only
            await db.rollback()
            logger.warning(
                "Concurrent grant detected accepting invitation %s for user %s",
                ctx["invitation_id"], ctx["user_id"],
            )
            raise AlreadyHasAccessError(context=ctx)

        await access_service.recompute_shared(db, note)

        logger.info(
            "Invitation %s accepted: note=%s user=%s permission=%s",
            invitation.id, note.id, user.id, entry.permission.value,
        )
        return AccessGrantResponse(
            id=entry.id,
            note_id=note.id,
            user_id=user.id,
            permission=entry.permission,
            granted_at=entry.granted_at,
            note=NoteResponse.model_validate(note),
            granted_by=UserSummary.model_validate(invitation.invited_by),
        )

    async def decline_invitation(
        self,
        db: AsyncSession,
        token: str,
        declining_user_id: UUID,
        now: Optional[datetime] = None,
    ) -> Invitation:
        """PENDING → DECLINED. No ledger effect."""
        now = now or utcnow()
        invitation = await self._get_by_token(db, token, for_update=True)
        ctx = {"invitation_id": str(invitation.id), "user_id": str(declining_user_id)}

        user = await db.get(User, declining_user_id)
        if user is None or user.email != invitation.invited_email:
            raise WrongRecipientError(context=ctx)

        if invitation.status != InvitationStatus.PENDING:
            raise InvitationNotPendingError(status=invitation.status.value, context=ctx)

        invitation.status = InvitationStatus.DECLINED
        invitation.updated_at = now
        await db.flush()

        logger.info("Invitation %s declined by user %s", invitation.id, declining_user_id)
        return invitation

    async def revoke_invitation(
        self,
        db: AsyncSession,
        invitation_id: UUID,
        caller_id: UUID,
        now: Optional[datetime] = None,
    ) -> Invitation:
        """
        PENDING → REVOKED, by the note owner.

        The ledger is not touched: an accepted invitation cannot be revoked,
        its grant is removed through remove_access instead.
        """
        now = now or utcnow()
        invitation = await db.get(Invitation, invitation_id)
        ctx = {"invitation_id": str(invitation_id), "caller_id": str(caller_id)}
        if invitation is None:
            raise InvitationNotFoundError(context=ctx)

        if invitation.note.user_id != caller_id:
            raise NotAuthorizedError(
                message="Only the note owner can revoke an invitation",
                context=ctx,
            )

        if invitation.status == InvitationStatus.ACCEPTED:
            raise CannotRevokeAcceptedError(context=ctx)
        if invitation.status != InvitationStatus.PENDING:
            raise InvitationNotPendingError(status=invitation.status.value, context=ctx)

        invitation.status = InvitationStatus.REVOKED
        invitation.updated_at = now
        await db.flush()

        logger.info("Invitation %s revoked by owner %s", invitation_id, caller_id)
        return invitation

    async def expire_pending_invitations(
        self, db: AsyncSession, now: Optional[datetime] = None
    ) -> int:
        """
        PENDING → EXPIRED for every invitation past its expiry.

        Returns the number of rows changed. Running it again with the same
        `now` changes nothing and returns 0.
        """
        now = now or utcnow()
        # Rows an in-flight accept holds are left for the next run
        result = await db.execute(
            select(Invitation)
            .where(
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at < now,
            )
            .with_for_update(skip_locked=True)
        )
        overdue = list(result.scalars().all())
        for invitation in overdue:
            invitation.status = InvitationStatus.EXPIRED
            invitation.updated_at = now
        await db.flush()

        count = len(overdue)
        if count:
            logger.info("Expired %d overdue invitation(s)", count)
        return count

    # ══════════════════════════════════════════════════════════════════════
    # Reads
    # ══════════════════════════════════════════════════════════════════════

    async def get_invitation_preview(
        self,
        db: AsyncSession,
        token: str,
        now: Optional[datetime] = None,
    ) -> InvitationPreview:
        """
        Public preview by token. An overdue PENDING invitation is expired
        (and committed) before InvitationExpiredError is raised.
        """
        now = now or utcnow()
        invitation = await self._get_by_token(db, token)

        if invitation.status == InvitationStatus.PENDING and is_expired(invitation, now):
            await self._expire_and_commit(db, invitation, now)
            raise InvitationExpiredError(context={"invitation_id": str(invitation.id)})

        return InvitationPreview(
            id=invitation.id,
            note_id=invitation.note_id,
            note_title=invitation.note.title,
            invited_email=invitation.invited_email,
            invited_by=UserSummary.model_validate(invitation.invited_by),
            permission=invitation.permission,
            message=invitation.message,
            status=invitation.status,
            expires_at=invitation.expires_at,
        )

    async def list_pending_invitations(
        self,
        db: AsyncSession,
        email: str,
        now: Optional[datetime] = None,
    ) -> List[PendingInvitationResponse]:
        """PENDING, unexpired invitations addressed to `email`, newest first."""
        now = now or utcnow()
        result = await db.execute(
            select(Invitation)
            .where(
                Invitation.invited_email == email,
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at > now,
            )
            .order_by(Invitation.created_at.desc())
        )
        # The token stays in: the recipient accepts with it, and accepting
        # still requires being logged in as invited_email
        return [
            PendingInvitationResponse(
                **InvitationResponse.model_validate(invitation).model_dump(),
                note_title=invitation.note.title,
                invited_by=UserSummary.model_validate(invitation.invited_by),
            )
            for invitation in result.scalars().all()
        ]

    async def list_sent_invitations(
        self, db: AsyncSession, user_id: UUID
    ) -> List[InvitationResponse]:
        result = await db.execute(
            select(Invitation)
            .where(Invitation.invited_by_id == user_id)
            .order_by(Invitation.created_at.desc())
        )
        return [InvitationResponse.for_owner(inv) for inv in result.scalars().all()]

    async def list_note_invitations(
        self, db: AsyncSession, note_id: UUID, caller_id: UUID
    ) -> List[NoteInvitationResponse]:
        """
        All invitations of a note, for its owner.

        Accepted invitations are cross-checked against the ledger, since the
        grant may have been removed since.
        """
        await access_service.load_note_for_owner(db, note_id, caller_id)

        result = await db.execute(
            select(Invitation)
            .where(Invitation.note_id == note_id)
            .order_by(Invitation.created_at.desc())
        )
        items = []
        for invitation in result.scalars().all():
            item = NoteInvitationResponse.for_owner(invitation)
            if invitation.status == InvitationStatus.ACCEPTED and invitation.accepted_by_id:
                entry = await access_service.get_entry(db, note_id, invitation.accepted_by_id)
                if entry is not None:
                    item.has_current_access = True
                    item.current_permission = entry.permission
            items.append(item)
        return items

    async def invitation_stats(
        self,
        db: AsyncSession,
        user_id: UUID,
        now: Optional[datetime] = None,
    ) -> InvitationStats:
        now = now or utcnow()
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError(resource="User", resource_id=str(user_id))

        sent = await db.scalar(
            select(func.count(Invitation.id)).where(Invitation.invited_by_id == user_id)
        )
        received = await db.scalar(
            select(func.count(Invitation.id)).where(Invitation.invited_email == user.email)
        )
        pending = await db.scalar(
            select(func.count(Invitation.id)).where(
                Invitation.invited_email == user.email,
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at > now,
            )
        )
        return InvitationStats(sent=sent or 0, received=received or 0, pending=pending or 0)

    # ══════════════════════════════════════════════════════════════════════
    # Helpers
    # ══════════════════════════════════════════════════════════════════════

    async def _get_by_token(
        self, db: AsyncSession, token: str, for_update: bool = False
    ) -> Invitation:
        query = select(Invitation).where(Invitation.token == token)
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        invitation = result.scalar_one_or_none()
        if invitation is None:
            raise InvitationNotFoundError()
        return invitation

    async def _find_for_pair(
        self, db: AsyncSession, note_id: UUID, email: str
    ) -> Optional[Invitation]:
        result = await db.execute(
            select(Invitation).where(
                Invitation.note_id == note_id,
                Invitation.invited_email == email,
            )
        )
        return result.scalar_one_or_none()

    async def _find_user_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def _expire_and_commit(
        self, db: AsyncSession, invitation: Invitation, now: datetime
    ) -> None:
        invitation.status = InvitationStatus.EXPIRED
        invitation.updated_at = now
        await db.commit()
        logger.info("Invitation %s expired on access", invitation.id)


# ── Singleton Instance ────────────────────────────────────────────────────
invitation_service = InvitationService()
