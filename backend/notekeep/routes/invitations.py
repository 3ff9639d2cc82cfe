"""
NoteKeep Backend — Invitation & Sharing Route Handlers
======================================================

What:  HTTP surface of the sharing model: invitations, their state
       transitions, and direct management of granted access.
How:   Thin handlers over InvitationService and AccessService. All state
       changes happen in the request's single transaction.

Route map:
    POST   /invitations/notes/{note_id}             owner invites an email
    GET    /invitations/notes/{note_id}             owner lists a note's invitations
    GET    /invitations/pending                     invitations addressed to me
    GET    /invitations/sent                        invitations I sent
    GET    /invitations/stats                       counts
    GET    /invitations/shared-notes                notes shared with me
    DELETE /invitations/access/{note_id}/{user_id}  owner (or user) removes access
    DELETE /invitations/leave/{note_id}             I leave a shared note
    DELETE /invitations/{invitation_id}/revoke      owner revokes a PENDING invite
    GET    /invitations/{token}                     public preview
    POST   /invitations/{token}/accept|decline      recipient transitions

Tokens are path parameters; the access log masks them.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.database import get_db_session
from notekeep.deps import RequireFeature, RequirePermission
from notekeep.models.api_key import ApiKeyPermission
from notekeep.models.user import User
from notekeep.schemas.common import ErrorResponse
from notekeep.schemas.note import MessageResponse
from notekeep.schemas.sharing import (
    AccessGrantResponse,
    InvitationCreate,
    InvitationPreview,
    InvitationResponse,
    InvitationStats,
    NoteInvitationResponse,
    PendingInvitationResponse,
    SharedNoteResponse,
)
from notekeep.services.access_service import access_service
from notekeep.services.invitation_service import invitation_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/invitations",
    tags=["Sharing"],
    dependencies=[Depends(RequireFeature("sharing_enabled"))],
)

_share = RequirePermission(ApiKeyPermission.SHARE_NOTES)


# ── Owner: per-note ───────────────────────────────────────────────────────

@router.post(
    "/notes/{note_id}",
    status_code=201,
    response_model=InvitationResponse,
    responses={
        404: {"description": "Note not found or not authorized", "model": ErrorResponse},
        409: {
            "description": (
                "Already pending, recipient already has access, self-invitation, "
                "or the note is a template"
            ),
            "model": ErrorResponse,
        },
    },
    summary="Invite someone to a note",
    description=(
        "Creates a PENDING invitation for the given email. A previous declined, expired "
        "or revoked invitation for the same email is replaced. The response carries the "
        "token the recipient accepts with."
    ),
)
async def create_invitation(
    note_id: UUID,
    body: InvitationCreate,
    user: User = Depends(_share),
    db: AsyncSession = Depends(get_db_session),
) -> InvitationResponse:
    invitation = await invitation_service.create_invitation(
        db,
        note_id=note_id,
        invited_email=body.invited_email,
        inviter_id=user.id,
        permission=body.permission,
        message=body.message,
        expires_in_days=body.expires_in_days,
    )
    return InvitationResponse.for_owner(invitation)


@router.get(
    "/notes/{note_id}",
    response_model=List[NoteInvitationResponse],
    responses={
        403: {"description": "Caller is not the note owner", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
    },
    summary="List a note's invitations",
)
async def list_note_invitations(
    note_id: UUID,
    user: User = Depends(_share),
    db: AsyncSession = Depends(get_db_session),
) -> List[NoteInvitationResponse]:
    return await invitation_service.list_note_invitations(db, note_id, user.id)


# ── Caller's listings ─────────────────────────────────────────────────────

@router.get(
    "/pending",
    response_model=List[PendingInvitationResponse],
    summary="Invitations waiting for me",
)
async def list_pending_invitations(
    user: User = Depends(_share),
    db: AsyncSession = Depends(get_db_session),
) -> List[PendingInvitationResponse]:
    return await invitation_service.list_pending_invitations(db, user.email)


@router.get(
    "/sent",
    response_model=List[InvitationResponse],
    summary="Invitations I sent",
)
async def list_sent_invitations(
    user: User = Depends(_share),
    db: AsyncSession = Depends(get_db_session),
) -> List[InvitationResponse]:
    return await invitation_service.list_sent_invitations(db, user.id)


@router.get("/stats", response_model=InvitationStats, summary="Invitation counts")
async def invitation_stats(
    user: User = Depends(_share),
    db: AsyncSession = Depends(get_db_session),
) -> InvitationStats:
    return await invitation_service.invitation_stats(db, user.id)


@router.get(
    "/shared-notes",
    response_model=List[SharedNoteResponse],
    summary="Notes shared with me",
)
async def list_shared_notes(
    user: User = Depends(RequirePermission(ApiKeyPermission.READ_NOTES)),
    db: AsyncSession = Depends(get_db_session),
) -> List[SharedNoteResponse]:
    return await access_service.list_shared_notes(db, user.id)


# ── Access Ledger ─────────────────────────────────────────────────────────

@router.delete(
    "/access/{note_id}/{user_id}",
    response_model=MessageResponse,
    responses={
        403: {"description": "Caller is neither the owner nor that user", "model": ErrorResponse},
        404: {"description": "Note not found, or that user has no access", "model": ErrorResponse},
    },
    summary="Remove a user's access to a note",
)
async def remove_access(
    note_id: UUID,
    user_id: UUID,
    user: User = Depends(_share),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await access_service.remove_access(db, note_id, target_user_id=user_id, caller_id=user.id)
    return MessageResponse(message="Access removed")


@router.delete(
    "/leave/{note_id}",
    response_model=MessageResponse,
    responses={404: {"description": "Note not found, or no access to leave", "model": ErrorResponse}},
    summary="Leave a note shared with me",
)
async def leave_shared_note(
    note_id: UUID,
    user: User = Depends(_share),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await access_service.leave_shared_note(db, note_id, user.id)
    return MessageResponse(message="You no longer have access to this note")


# ── By id / token ─────────────────────────────────────────────────────────

@router.delete(
    "/{invitation_id}/revoke",
    response_model=InvitationResponse,
    responses={
        403: {"description": "Caller is not the note owner", "model": ErrorResponse},
        404: {"description": "Invitation not found", "model": ErrorResponse},
        409: {"description": "Invitation is no longer pending", "model": ErrorResponse},
    },
    summary="Revoke a pending invitation",
)
async def revoke_invitation(
    invitation_id: UUID,
    user: User = Depends(_share),
    db: AsyncSession = Depends(get_db_session),
) -> InvitationResponse:
    invitation = await invitation_service.revoke_invitation(db, invitation_id, user.id)
    return InvitationResponse.without_token(invitation)


@router.get(
    "/{token}",
    response_model=InvitationPreview,
    responses={
        404: {"description": "Invitation not found", "model": ErrorResponse},
        410: {"description": "Invitation has expired", "model": ErrorResponse},
    },
    summary="Preview an invitation",
    description="Public. Shows the note title, inviter and permission behind a token.",
)
async def get_invitation_preview(
    token: str,
    db: AsyncSession = Depends(get_db_session),
) -> InvitationPreview:
    return await invitation_service.get_invitation_preview(db, token)


@router.post(
    "/{token}/accept",
    response_model=AccessGrantResponse,
    responses={
        403: {"description": "Invitation is addressed to another email", "model": ErrorResponse},
        404: {"description": "Invitation not found", "model": ErrorResponse},
        409: {"description": "Not pending, or access already granted", "model": ErrorResponse},
        410: {"description": "Invitation has expired", "model": ErrorResponse},
    },
    summary="Accept an invitation",
)
async def accept_invitation(
    token: str,
    user: User = Depends(_share),
    db: AsyncSession = Depends(get_db_session),
) -> AccessGrantResponse:
    return await invitation_service.accept_invitation(db, token, user.id)


@router.post(
    "/{token}/decline",
    response_model=InvitationResponse,
    responses={
        403: {"description": "Invitation is addressed to another email", "model": ErrorResponse},
        404: {"description": "Invitation not found", "model": ErrorResponse},
        409: {"description": "Invitation is no longer pending", "model": ErrorResponse},
    },
    summary="Decline an invitation",
)
async def decline_invitation(
    token: str,
    user: User = Depends(_share),
    db: AsyncSession = Depends(get_db_session),
) -> InvitationResponse:
    invitation = await invitation_service.decline_invitation(db, token, user.id)
    return InvitationResponse.without_token(invitation)
