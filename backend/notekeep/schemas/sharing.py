"""
NoteKeep Backend — Sharing Schemas
==================================

What:  Request/response models for invitations and the Access Ledger.

Token exposure:
    The invitation token is a bearer secret. It is returned to the note owner
    in the create response and in owner listings while the invitation is
    PENDING, and never in the public preview (the caller already holds it).
"""

import re
import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from notekeep.models.sharing import AccessPermission, Invitation, InvitationStatus
from notekeep.schemas.note import NoteResponse

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def validate_email_address(v: str) -> str:
    v = v.strip()
    if len(v) > 255 or not EMAIL_RE.match(v):
        raise ValueError("Invalid email address")
    return v


class UserSummary(BaseModel):
    id: uuid.UUID
    email: str

    model_config = {"from_attributes": True}


# ══════════════════════════════════════════════════════════════════════════
# Invitations
# ══════════════════════════════════════════════════════════════════════════


class InvitationCreate(BaseModel):
    """Body of POST /invitations/notes/{note_id}."""

    invited_email: str = Field(description="Recipient email; matched exactly on accept")
    permission: AccessPermission = Field(default=AccessPermission.READ)
    message: Optional[str] = Field(default=None, max_length=1000)
    expires_in_days: Optional[int] = Field(
        default=None, ge=1, le=30, description="Defaults to INVITATION_DEFAULT_EXPIRY_DAYS"
    )

    @field_validator("invited_email")
    @classmethod
    def validate_invited_email(cls, v: str) -> str:
        return validate_email_address(v)


class InvitationResponse(BaseModel):
    id: uuid.UUID
    note_id: uuid.UUID
    invited_email: str
    invited_by_id: uuid.UUID
    permission: AccessPermission
    message: Optional[str] = None
    status: InvitationStatus
    expires_at: datetime
    accepted_by_id: Optional[uuid.UUID] = None
    accepted_at: Optional[datetime] = None
    created_at: datetime
    token: Optional[str] = Field(
        default=None,
        description="Only present for the note owner while the invitation is PENDING",
    )

    model_config = {"from_attributes": True}

    @classmethod
    def for_owner(cls, invitation: Invitation) -> "InvitationResponse":
        response = cls.model_validate(invitation)
        if invitation.status != InvitationStatus.PENDING:
            response.token = None
        return response

    @classmethod
    def without_token(cls, invitation: Invitation) -> "InvitationResponse":
        response = cls.model_validate(invitation)
        response.token = None
        return response


class NoteInvitationResponse(InvitationResponse):
    """Owner view of a note's invitations, cross-checked against the ledger."""

    has_current_access: bool = Field(
        default=False,
        description="Accepted invitations only: the grantee still has a ledger row",
    )
    current_permission: Optional[AccessPermission] = None


class InvitationPreview(BaseModel):
    """Public preview shown to whoever holds the token."""

    id: uuid.UUID
    note_id: uuid.UUID
    note_title: str
    invited_email: str
    invited_by: UserSummary
    permission: AccessPermission
    message: Optional[str] = None
    status: InvitationStatus
    expires_at: datetime


class PendingInvitationResponse(InvitationResponse):
    """An invitation addressed to the caller, with enough context to decide."""

    note_title: str
    invited_by: UserSummary


class InvitationStats(BaseModel):
    sent: int = Field(description="Invitations sent by the caller")
    received: int = Field(description="Invitations addressed to the caller's email")
    pending: int = Field(description="Received invitations still PENDING")


# ══════════════════════════════════════════════════════════════════════════
# Access Ledger
# ══════════════════════════════════════════════════════════════════════════


class AccessGrantResponse(BaseModel):
    """Ledger entry created by accepting an invitation."""

    id: uuid.UUID
    note_id: uuid.UUID
    user_id: uuid.UUID
    permission: AccessPermission
    granted_at: datetime
    note: NoteResponse
    granted_by: UserSummary

    model_config = {"from_attributes": True}


class SharedNoteResponse(BaseModel):
    note: NoteResponse
    permission: AccessPermission
    shared_by: UserSummary
    shared_at: datetime
