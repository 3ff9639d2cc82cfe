"""
NoteKeep Backend — Notes Route Handlers
=======================================

What:  CRUD over notes, plus pinning, reordering and checkbox toggling.
How:   Resolves the caller through deps, checks API-key capabilities and
       quotas, delegates to NoteService and schedules webhook deliveries
       as background tasks after the response.
Who:   Note owners, and collaborators holding an Access Ledger row.

Access:
    GET    /notes/{id}   READ   (owner or any ledger row)
    PATCH  /notes/{id}   WRITE
    DELETE /notes/{id}   ADMIN
    PATCH  /notes/{id}/pin, PUT /notes/order    owner only

A caller without the required level gets 404, same as for a note that does
not exist.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.database import get_db_session
from notekeep.deps import RequirePermission, enforce_note_quota, get_notifier
from notekeep.models.api_key import ApiKeyPermission
from notekeep.models.note import Note
from notekeep.models.user import User
from notekeep.models.webhook import WebhookAction
from notekeep.schemas.common import ErrorResponse
from notekeep.schemas.note import (
    CheckboxResponse,
    CheckboxToggle,
    MessageResponse,
    NoteCreate,
    NoteResponse,
    NoteUpdate,
    PinUpdate,
    ReorderRequest,
)
from notekeep.services.note_service import note_service
from notekeep.services.webhook_service import WebhookNotifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notes", tags=["Notes"])


def note_payload(note: Note) -> dict:
    """JSON-ready snapshot of a note for webhook bodies."""
    return NoteResponse.model_validate(note).model_dump(mode="json")


# Fixed paths come before /{note_id} so they are not captured by it.

@router.put(
    "/order",
    response_model=List[NoteResponse],
    responses={
        404: {"description": "One of the ids is not the caller's note", "model": ErrorResponse},
    },
    summary="Reorder the caller's notes",
    description="Sets each listed note's display order to its index in `note_ids`.",
)
async def reorder_notes(
    body: ReorderRequest,
    user: User = Depends(RequirePermission(ApiKeyPermission.UPDATE_NOTES)),
    db: AsyncSession = Depends(get_db_session),
) -> List[NoteResponse]:
    notes = await note_service.reorder_notes(db, user.id, body.note_ids)
    return [NoteResponse.model_validate(n) for n in notes]


@router.patch(
    "/checkboxes/{checkbox_id}",
    response_model=CheckboxResponse,
    responses={404: {"description": "Checkbox not found or not writable", "model": ErrorResponse}},
    summary="Check or uncheck a checkbox",
)
async def toggle_checkbox(
    checkbox_id: UUID,
    body: CheckboxToggle,
    user: User = Depends(RequirePermission(ApiKeyPermission.UPDATE_NOTES)),
    db: AsyncSession = Depends(get_db_session),
) -> CheckboxResponse:
    checkbox = await note_service.toggle_checkbox(db, checkbox_id, user.id, body.checked)
    return CheckboxResponse.model_validate(checkbox)


@router.get(
    "",
    response_model=List[NoteResponse],
    summary="List the caller's notes",
    description=(
        "Owned, non-template notes: pinned first, then by display order, then newest. "
        "Notes shared with the caller are listed under /invitations/shared-notes."
    ),
)
async def list_notes(
    user: User = Depends(RequirePermission(ApiKeyPermission.READ_NOTES)),
    db: AsyncSession = Depends(get_db_session),
) -> List[NoteResponse]:
    notes = await note_service.list_notes(db, user.id)
    return [NoteResponse.model_validate(n) for n in notes]


@router.post(
    "",
    status_code=201,
    response_model=NoteResponse,
    responses={
        400: {"description": "Invalid note fields", "model": ErrorResponse},
        423: {"description": "Note quota reached", "model": ErrorResponse},
    },
    summary="Create a note",
    dependencies=[Depends(enforce_note_quota)],
)
async def create_note(
    body: NoteCreate,
    background_tasks: BackgroundTasks,
    user: User = Depends(RequirePermission(ApiKeyPermission.CREATE_NOTES)),
    db: AsyncSession = Depends(get_db_session),
    notifier: WebhookNotifier = Depends(get_notifier),
) -> NoteResponse:
    note = await note_service.create_note(db, user.id, body)
    background_tasks.add_task(notifier.notify, user.id, WebhookAction.NOTE_CREATED, note_payload(note))
    return NoteResponse.model_validate(note)


@router.get(
    "/{note_id}",
    response_model=NoteResponse,
    responses={404: {"description": "Note not found or not authorized", "model": ErrorResponse}},
    summary="Get a note",
)
async def get_note(
    note_id: UUID,
    user: User = Depends(RequirePermission(ApiKeyPermission.READ_NOTES)),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    note = await note_service.get_note(db, note_id, user.id)
    return NoteResponse.model_validate(note)


@router.patch(
    "/{note_id}",
    response_model=NoteResponse,
    responses={
        400: {"description": "Invalid note fields", "model": ErrorResponse},
        404: {"description": "Note not found or not writable", "model": ErrorResponse},
    },
    summary="Update a note",
    description=(
        "Updates only the fields present in the body. A `checkboxes` list replaces the "
        "note's checkboxes wholesale. Requires WRITE access."
    ),
)
async def update_note(
    note_id: UUID,
    body: NoteUpdate,
    background_tasks: BackgroundTasks,
    user: User = Depends(RequirePermission(ApiKeyPermission.UPDATE_NOTES)),
    db: AsyncSession = Depends(get_db_session),
    notifier: WebhookNotifier = Depends(get_notifier),
) -> NoteResponse:
    note = await note_service.update_note(db, note_id, user.id, body)
    background_tasks.add_task(notifier.notify, user.id, WebhookAction.NOTE_UPDATED, note_payload(note))
    return NoteResponse.model_validate(note)


@router.delete(
    "/{note_id}",
    response_model=MessageResponse,
    responses={404: {"description": "Note not found or not deletable", "model": ErrorResponse}},
    summary="Delete a note",
    description="Removes the note with its checkboxes, invitations and shared access. Requires ADMIN.",
)
async def delete_note(
    note_id: UUID,
    background_tasks: BackgroundTasks,
    user: User = Depends(RequirePermission(ApiKeyPermission.DELETE_NOTES)),
    db: AsyncSession = Depends(get_db_session),
    notifier: WebhookNotifier = Depends(get_notifier),
) -> MessageResponse:
    note = await note_service.delete_note(db, note_id, user.id)
    background_tasks.add_task(notifier.notify, user.id, WebhookAction.NOTE_DELETED, note_payload(note))
    return MessageResponse(message="Note deleted")


@router.patch(
    "/{note_id}/pin",
    response_model=NoteResponse,
    responses={404: {"description": "Note not found or not authorized", "model": ErrorResponse}},
    summary="Pin or unpin a note",
)
async def pin_note(
    note_id: UUID,
    body: PinUpdate,
    user: User = Depends(RequirePermission(ApiKeyPermission.UPDATE_NOTES)),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    note = await note_service.set_pinned(db, note_id, user.id, body.is_pinned)
    return NoteResponse.model_validate(note)
