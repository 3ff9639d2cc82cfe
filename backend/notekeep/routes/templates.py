"""
NoteKeep Backend — Template Route Handlers
==========================================

What:  Template CRUD, creating notes from templates, and the two conversion
       endpoints between notes and templates.
How:   Templates are notes with is_template=True, private to their owner.
       Converting a note drops all of its sharing (ledger rows and pending
       invitations) in the request's transaction.

All routes are unavailable when the instance disables templates (424).
Conversion endpoints accept user sessions only, not API keys.
"""

import logging
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.database import get_db_session
from notekeep.deps import (
    RequireFeature,
    RequirePermission,
    enforce_note_quota,
    enforce_template_quota,
    get_notifier,
    require_jwt_user,
)
from notekeep.models.api_key import ApiKeyPermission
from notekeep.models.user import User
from notekeep.models.webhook import WebhookAction
from notekeep.routes.notes import note_payload
from notekeep.schemas.common import ErrorResponse
from notekeep.schemas.note import (
    MessageResponse,
    NoteResponse,
    TemplateCreate,
    TemplateUpdate,
    TemplateUse,
)
from notekeep.services.note_service import note_service
from notekeep.services.webhook_service import WebhookNotifier

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/templates",
    tags=["Templates"],
    dependencies=[Depends(RequireFeature("templates_enabled"))],
)

_NOT_FOUND = {"description": "Template not found or not authorized", "model": ErrorResponse}


# ── Conversion ────────────────────────────────────────────────────────────

@router.post(
    "/convert/from-note/{note_id}",
    response_model=NoteResponse,
    responses={
        403: {"description": "API keys cannot convert notes", "model": ErrorResponse},
        404: {"description": "Note not found or not authorized", "model": ErrorResponse},
        423: {"description": "Template quota reached", "model": ErrorResponse},
    },
    summary="Convert a note into a template",
    description=(
        "Owner only. Removes every collaborator's access and revokes pending "
        "invitations before the note becomes a template. Content and checkboxes are kept."
    ),
    dependencies=[Depends(enforce_template_quota)],
)
async def convert_note_to_template(
    note_id: UUID,
    user: User = Depends(require_jwt_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    template = await note_service.convert_note_to_template(db, note_id, user.id)
    return NoteResponse.model_validate(template)


@router.post(
    "/convert/to-note/{template_id}",
    response_model=NoteResponse,
    responses={
        403: {"description": "API keys cannot convert templates", "model": ErrorResponse},
        404: _NOT_FOUND,
        423: {"description": "Note quota reached", "model": ErrorResponse},
    },
    summary="Convert a template back into a note",
    description="Owner only. The resulting note is not shared with anyone.",
    dependencies=[Depends(enforce_note_quota)],
)
async def convert_template_to_note(
    template_id: UUID,
    user: User = Depends(require_jwt_user),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    note = await note_service.convert_template_to_note(db, template_id, user.id)
    return NoteResponse.model_validate(note)


# ── CRUD ──────────────────────────────────────────────────────────────────

@router.get("", response_model=List[NoteResponse], summary="List the caller's templates")
async def list_templates(
    user: User = Depends(RequirePermission(ApiKeyPermission.READ_TEMPLATES)),
    db: AsyncSession = Depends(get_db_session),
) -> List[NoteResponse]:
    templates = await note_service.list_templates(db, user.id)
    return [NoteResponse.model_validate(t) for t in templates]


@router.post(
    "",
    status_code=201,
    response_model=NoteResponse,
    responses={423: {"description": "Template quota reached", "model": ErrorResponse}},
    summary="Create a template",
    dependencies=[Depends(enforce_template_quota)],
)
async def create_template(
    body: TemplateCreate,
    user: User = Depends(RequirePermission(ApiKeyPermission.CREATE_TEMPLATES)),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    template = await note_service.create_template(db, user.id, body)
    return NoteResponse.model_validate(template)


@router.get(
    "/{template_id}",
    response_model=NoteResponse,
    responses={404: _NOT_FOUND},
    summary="Get a template",
)
async def get_template(
    template_id: UUID,
    user: User = Depends(RequirePermission(ApiKeyPermission.READ_TEMPLATES)),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    template = await note_service.get_template(db, template_id, user.id)
    return NoteResponse.model_validate(template)


@router.patch(
    "/{template_id}",
    response_model=NoteResponse,
    responses={404: _NOT_FOUND},
    summary="Update a template",
)
async def update_template(
    template_id: UUID,
    body: TemplateUpdate,
    user: User = Depends(RequirePermission(ApiKeyPermission.UPDATE_TEMPLATES)),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    template = await note_service.update_template(db, template_id, user.id, body)
    return NoteResponse.model_validate(template)


@router.delete(
    "/{template_id}",
    response_model=MessageResponse,
    responses={404: _NOT_FOUND},
    summary="Delete a template",
)
async def delete_template(
    template_id: UUID,
    user: User = Depends(RequirePermission(ApiKeyPermission.DELETE_TEMPLATES)),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await note_service.delete_template(db, template_id, user.id)
    return MessageResponse(message="Template deleted")


@router.post(
    "/{template_id}/use",
    status_code=201,
    response_model=NoteResponse,
    responses={
        404: _NOT_FOUND,
        423: {"description": "Note quota reached", "model": ErrorResponse},
    },
    summary="Create a note from a template",
    description="Copies the template's title, content, color and checkboxes; body fields override them.",
    dependencies=[Depends(enforce_note_quota)],
)
async def use_template(
    template_id: UUID,
    background_tasks: BackgroundTasks,
    body: Optional[TemplateUse] = Body(default=None),
    user: User = Depends(RequirePermission(ApiKeyPermission.USE_TEMPLATES)),
    db: AsyncSession = Depends(get_db_session),
    notifier: WebhookNotifier = Depends(get_notifier),
) -> NoteResponse:
    note = await note_service.create_note_from_template(db, template_id, user.id, body)
    background_tasks.add_task(notifier.notify, user.id, WebhookAction.NOTE_CREATED, note_payload(note))
    return NoteResponse.model_validate(note)
