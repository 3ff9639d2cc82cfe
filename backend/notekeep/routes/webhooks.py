"""
NoteKeep Backend — Webhook Route Handlers
=========================================

What:  Manage the caller's webhook subscriptions.
How:   Each subscription is (action, url). Deliveries are made by the
       WebhookNotifier after note routes respond; see services/webhook_service.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.database import get_db_session
from notekeep.deps import RequireFeature, enforce_webhook_quota, get_current_user
from notekeep.models.user import User
from notekeep.schemas.common import ErrorResponse
from notekeep.schemas.note import MessageResponse
from notekeep.schemas.webhook import WebhookCreate, WebhookResponse
from notekeep.services.webhook_service import webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/webhooks",
    tags=["Webhooks"],
    dependencies=[Depends(RequireFeature("webhooks_enabled"))],
)


@router.get("", response_model=List[WebhookResponse], summary="List my webhooks")
async def list_webhooks(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[WebhookResponse]:
    webhooks = await webhook_service.list_webhooks(db, user.id)
    return [WebhookResponse.model_validate(w) for w in webhooks]


@router.post(
    "",
    status_code=201,
    response_model=WebhookResponse,
    responses={
        400: {"description": "URL scheme or destination not allowed", "model": ErrorResponse},
        423: {"description": "Webhook quota reached", "model": ErrorResponse},
    },
    summary="Subscribe a URL to a note event",
    dependencies=[Depends(enforce_webhook_quota)],
)
async def create_webhook(
    body: WebhookCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> WebhookResponse:
    webhook = await webhook_service.create_webhook(db, user.id, body)
    return WebhookResponse.model_validate(webhook)


@router.delete(
    "/{webhook_id}",
    response_model=MessageResponse,
    responses={404: {"description": "Webhook not found", "model": ErrorResponse}},
    summary="Delete a webhook",
)
async def delete_webhook(
    webhook_id: UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await webhook_service.delete_webhook(db, webhook_id, user.id)
    return MessageResponse(message="Webhook deleted")
