"""
NoteKeep Backend — API Key Route Handlers
=========================================

What:  Create, list and delete the caller's API keys.
How:   Reachable with a user session only; a key cannot mint or list keys.
       The full key appears once, in the create response.
"""

import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.database import get_db_session
from notekeep.deps import RequireFeature, enforce_api_key_quota, require_jwt_user
from notekeep.models.api_key import API_KEY_PERMISSION_LABELS
from notekeep.models.user import User
from notekeep.schemas.api_key import (
    ApiKeyCreate,
    ApiKeyCreatedResponse,
    ApiKeyPermissionInfo,
    ApiKeyResponse,
)
from notekeep.schemas.common import ErrorResponse
from notekeep.schemas.note import MessageResponse
from notekeep.services.api_key_service import api_key_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api-keys",
    tags=["API Keys"],
    dependencies=[Depends(RequireFeature("api_keys_enabled"))],
)


@router.get(
    "/permissions",
    response_model=List[ApiKeyPermissionInfo],
    summary="Capabilities an API key can carry",
)
async def list_permissions() -> List[ApiKeyPermissionInfo]:
    return [
        ApiKeyPermissionInfo(value=permission, label=label)
        for permission, label in API_KEY_PERMISSION_LABELS.items()
    ]


@router.get("", response_model=List[ApiKeyResponse], summary="List my API keys (masked)")
async def list_api_keys(
    user: User = Depends(require_jwt_user),
    db: AsyncSession = Depends(get_db_session),
) -> List[ApiKeyResponse]:
    keys = await api_key_service.list_api_keys(db, user.id)
    return [ApiKeyResponse.masked(k) for k in keys]


@router.post(
    "",
    status_code=201,
    response_model=ApiKeyCreatedResponse,
    responses={
        400: {"description": "Expiry is not in the future", "model": ErrorResponse},
        403: {"description": "API keys cannot create API keys", "model": ErrorResponse},
        423: {"description": "API key quota reached", "model": ErrorResponse},
    },
    summary="Create an API key",
    description="The returned `key` is shown only once. Store it securely.",
    dependencies=[Depends(enforce_api_key_quota)],
)
async def create_api_key(
    body: ApiKeyCreate,
    user: User = Depends(require_jwt_user),
    db: AsyncSession = Depends(get_db_session),
) -> ApiKeyCreatedResponse:
    api_key = await api_key_service.create_api_key(db, user.id, body)
    return ApiKeyCreatedResponse.revealed(api_key)


@router.delete(
    "/{key_id}",
    response_model=MessageResponse,
    responses={404: {"description": "API key not found", "model": ErrorResponse}},
    summary="Delete an API key",
)
async def delete_api_key(
    key_id: UUID,
    user: User = Depends(require_jwt_user),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await api_key_service.delete_api_key(db, key_id, user.id)
    return MessageResponse(message="API key deleted")
