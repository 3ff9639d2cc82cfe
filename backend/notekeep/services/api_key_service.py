"""
NoteKeep Backend — API Key Service
==================================

What:  Issue, list, delete and authenticate per-user API keys.
How:   Keys are "ak_" + 64 hex characters from the OS CSPRNG. Each key holds a
       closed set of ApiKeyPermission capabilities; a request made with a key
       can do only what those capabilities allow, and never more than the
       owning user could do with a JWT.
"""

import logging
import secrets
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.exceptions import AuthenticationError, NotFoundError, ValidationError
from notekeep.models.api_key import ApiKey, ApiKeyPermission
from notekeep.schemas.api_key import ApiKeyCreate
from notekeep.timeutils import as_utc, utcnow

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "ak_"


def generate_api_key() -> str:
    return API_KEY_PREFIX + secrets.token_hex(32)


def api_key_is_expired(api_key: ApiKey, now: datetime) -> bool:
    return api_key.expires_at is not None and as_utc(now) > as_utc(api_key.expires_at)


def api_key_has_permission(api_key: ApiKey, permission: ApiKeyPermission) -> bool:
    return permission.value in (api_key.permissions or [])


class ApiKeyService:

    async def create_api_key(
        self,
        db: AsyncSession,
        user_id: UUID,
        data: ApiKeyCreate,
        now: Optional[datetime] = None,
    ) -> ApiKey:
        now = now or utcnow()
        if data.expires_at is not None and as_utc(data.expires_at) <= now:
            raise ValidationError("Expiration date must be in the future", field="expires_at")

        api_key = ApiKey(
            user_id=user_id,
            name=data.name,
            key=generate_api_key(),
            permissions=[p.value for p in data.permissions],
            expires_at=data.expires_at,
            created_at=now,
        )
        db.add(api_key)
        await db.flush()
        logger.info("API key %s created for user %s", api_key.id, user_id)
        return api_key

    async def list_api_keys(self, db: AsyncSession, user_id: UUID) -> List[ApiKey]:
        result = await db.execute(
            select(ApiKey).where(ApiKey.user_id == user_id).order_by(ApiKey.created_at.desc())
        )
        return list(result.scalars().all())

    async def delete_api_key(self, db: AsyncSession, key_id: UUID, user_id: UUID) -> None:
        """Only the key's own user can delete it; anything else is a 404."""
        api_key = await db.get(ApiKey, key_id)
        if api_key is None or api_key.user_id != user_id:
            raise NotFoundError(resource="API key", resource_id=str(key_id))
        await db.delete(api_key)
        await db.flush()
        logger.info("API key %s deleted by user %s", key_id, user_id)

    async def authenticate(
        self, db: AsyncSession, raw_key: str, now: Optional[datetime] = None
    ) -> ApiKey:
        """
        Resolves an X-API-Key header value to its key row and stamps
        last_used_at.

        Raises:
            AuthenticationError: unknown or expired key
        """
        now = now or utcnow()
        result = await db.execute(select(ApiKey).where(ApiKey.key == raw_key))
        api_key = result.scalar_one_or_none()
        if api_key is None:
            raise AuthenticationError(message="Invalid API key")
        if api_key_is_expired(api_key, now):
            raise AuthenticationError(
                message="API key has expired",
                context={"api_key_id": str(api_key.id)},
            )

        api_key.last_used_at = now
        await db.flush()
        return api_key


# ── Singleton Instance ────────────────────────────────────────────────────
api_key_service = ApiKeyService()
