"""
NoteKeep Backend — FastAPI Dependencies
=======================================

What:  Authentication, API-key capability checks, instance quotas and the
       webhook notifier, exposed as FastAPI dependencies.
How:   Routes declare what they need in their signature:

           user: User = Depends(RequirePermission(ApiKeyPermission.READ_NOTES))
           _: None = Depends(enforce_note_quota)

       FastAPI caches dependencies per request, so the principal is resolved
       once even when several dependencies ask for it.

Authentication:
    1. `Authorization: Bearer <jwt>` → full capabilities of the user
    2. `X-API-Key: ak_...`           → only the key's capabilities
    A request carrying neither is rejected with 401.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.database import get_db_session
from notekeep.exceptions import AuthenticationError, NotAuthorizedError
from notekeep.models.api_key import ApiKey, ApiKeyPermission
from notekeep.models.user import User
from notekeep.services.api_key_service import api_key_has_permission, api_key_service
from notekeep.services.auth_service import auth_service
from notekeep.services.quota_service import QuotaGate
from notekeep.services.webhook_service import WebhookNotifier

# auto_error=False: a missing header falls through to the X-API-Key check
bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Principal:
    """The authenticated caller; api_key is None for JWT sessions."""

    user: User
    api_key: Optional[ApiKey] = None

    @property
    def via_api_key(self) -> bool:
        return self.api_key is not None


# ── Authentication ────────────────────────────────────────────────────────

async def get_current_principal(
    db: AsyncSession = Depends(get_db_session),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
) -> Principal:
    """
    Raises:
        AuthenticationError: no credentials, invalid/expired token or key,
                             or the token's user no longer exists
    """
    if credentials is not None:
        user_id = auth_service.decode_access_token(credentials.credentials)
        user = await db.get(User, user_id)
        if user is None:
            raise AuthenticationError()
        return Principal(user=user)

    if x_api_key:
        api_key = await api_key_service.authenticate(db, x_api_key)
        return Principal(user=api_key.user, api_key=api_key)

    raise AuthenticationError(message="Not authenticated")


async def get_current_user(principal: Principal = Depends(get_current_principal)) -> User:
    return principal.user


async def require_jwt_user(principal: Principal = Depends(get_current_principal)) -> User:
    """For endpoints API keys may never reach (key management, conversion)."""
    if principal.via_api_key:
        raise NotAuthorizedError(message="This endpoint requires a user session, not an API key")
    return principal.user


class RequirePermission:
    """
    Dependency factory checking an API-key capability.

    Usage: Depends(RequirePermission(ApiKeyPermission.CREATE_NOTES))

    JWT sessions pass unconditionally; the note-level permission check
    (AccessService) still applies afterwards in both cases.
    """

    def __init__(self, permission: ApiKeyPermission):
        self.permission = permission

    async def __call__(self, principal: Principal = Depends(get_current_principal)) -> User:
        if principal.via_api_key and not api_key_has_permission(principal.api_key, self.permission):
            raise NotAuthorizedError(
                message=f"API key lacks the '{self.permission.value}' permission",
                context={"api_key_id": str(principal.api_key.id)},
            )
        return principal.user


# ── Instance plan ─────────────────────────────────────────────────────────

def get_quota_gate(request: Request) -> QuotaGate:
    return request.app.state.quota_gate


def get_notifier(request: Request) -> WebhookNotifier:
    return request.app.state.notifier


class RequireFeature:
    """Usage: Depends(RequireFeature("sharing_enabled"))"""

    def __init__(self, feature: str):
        self.feature = feature

    def __call__(self, gate: QuotaGate = Depends(get_quota_gate)) -> None:
        gate.check_feature(self.feature)


async def enforce_user_quota(
    db: AsyncSession = Depends(get_db_session),
    gate: QuotaGate = Depends(get_quota_gate),
) -> None:
    await gate.check_users(db)


async def enforce_note_quota(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    gate: QuotaGate = Depends(get_quota_gate),
) -> None:
    await gate.check_notes(db, user.id)


async def enforce_template_quota(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    gate: QuotaGate = Depends(get_quota_gate),
) -> None:
    gate.check_feature("templates_enabled")
    await gate.check_templates(db, user.id)


async def enforce_webhook_quota(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    gate: QuotaGate = Depends(get_quota_gate),
) -> None:
    await gate.check_webhooks(db, user.id)


async def enforce_api_key_quota(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
    gate: QuotaGate = Depends(get_quota_gate),
) -> None:
    await gate.check_api_keys(db, user.id)
