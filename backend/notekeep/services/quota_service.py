"""
NoteKeep Backend — Instance Plans & Quota Gate
==============================================

What:  Describes what this deployment is allowed to do (plan limits and
       feature flags) and enforces it before mutating requests.
How:   build_instance_config() turns settings into an InstanceConfig once, in
       the app factory. The resulting QuotaGate lives on app.state and is
       reached through FastAPI dependencies; services never consult it.

Limits:
    -1 means unlimited. A per-user limit and the instance-wide limit for the
    same resource are checked independently; the first one hit wins.

    ┌──────────────┬───────┬──────┬───────┬────────────┐
    │              │ self  │basic │ pro   │ enterprise │
    ├──────────────┼───────┼──────┼───────┼────────────┤
    │ users        │  -1   │   5  │   25  │     -1     │
    │ notes        │  -1   │ 1000 │ 10000 │     -1     │
    │ notes/user   │  -1   │  200 │  1000 │     -1     │
    │ requests/min │ 1000  │  100 │   300 │    1000    │
    └──────────────┴───────┴──────┴───────┴────────────┘
"""

import logging
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.config import Settings
from notekeep.exceptions import FeatureDisabledError, QuotaExceededError
from notekeep.models.api_key import ApiKey
from notekeep.models.note import Note
from notekeep.models.user import User
from notekeep.models.webhook import Webhook

logger = logging.getLogger(__name__)

UNLIMITED = -1


class InstanceLimits(BaseModel):
    max_users: int = UNLIMITED
    max_notes: int = UNLIMITED
    max_notes_per_user: int = UNLIMITED
    max_templates: int = UNLIMITED
    max_templates_per_user: int = UNLIMITED
    max_webhooks: int = UNLIMITED
    max_webhooks_per_user: int = UNLIMITED
    max_api_keys: int = UNLIMITED
    max_api_keys_per_user: int = UNLIMITED
    rate_limit_requests: int = Field(default=1000, description="Requests per window per client IP")
    rate_limit_window_seconds: int = Field(default=60, ge=1)


class InstanceFeatures(BaseModel):
    webhooks_enabled: bool = True
    templates_enabled: bool = True
    sharing_enabled: bool = True
    api_keys_enabled: bool = True


class InstanceConfig(BaseModel):
    instance_id: str = "self-hosted"
    instance_name: str = "NoteKeep Self-Hosted"
    plan: str = "self_hosted"
    limits: InstanceLimits = Field(default_factory=InstanceLimits)
    features: InstanceFeatures = Field(default_factory=InstanceFeatures)


DEFAULT_PLANS: Dict[str, InstanceLimits] = {
    "self_hosted": InstanceLimits(rate_limit_requests=1000),
    "basic": InstanceLimits(
        max_users=5,
        max_notes=1000,
        max_notes_per_user=200,
        max_templates=50,
        max_templates_per_user=10,
        max_webhooks=3,
        max_webhooks_per_user=2,
        max_api_keys=5,
        max_api_keys_per_user=1,
        rate_limit_requests=100,
    ),
    "pro": InstanceLimits(
        max_users=25,
        max_notes=10000,
        max_notes_per_user=1000,
        max_templates=200,
        max_templates_per_user=50,
        max_webhooks=10,
        max_webhooks_per_user=5,
        max_api_keys=25,
        max_api_keys_per_user=5,
        rate_limit_requests=300,
    ),
    "enterprise": InstanceLimits(rate_limit_requests=1000),
}


def build_instance_config(settings: Settings) -> InstanceConfig:
    """
    INSTANCE_CONFIG_JSON, when set, is the whole configuration; otherwise
    the named plan's defaults are used with every feature enabled.
    """
    if settings.instance_config_json:
        return InstanceConfig.model_validate_json(settings.instance_config_json)
    return InstanceConfig(
        instance_id=settings.instance_id,
        instance_name=settings.instance_name,
        plan=settings.instance_plan,
        limits=DEFAULT_PLANS[settings.instance_plan].model_copy(),
    )


class QuotaGate:
    """
    Checks plan limits against live row counts.

    Each check_* counts with the request's session and raises before the
    route calls into a service, so a rejected request writes nothing.
    """

    def __init__(self, config: InstanceConfig):
        self.config = config

    @property
    def limits(self) -> InstanceLimits:
        return self.config.limits

    def check_feature(self, feature: str) -> None:
        """`feature` is a field of InstanceFeatures, e.g. "sharing_enabled"."""
        if not getattr(self.config.features, feature):
            raise FeatureDisabledError(feature.removesuffix("_enabled"))

    async def check_users(self, db: AsyncSession) -> None:
        await self._check(db, "users", self.limits.max_users, select(func.count(User.id)))

    async def check_notes(self, db: AsyncSession, user_id: UUID) -> None:
        await self._check_pair(
            db,
            "notes",
            self.limits.max_notes,
            self.limits.max_notes_per_user,
            select(func.count(Note.id)).where(Note.is_template.is_(False)),
            user_filter=(Note.user_id == user_id),
        )

    async def check_templates(self, db: AsyncSession, user_id: UUID) -> None:
        await self._check_pair(
            db,
            "templates",
            self.limits.max_templates,
            self.limits.max_templates_per_user,
            select(func.count(Note.id)).where(Note.is_template.is_(True)),
            user_filter=(Note.user_id == user_id),
        )

    async def check_webhooks(self, db: AsyncSession, user_id: UUID) -> None:
        await self._check_pair(
            db,
            "webhooks",
            self.limits.max_webhooks,
            self.limits.max_webhooks_per_user,
            select(func.count(Webhook.id)),
            user_filter=(Webhook.user_id == user_id),
        )

    async def check_api_keys(self, db: AsyncSession, user_id: UUID) -> None:
        await self._check_pair(
            db,
            "api_keys",
            self.limits.max_api_keys,
            self.limits.max_api_keys_per_user,
            select(func.count(ApiKey.id)),
            user_filter=(ApiKey.user_id == user_id),
        )

    # ── Internals ─────────────────────────────────────────────────────────

    async def _check_pair(
        self,
        db: AsyncSession,
        resource: str,
        instance_limit: int,
        per_user_limit: int,
        count_query,
        user_filter,
    ) -> None:
        await self._check(db, resource, instance_limit, count_query)
        await self._check(db, f"{resource}_per_user", per_user_limit, count_query.where(user_filter))

    async def _check(
        self, db: AsyncSession, resource: str, limit: int, count_query
    ) -> Optional[int]:
        if limit == UNLIMITED:
            return None
        current = await db.scalar(count_query) or 0
        if current >= limit:
            logger.info("Quota reached: %s %d/%d", resource, current, limit)
            raise QuotaExceededError(resource=resource, limit=limit, current=current)
        return current
