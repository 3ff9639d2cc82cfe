"""
NoteKeep Backend — Webhook Service & Notifier
=============================================

What:  Manages webhook subscriptions and delivers note events to them.
How:   WebhookService validates and stores (user, action, url) rows.
       WebhookNotifier runs as a FastAPI background task after the response
       is sent: it opens its own session, loads the matching subscriptions
       and POSTs a JSON payload to each with httpx.
Who:   /webhooks routes (subscriptions); /notes and /templates routes
       (notifications on note_created / note_updated / note_deleted).

Delivery rules:
    - Timeout per request: settings.webhook_timeout_seconds.
    - A destination URL contacted less than webhook_min_interval_seconds ago
      is skipped for this event (per-process, in-memory).
    - Failures are logged and swallowed; a note operation never fails because
      a webhook did. There are no retries.

Destination check:
    URLs must be http(s). Literal loopback, private, link-local, reserved and
    multicast addresses and localhost names are refused unless
    webhook_allow_private_targets is set. Hostnames are not resolved.
"""

import ipaddress
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlsplit
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notekeep.config import settings
from notekeep.exceptions import NotFoundError, ValidationError
from notekeep.models.webhook import Webhook, WebhookAction
from notekeep.schemas.webhook import WebhookCreate
from notekeep.timeutils import utcnow

logger = logging.getLogger(__name__)

_BLOCKED_HOSTNAMES = {"localhost", "localhost.localdomain", "ip6-localhost", "ip6-loopback"}


def validate_webhook_url(url: str, allow_private: bool = False) -> str:
    """
    Returns the URL unchanged if it is an acceptable destination.

    Raises:
        ValidationError: wrong scheme, missing host, or a blocked address
    """
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https"):
        raise ValidationError("Webhook URL must use http or https", field="url")
    host = parts.hostname
    if not host:
        raise ValidationError("Webhook URL must include a host", field="url")
    if allow_private:
        return url

    if host in _BLOCKED_HOSTNAMES or host.endswith(".localhost") or host.endswith(".local"):
        raise ValidationError("Webhook URL cannot target a local host", field="url")

    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return url

    if (
        address.is_loopback
        or address.is_private
        or address.is_link_local
        or address.is_reserved
        or address.is_multicast
        or address.is_unspecified
    ):
        raise ValidationError("Webhook URL cannot target a private network address", field="url")
    return url


class WebhookService:

    async def list_webhooks(self, db: AsyncSession, user_id: UUID) -> List[Webhook]:
        result = await db.execute(
            select(Webhook).where(Webhook.user_id == user_id).order_by(Webhook.created_at.desc())
        )
        return list(result.scalars().all())

    async def create_webhook(
        self, db: AsyncSession, user_id: UUID, data: WebhookCreate
    ) -> Webhook:
        url = validate_webhook_url(data.url, allow_private=settings.webhook_allow_private_targets)
        webhook = Webhook(user_id=user_id, action=data.action, url=url, created_at=utcnow())
        db.add(webhook)
        await db.flush()
        logger.info("Webhook %s registered for user %s (%s)", webhook.id, user_id, data.action.value)
        return webhook

    async def delete_webhook(self, db: AsyncSession, webhook_id: UUID, user_id: UUID) -> None:
        webhook = await db.get(Webhook, webhook_id)
        if webhook is None or webhook.user_id != user_id:
            raise NotFoundError(resource="Webhook", resource_id=str(webhook_id))
        await db.delete(webhook)
        await db.flush()


class WebhookNotifier:
    """
    Fire-and-forget delivery of note events.

    Args:
        session_factory: async_sessionmaker used to load subscriptions; the
                         request's session is closed by the time this runs
        timeout: per-request timeout in seconds
        min_interval: minimum seconds between two deliveries to one URL
        transport: optional httpx transport (tests use httpx.MockTransport)
        clock: monotonic clock, injectable for tests
    """

    def __init__(
        self,
        session_factory,
        timeout: float = 5.0,
        min_interval: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.timeout = timeout
        self.min_interval = min_interval
        self.transport = transport
        self.clock = clock
        self._last_sent: Dict[str, float] = {}

    async def notify(
        self,
        user_id: UUID,
        action: WebhookAction,
        note: Dict[str, Any],
        now: Optional[datetime] = None,
    ) -> int:
        """
        Delivers `{action, note, user_id, timestamp}` to the user's webhooks
        for `action`. Returns the number of successful deliveries.
        """
        try:
            async with self.session_factory() as session:
                result = await session.execute(
                    select(Webhook.url).where(
                        Webhook.user_id == user_id,
                        Webhook.action == action,
                    )
                )
                urls = list(result.scalars().all())
        except Exception as e:
            logger.error("Could not load webhooks for user %s: %s", user_id, str(e), exc_info=True)
            return 0

        if not urls:
            return 0

        payload = {
            "action": action.value,
            "note": note,
            "user_id": str(user_id),
            "timestamp": (now or utcnow()).isoformat(),
        }

        self._prune_stale(self.clock())
        delivered = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for url in urls:
                if self._throttled(url):
                    logger.info("Webhook delivery skipped (rate limited): user=%s", user_id)
                    continue
                try:
                    response = await client.post(url, json=payload)
                    response.raise_for_status()
                    delivered += 1
                except httpx.HTTPError as e:
                    logger.warning(
                        "Webhook delivery failed: user=%s action=%s error=%s",
                        user_id, action.value, type(e).__name__,
                    )
        return delivered

    def _throttled(self, url: str) -> bool:
        now = self.clock()
        last = self._last_sent.get(url)
        if last is not None and now - last < self.min_interval:
            return True
        self._last_sent[url] = now
        return False

    def _prune_stale(self, now: float) -> None:
        """Drops URLs whose last delivery can no longer throttle anything."""
        stale_urls = [
            url for url, last in self._last_sent.items()
            if now - last >= self.min_interval
        ]
        for url in stale_urls:
            del self._last_sent[url]

        if stale_urls:
            logger.debug("Cleaned up %d stale webhook throttle entries", len(stale_urls))


# ── Singleton Instance ────────────────────────────────────────────────────
webhook_service = WebhookService()
