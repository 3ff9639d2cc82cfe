"""
NoteKeep Backend — Webhook Service Tests
========================================

What:  Subscription management and the background notifier.
How:   Delivery goes through httpx.MockTransport; no network access.

What we test:
    ✅ URL validation: scheme, host, loopback/private/link-local literals
    ✅ Subscriptions are per user and per action
    ✅ Payload shape {action, note, user_id, timestamp}
    ✅ Per-URL throttle skips deliveries inside min_interval
    ✅ Idle throttle entries are dropped once min_interval has passed
    ✅ Failed deliveries are logged and never raised
"""

import json
import logging
from uuid import uuid4

import httpx
import pytest

from notekeep.exceptions import NotFoundError, ValidationError
from notekeep.models.webhook import WebhookAction
from notekeep.schemas.webhook import WebhookCreate
from notekeep.services.webhook_service import (
    WebhookNotifier,
    validate_webhook_url,
    webhook_service,
)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestValidateWebhookUrl:

    @pytest.mark.parametrize(
        "url",
        [
            "https://hooks.example.com/notekeep",
            "http://93.184.216.34:8080/in",
        ],
    )
    def test_accepts_public_destinations(self, url):
        assert validate_webhook_url(url) == url

    @pytest.mark.parametrize(
        "url",
        [
            "ftp://example.com/hook",
            "https:///no-host",
            "http://localhost:8000/hook",
            "http://printer.local/hook",
            "http://127.0.0.1/hook",
            "http://10.1.2.3/hook",
            "http://192.168.0.10/hook",
            "http://169.254.169.254/latest/meta-data",
            "http://[::1]/hook",
            "http://0.0.0.0/hook",
        ],
    )
    def test_rejects(self, url):
        with pytest.raises(ValidationError):
            validate_webhook_url(url)

    def test_private_allowed_when_configured(self):
        assert validate_webhook_url("http://127.0.0.1/hook", allow_private=True)


class TestWebhookService:

    @pytest.mark.asyncio
    async def test_create_list_delete(self, db_session, make_user):
        owner = await make_user("owner@x.com")
        other = await make_user("other@x.com")
        webhook = await webhook_service.create_webhook(
            db_session,
            owner.id,
            WebhookCreate(action=WebhookAction.NOTE_CREATED, url="https://hooks.example.com/a"),
        )

        assert [w.id for w in await webhook_service.list_webhooks(db_session, owner.id)] == [webhook.id]
        assert await webhook_service.list_webhooks(db_session, other.id) == []

        with pytest.raises(NotFoundError):
            await webhook_service.delete_webhook(db_session, webhook.id, other.id)
        await webhook_service.delete_webhook(db_session, webhook.id, owner.id)
        assert await webhook_service.list_webhooks(db_session, owner.id) == []

    @pytest.mark.asyncio
    async def test_create_rejects_private_url(self, db_session, make_user):
        owner = await make_user("owner@x.com")
        with pytest.raises(ValidationError):
            await webhook_service.create_webhook(
                db_session,
                owner.id,
                WebhookCreate(action=WebhookAction.NOTE_DELETED, url="http://10.0.0.1/hook"),
            )


class TestWebhookNotifier:

    async def _subscribe(self, session_factory, user_id, action, url):
        async with session_factory() as session:
            await webhook_service.create_webhook(
                session, user_id, WebhookCreate(action=action, url=url)
            )
            await session.commit()

    @pytest.mark.asyncio
    async def test_delivers_payload_to_matching_action(self, session_factory, make_user, db_session):
        owner = await make_user("owner@x.com")
        await db_session.commit()
        await self._subscribe(session_factory, owner.id, WebhookAction.NOTE_CREATED, "https://a.example.com/h")
        await self._subscribe(session_factory, owner.id, WebhookAction.NOTE_DELETED, "https://b.example.com/h")

        sent = []

        def handler(request: httpx.Request) -> httpx.Response:
            sent.append(request)
            return httpx.Response(204)

        notifier = WebhookNotifier(session_factory, min_interval=0, transport=httpx.MockTransport(handler))
        delivered = await notifier.notify(owner.id, WebhookAction.NOTE_CREATED, {"title": "Groceries"})

        assert delivered == 1
        assert [str(r.url) for r in sent] == ["https://a.example.com/h"]
        body = json.loads(sent[0].content)
        assert body["action"] == "note_created"
        assert body["note"] == {"title": "Groceries"}
        assert body["user_id"] == str(owner.id)
        assert "timestamp" in body

    @pytest.mark.asyncio
    async def test_no_subscriptions(self, session_factory):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        notifier = WebhookNotifier(session_factory, transport=httpx.MockTransport(handler))
        assert await notifier.notify(uuid4(), WebhookAction.NOTE_UPDATED, {}) == 0

    @pytest.mark.asyncio
    async def test_throttles_per_url(self, session_factory, make_user, db_session):
        owner = await make_user("owner@x.com")
        await db_session.commit()
        await self._subscribe(session_factory, owner.id, WebhookAction.NOTE_UPDATED, "https://a.example.com/h")

        clock = FakeClock()
        notifier = WebhookNotifier(
            session_factory,
            min_interval=1.0,
            transport=httpx.MockTransport(lambda request: httpx.Response(200)),
            clock=clock,
        )

        assert await notifier.notify(owner.id, WebhookAction.NOTE_UPDATED, {}) == 1
        clock.now += 0.5
        assert await notifier.notify(owner.id, WebhookAction.NOTE_UPDATED, {}) == 0
        clock.now += 1.0
        assert await notifier.notify(owner.id, WebhookAction.NOTE_UPDATED, {}) == 1

    @pytest.mark.asyncio
    async def test_throttle_entries_expire(self, session_factory, make_user, db_session):
        owner = await make_user("owner@x.com")
        await db_session.commit()
        await self._subscribe(session_factory, owner.id, WebhookAction.NOTE_CREATED, "https://a.example.com/h")
        await self._subscribe(session_factory, owner.id, WebhookAction.NOTE_DELETED, "https://b.example.com/h")

        clock = FakeClock()
        notifier = WebhookNotifier(
            session_factory,
            min_interval=1.0,
            transport=httpx.MockTransport(lambda request: httpx.Response(200)),
            clock=clock,
        )

        await notifier.notify(owner.id, WebhookAction.NOTE_CREATED, {})
        assert set(notifier._last_sent) == {"https://a.example.com/h"}

        clock.now += 0.5
        await notifier.notify(owner.id, WebhookAction.NOTE_DELETED, {})
        assert set(notifier._last_sent) == {"https://a.example.com/h", "https://b.example.com/h"}

        clock.now += 0.75
        await notifier.notify(owner.id, WebhookAction.NOTE_DELETED, {})
        # a.example.com has been idle for longer than min_interval
        assert set(notifier._last_sent) == {"https://b.example.com/h"}

    @pytest.mark.asyncio
    async def test_failures_are_logged_not_raised(self, session_factory, make_user, db_session, caplog):
        owner = await make_user("owner@x.com")
        await db_session.commit()
        await self._subscribe(session_factory, owner.id, WebhookAction.NOTE_DELETED, "https://down.example.com/h")
        await self._subscribe(session_factory, owner.id, WebhookAction.NOTE_DELETED, "https://up.example.com/h")

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "down.example.com":
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200)

        notifier = WebhookNotifier(session_factory, min_interval=0, transport=httpx.MockTransport(handler))
        with caplog.at_level(logging.WARNING, logger="notekeep.services.webhook_service"):
            delivered = await notifier.notify(owner.id, WebhookAction.NOTE_DELETED, {})

        assert delivered == 1
        assert "ConnectError" in caplog.text
        assert "down.example.com" not in caplog.text
