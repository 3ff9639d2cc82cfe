"""
NoteKeep Backend — API Endpoint Tests
=====================================

What:  End-to-end HTTP behaviour through the real app.
How:   httpx AsyncClient over ASGITransport, one SQLite file per test,
       webhook deliveries captured by a MockTransport.

What we test:
    ✅ Register / login / me, duplicate email, wrong password
    ✅ Note CRUD and the uniform error envelope
    ✅ Invite → preview → accept → shared-notes → leave
    ✅ Notes a caller cannot see are 404, never 403
    ✅ API keys: capability checks (403) and JWT-only management
    ✅ Quotas (423) and disabled features (424)
    ✅ Webhook deliveries on note create / update / delete
    ✅ Health and instance info
"""

import json

import pytest

from notekeep.services.quota_service import InstanceConfig, InstanceFeatures, InstanceLimits

TEST_PASSWORD = "correct-horse"


# ══════════════════════════════════════════════════════════════════════════
# Auth
# ══════════════════════════════════════════════════════════════════════════

class TestAuth:

    @pytest.mark.asyncio
    async def test_register_login_me(self, client, register_user):
        alice = await register_user("alice@example.com")

        response = await client.post(
            "/auth/login", json={"email": "alice@example.com", "password": TEST_PASSWORD}
        )
        assert response.status_code == 200
        token = response.json()["access_token"]
        assert response.json()["token_type"] == "bearer"

        me = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["id"] == alice["id"]
        assert "password_hash" not in me.json()

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, client, register_user):
        await register_user("alice@example.com")

        response = await client.post(
            "/auth/register", json={"email": "alice@example.com", "password": TEST_PASSWORD}
        )

        assert response.status_code == 409
        assert response.json()["error"] == "email_already_registered"

    @pytest.mark.asyncio
    async def test_wrong_password(self, client, register_user):
        await register_user("alice@example.com")

        response = await client.post(
            "/auth/login", json={"email": "alice@example.com", "password": "not-the-password"}
        )

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.asyncio
    async def test_missing_and_garbage_credentials(self, client):
        assert (await client.get("/notes")).status_code == 401
        response = await client.get("/notes", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        response = await client.get("/notes", headers={"X-API-Key": "ak_unknown"})
        assert response.status_code == 401


# ══════════════════════════════════════════════════════════════════════════
# Notes
# ══════════════════════════════════════════════════════════════════════════

class TestNotesApi:

    @pytest.mark.asyncio
    async def test_crud(self, client, register_user):
        alice = await register_user("alice@example.com")

        created = await client.post(
            "/notes",
            json={"title": "Groceries", "content": "milk", "checkboxes": [{"label": "eggs"}]},
            headers=alice["headers"],
        )
        assert created.status_code == 201
        note = created.json()
        assert note["is_shared"] is False
        assert note["checkboxes"][0]["label"] == "eggs"

        listed = await client.get("/notes", headers=alice["headers"])
        assert [n["id"] for n in listed.json()] == [note["id"]]

        updated = await client.patch(
            f"/notes/{note['id']}", json={"content": "milk, bread"}, headers=alice["headers"]
        )
        assert updated.status_code == 200
        assert updated.json()["content"] == "milk, bread"

        toggled = await client.patch(
            f"/notes/checkboxes/{note['checkboxes'][0]['id']}",
            json={"checked": True},
            headers=alice["headers"],
        )
        assert toggled.json()["checked"] is True

        deleted = await client.delete(f"/notes/{note['id']}", headers=alice["headers"])
        assert deleted.json() == {"message": "Note deleted"}
        assert (await client.get(f"/notes/{note['id']}", headers=alice["headers"])).status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_body_is_422(self, client, register_user):
        alice = await register_user("alice@example.com")

        response = await client.post(
            "/notes", json={"title": "", "color": "red"}, headers=alice["headers"]
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_foreign_note_is_404_with_envelope(self, client, register_user):
        alice = await register_user("alice@example.com")
        mallory = await register_user("mallory@example.com")
        note = (await client.post("/notes", json={"title": "Diary"}, headers=alice["headers"])).json()

        response = await client.get(f"/notes/{note['id']}", headers=mallory["headers"])

        assert response.status_code == 404
        body = response.json()
        assert set(body) >= {"error", "message", "request_id"}
        assert "Diary" not in json.dumps(body)
        assert response.headers["X-Request-ID"]


# ══════════════════════════════════════════════════════════════════════════
# Sharing
# ══════════════════════════════════════════════════════════════════════════

class TestSharingApi:

    @pytest.mark.asyncio
    async def test_invite_accept_leave(self, client, register_user):
        alice = await register_user("alice@example.com")
        bob = await register_user("bob@example.com")
        note = (await client.post("/notes", json={"title": "Trip plan"}, headers=alice["headers"])).json()

        invited = await client.post(
            f"/invitations/notes/{note['id']}",
            json={"invited_email": "bob@example.com", "permission": "WRITE", "message": "Join me"},
            headers=alice["headers"],
        )
        assert invited.status_code == 201
        token = invited.json()["token"]
        assert token and len(token) == 64

        preview = await client.get(f"/invitations/{token}")
        assert preview.status_code == 200
        assert preview.json()["note_title"] == "Trip plan"
        assert "token" not in preview.json()

        pending = await client.get("/invitations/pending", headers=bob["headers"])
        assert [i["note_id"] for i in pending.json()] == [note["id"]]

        accepted = await client.post(f"/invitations/{token}/accept", headers=bob["headers"])
        assert accepted.status_code == 200
        assert accepted.json()["permission"] == "WRITE"
        assert accepted.json()["note"]["is_shared"] is True

        shared = await client.get("/invitations/shared-notes", headers=bob["headers"])
        assert [s["note"]["id"] for s in shared.json()] == [note["id"]]

        edited = await client.patch(
            f"/notes/{note['id']}", json={"content": "Lisbon"}, headers=bob["headers"]
        )
        assert edited.status_code == 200

        again = await client.post(f"/invitations/{token}/accept", headers=bob["headers"])
        assert again.status_code == 409

        left = await client.delete(f"/invitations/leave/{note['id']}", headers=bob["headers"])
        assert left.status_code == 200
        assert (await client.get(f"/notes/{note['id']}", headers=bob["headers"])).status_code == 404
        owner_view = await client.get(f"/notes/{note['id']}", headers=alice["headers"])
        assert owner_view.json()["is_shared"] is False

    @pytest.mark.asyncio
    async def test_reader_update_is_hidden_as_404(self, client, register_user):
        alice = await register_user("alice@example.com")
        bob = await register_user("bob@example.com")
        note = (await client.post("/notes", json={"title": "Budget"}, headers=alice["headers"])).json()
        token = (
            await client.post(
                f"/invitations/notes/{note['id']}",
                json={"invited_email": "bob@example.com"},
                headers=alice["headers"],
            )
        ).json()["token"]
        await client.post(f"/invitations/{token}/accept", headers=bob["headers"])

        assert (await client.get(f"/notes/{note['id']}", headers=bob["headers"])).status_code == 200
        response = await client.patch(
            f"/notes/{note['id']}", json={"title": "Mine now"}, headers=bob["headers"]
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_wrong_recipient_and_revoke(self, client, register_user):
        alice = await register_user("alice@example.com")
        mallory = await register_user("mallory@example.com")
        note = (await client.post("/notes", json={"title": "Secret"}, headers=alice["headers"])).json()
        invitation = (
            await client.post(
                f"/invitations/notes/{note['id']}",
                json={"invited_email": "bob@example.com"},
                headers=alice["headers"],
            )
        ).json()

        stolen = await client.post(f"/invitations/{invitation['token']}/accept", headers=mallory["headers"])
        assert stolen.status_code == 403

        revoked = await client.delete(
            f"/invitations/{invitation['id']}/revoke", headers=alice["headers"]
        )
        assert revoked.status_code == 200
        assert revoked.json()["status"] == "REVOKED"
        assert revoked.json()["token"] is None

    @pytest.mark.asyncio
    async def test_inviting_on_someone_elses_note(self, client, register_user):
        alice = await register_user("alice@example.com")
        mallory = await register_user("mallory@example.com")
        note = (await client.post("/notes", json={"title": "Mine"}, headers=alice["headers"])).json()

        response = await client.post(
            f"/invitations/notes/{note['id']}",
            json={"invited_email": "mallory@example.com"},
            headers=mallory["headers"],
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_token(self, client):
        response = await client.get("/invitations/" + "0" * 64)
        assert response.status_code == 404
        assert response.json()["error"] == "invitation_not_found"


# ══════════════════════════════════════════════════════════════════════════
# API Keys
# ══════════════════════════════════════════════════════════════════════════

class TestApiKeysApi:

    async def _create_key(self, client, user, permissions):
        response = await client.post(
            "/api-keys",
            json={"name": "script", "permissions": permissions},
            headers=user["headers"],
        )
        assert response.status_code == 201, response.text
        return response.json()["key"]

    @pytest.mark.asyncio
    async def test_key_only_does_what_it_is_allowed(self, client, register_user):
        alice = await register_user("alice@example.com")
        key = await self._create_key(client, alice, ["read_notes"])
        key_headers = {"X-API-Key": key}

        assert (await client.get("/notes", headers=key_headers)).status_code == 200
        created = await client.post("/notes", json={"title": "Nope"}, headers=key_headers)
        assert created.status_code == 403
        assert created.json()["error"] == "not_authorized"

    @pytest.mark.asyncio
    async def test_listing_masks_the_key(self, client, register_user):
        alice = await register_user("alice@example.com")
        key = await self._create_key(client, alice, ["read_notes"])

        listed = await client.get("/api-keys", headers=alice["headers"])

        assert listed.json()[0]["key"] == key[:12] + "..."

    @pytest.mark.asyncio
    async def test_keys_cannot_manage_keys(self, client, register_user):
        alice = await register_user("alice@example.com")
        key = await self._create_key(client, alice, ["read_notes", "create_notes"])

        response = await client.get("/api-keys", headers={"X-API-Key": key})

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_permission_catalogue(self, client, register_user):
        alice = await register_user("alice@example.com")

        response = await client.get("/api-keys/permissions", headers=alice["headers"])

        values = {p["value"] for p in response.json()}
        assert {"read_notes", "share_notes", "use_templates"} <= values


# ══════════════════════════════════════════════════════════════════════════
# Templates
# ══════════════════════════════════════════════════════════════════════════

class TestTemplatesApi:

    @pytest.mark.asyncio
    async def test_use_and_convert(self, client, register_user):
        alice = await register_user("alice@example.com")
        template = (
            await client.post(
                "/templates",
                json={"title": "Standup", "checkboxes": [{"label": "yesterday"}]},
                headers=alice["headers"],
            )
        ).json()
        assert template["is_template"] is True

        used = await client.post(f"/templates/{template['id']}/use", headers=alice["headers"])
        assert used.status_code == 201
        assert used.json()["title"] == "Standup"
        assert used.json()["is_template"] is False

        converted = await client.post(
            f"/templates/convert/from-note/{used.json()['id']}", headers=alice["headers"]
        )
        assert converted.json()["is_template"] is True
        listed = await client.get("/templates", headers=alice["headers"])
        assert len(listed.json()) == 2


# ══════════════════════════════════════════════════════════════════════════
# Instance Plans
# ══════════════════════════════════════════════════════════════════════════

class TestQuotaApi:

    @pytest.fixture
    def instance_config(self):
        return InstanceConfig(
            plan="basic",
            limits=InstanceLimits(max_notes_per_user=1),
            features=InstanceFeatures(webhooks_enabled=False),
        )

    @pytest.mark.asyncio
    async def test_note_quota_is_423(self, client, register_user):
        alice = await register_user("alice@example.com")
        assert (await client.post("/notes", json={"title": "One"}, headers=alice["headers"])).status_code == 201

        response = await client.post("/notes", json={"title": "Two"}, headers=alice["headers"])

        assert response.status_code == 423
        assert response.json()["details"] == {"resource": "notes_per_user", "limit": 1, "current": 1}

    @pytest.mark.asyncio
    async def test_disabled_feature_is_424(self, client, register_user):
        alice = await register_user("alice@example.com")

        response = await client.get("/webhooks", headers=alice["headers"])

        assert response.status_code == 424
        assert response.json()["details"] == {"feature": "webhooks"}

    @pytest.mark.asyncio
    async def test_instance_info(self, client):
        response = await client.get("/instance")

        assert response.status_code == 200
        body = response.json()
        assert body["plan"] == "basic"
        assert body["limits"]["max_notes_per_user"] == 1
        assert body["features"]["webhooks_enabled"] is False


class TestRateLimitApi:

    @pytest.fixture
    def instance_config(self):
        return InstanceConfig(limits=InstanceLimits(rate_limit_requests=3))

    @pytest.mark.asyncio
    async def test_429_after_budget_is_spent(self, client):
        for _ in range(3):
            response = await client.get("/instance")
            assert response.status_code == 200
        assert response.headers["X-RateLimit-Remaining"] == "0"

        limited = await client.get("/instance")

        assert limited.status_code == 429
        assert limited.json()["error"] == "rate_limit_exceeded"
        assert int(limited.headers["Retry-After"]) >= 1
        assert (await client.get("/health")).status_code == 200


# ══════════════════════════════════════════════════════════════════════════
# Webhooks
# ══════════════════════════════════════════════════════════════════════════

class TestWebhooksApi:

    @pytest.mark.asyncio
    async def test_note_events_are_delivered(self, client, register_user, webhook_calls):
        alice = await register_user("alice@example.com")
        for action in ("note_created", "note_deleted"):
            response = await client.post(
                "/webhooks",
                json={"action": action, "url": f"https://hooks.example.com/{action}"},
                headers=alice["headers"],
            )
            assert response.status_code == 201

        note = (await client.post("/notes", json={"title": "Hooked"}, headers=alice["headers"])).json()
        await client.patch(f"/notes/{note['id']}", json={"content": "x"}, headers=alice["headers"])
        await client.delete(f"/notes/{note['id']}", headers=alice["headers"])

        assert [call.url.path for call in webhook_calls] == ["/note_created", "/note_deleted"]
        payload = json.loads(webhook_calls[0].content)
        assert payload["action"] == "note_created"
        assert payload["note"]["id"] == note["id"]
        assert payload["user_id"] == alice["id"]

    @pytest.mark.asyncio
    async def test_private_target_rejected(self, client, register_user):
        alice = await register_user("alice@example.com")

        response = await client.post(
            "/webhooks",
            json={"action": "note_created", "url": "http://127.0.0.1:8080/hook"},
            headers=alice["headers"],
        )

        assert response.status_code == 400
        assert response.json()["details"] == {"field": "url"}


# ══════════════════════════════════════════════════════════════════════════
# Health
# ══════════════════════════════════════════════════════════════════════════

class TestHealthEndpoint:

    @pytest.mark.asyncio
    async def test_health_check_returns_200(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "connected"
        assert "uptime_seconds" in data
