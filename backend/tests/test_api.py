"""HTTP-level tests for the FastAPI app."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio

from app.core.db import get_session
from app.core.errors import PersistenceError
from app.main import create_app
from app.routers.deps import get_slack_client, get_summary_pipeline
from app.services.repositories.integration_repository import IntegrationRepository, IntegrationTokens
from app.services.repositories.summary_repository import SummaryRepository

T1 = "2024-01-01T00:00:00Z"


class EmptyPipeline:
    async def run(self, session, *, user_id, channel_id, hours=24):
        return None


class StubSlack:
    async def list_channels(self, access_token=None):
        return [{"id": "C1", "name": "general"}]

    def verify_signature(self, body, headers):
        return headers.get("x-slack-signature") == "good"


@pytest.fixture
def app(session_maker):
    app = create_app()

    async def override_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_slack_client] = lambda: StubSlack()
    app.dependency_overrides[get_summary_pipeline] = lambda: EmptyPipeline()
    return app


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def connect(session):
    async def _connect(user_id="user-1", platform="slack", team_id="T1"):
        await IntegrationRepository(session).save_integration(
            user_id, platform, IntegrationTokens(access_token="tok", team_id=team_id, team_name="Acme")
        )

    return _connect


class TestBlockerRoutes:
    @pytest.mark.asyncio
    async def test_resolve(self, client, make_summary):
        record = await make_summary()

        response = await client.post(
            "/api/blockers/resolve",
            json={"summaryId": record.id, "blockIndex": 1, "resolvedBy": "user-42", "resolvedAt": T1},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["blocker_status"] == [
            {"status": "active", "resolved_at": None, "resolved_by": None},
            {"status": "resolved", "resolved_at": T1, "resolved_by": "user-42"},
        ]

    @pytest.mark.asyncio
    async def test_resolve_missing_fields(self, client, make_summary):
        record = await make_summary()

        response = await client.post("/api/blockers/resolve", json={"summaryId": record.id, "resolvedBy": "u"})

        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_resolve_negative_index(self, client, make_summary):
        record = await make_summary()

        response = await client.post(
            "/api/blockers/resolve",
            json={"summaryId": record.id, "blockIndex": -1, "resolvedBy": "u", "resolvedAt": T1},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_resolve_unknown_summary(self, client):
        response = await client.post(
            "/api/blockers/resolve",
            json={"summaryId": 404, "blockIndex": 0, "resolvedBy": "u", "resolvedAt": T1},
        )

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Summary 404 not found"}

    @pytest.mark.asyncio
    async def test_get_status_is_raw(self, client, make_summary):
        stored = [{"status": "resolved", "resolved_at": T1, "resolved_by": "u"}]
        record = await make_summary(blockers=["a", "b", "c"], blocker_status=stored)

        response = await client.get(f"/api/blockers/{record.id}")

        assert response.status_code == 200
        assert response.json()["blocker_status"] == stored

    @pytest.mark.asyncio
    async def test_get_status_out_of_range_id(self, client):
        response = await client.get(f"/api/blockers/{10**30}")

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "summaryId out of range"}

    @pytest.mark.asyncio
    async def test_resolve_non_ascii_digit_id(self, client):
        response = await client.post(
            "/api/blockers/resolve",
            json={"summaryId": "²", "blockIndex": 0, "resolvedBy": "u", "resolvedAt": T1},
        )

        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_list_team_blockers(self, client, make_summary, connect):
        await connect()
        older = await make_summary(created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
        newer = await make_summary(created_at=datetime(2024, 2, 1, tzinfo=timezone.utc))
        await make_summary(blockers=[])

        response = await client.get("/api/blockers", params={"userId": "user-1"})

        body = response.json()
        assert [item["id"] for item in body["items"]] == [newer.id, older.id]
        assert body["total"] == 2

    @pytest.mark.asyncio
    async def test_list_team_blockers_without_slack(self, client):
        response = await client.get("/api/blockers", params={"userId": "nobody"})
        assert response.json() == {"items": [], "total": 0}


class TestSummaryRoutes:
    @pytest.mark.asyncio
    async def test_requires_user_id(self, client):
        response = await client.get("/api/summaries")
        assert response.status_code == 400
        assert response.json()["error"] == "userId required"

    @pytest.mark.asyncio
    async def test_empty_without_integration(self, client):
        response = await client.get("/api/summaries", params={"userId": "nobody"})
        assert response.status_code == 200
        assert response.json() == []

    @pytest.mark.asyncio
    async def test_lists_team_summaries(self, client, make_summary, connect):
        await connect()
        record = await make_summary(blocker_status="corrupted")
        await make_summary(team_id="OTHER")

        response = await client.get("/api/summaries", params={"userId": "user-1"})

        items = response.json()
        assert [item["id"] for item in items] == [record.id]
        assert items[0]["blocker_status"] == []
        assert items[0]["blockers"] == ["DB migration pending", "Design review blocked"]

    @pytest.mark.asyncio
    async def test_storage_failure_uses_error_envelope(self, client, connect, monkeypatch):
        await connect()

        async def failing_list(self, team_id, *, limit=10):
            raise PersistenceError("Failed to list summaries")

        monkeypatch.setattr(SummaryRepository, "list_by_team", failing_list)

        response = await client.get("/api/summaries", params={"userId": "user-1"})

        assert response.status_code == 500
        assert response.json() == {"success": False, "error": "Failed to list summaries"}

    @pytest.mark.asyncio
    async def test_summarize_empty_window(self, client):
        response = await client.post("/api/slack/summarize", json={"userId": "user-1", "channelId": "C1", "hours": 6})

        assert response.status_code == 200
        assert response.json() == {"summary": None, "message": "No messages in the last 6 hours"}


class TestSlackRoutes:
    @pytest.mark.asyncio
    async def test_channels_requires_connection(self, client):
        response = await client.get("/api/slack/channels", params={"userId": "nobody"})
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_channels(self, client, connect):
        await connect()
        response = await client.get("/api/slack/channels", params={"userId": "user-1"})
        assert response.json() == {"channels": [{"id": "C1", "name": "general"}], "teamId": "T1", "teamName": "Acme"}

    @pytest.mark.asyncio
    async def test_webhook_url_verification(self, client):
        response = await client.post("/api/slack/webhook", json={"type": "url_verification", "challenge": "abc"})
        assert response.status_code == 200
        assert response.text == "abc"

    @pytest.mark.asyncio
    async def test_webhook_rejects_bad_signature(self, client):
        response = await client.post(
            "/api/slack/webhook",
            json={"type": "event_callback"},
            headers={"X-Slack-Signature": "bad"},
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_webhook_accepts_good_signature(self, client):
        response = await client.post(
            "/api/slack/webhook",
            json={"type": "event_callback"},
            headers={"X-Slack-Signature": "good"},
        )
        assert response.json() == {"ok": True}


class TestAuthRoutes:
    @pytest.mark.asyncio
    async def test_connect_redirects_to_slack(self, client):
        response = await client.get("/api/auth/slack/connect", params={"userId": "user-1"})
        assert response.status_code == 307
        assert response.headers["location"].startswith("https://slack.com/oauth/v2/authorize?")

    @pytest.mark.asyncio
    async def test_callback_with_provider_error(self, client):
        response = await client.get("/api/auth/asana/oauth/callback", params={"error": "access_denied"})
        assert response.status_code == 307
        assert response.headers["location"].endswith("/app/integrations?error=asana_auth_failed")

    @pytest.mark.asyncio
    async def test_callback_missing_params(self, client):
        response = await client.get("/api/auth/slack/oauth/callback", params={"code": "abc"})
        assert response.headers["location"].endswith("?error=missing_params")

    @pytest.mark.asyncio
    async def test_callback_bad_state(self, client):
        response = await client.get("/api/auth/slack/oauth/callback", params={"code": "abc", "state": "%%%"})
        assert response.headers["location"].endswith("?error=oauth_failed")

    @pytest.mark.asyncio
    async def test_status_and_disconnect(self, client, connect):
        await connect()

        status = await client.get("/api/auth/slack/status", params={"userId": "user-1"})
        assert status.json() == {"connected": True, "team": "Acme", "workspace": None}

        response = await client.delete("/api/auth/slack/disconnect", params={"userId": "user-1"})
        assert response.json() == {"success": True}

        status = await client.get("/api/auth/slack/status", params={"userId": "user-1"})
        assert status.json()["connected"] is False

    @pytest.mark.asyncio
    async def test_settings_defaults_then_update(self, client):
        response = await client.get("/api/auth/settings", params={"userId": "user-1"})
        body = response.json()
        assert body["user_id"] == "user-1"
        assert body["blocker_alerts"] is False
        assert body["appearance"] == "light"

        response = await client.post(
            "/api/auth/settings",
            json={"userId": "user-1", "settings": {"blocker_alerts": True, "appearance": "dark"}},
        )
        assert response.status_code == 200

        body = (await client.get("/api/auth/settings", params={"userId": "user-1"})).json()
        assert body["blocker_alerts"] is True
        assert body["appearance"] == "dark"
        assert body["daily_digest"] is True


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.json()["status"] == "healthy"
