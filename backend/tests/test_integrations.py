"""Tests for OAuth helpers, the Slack adapter and integration storage."""

from __future__ import annotations

import hashlib
import hmac
import time
from urllib.parse import parse_qs, urlparse

import pytest
from slack_sdk.errors import SlackApiError

from app.core.config import settings
from app.core.errors import InvalidArgument, NotConnected, UpstreamError
from app.services import oauth
from app.services.repositories.integration_repository import IntegrationRepository, IntegrationTokens
from app.services.repositories.settings_repository import SettingsRepository
from app.services.slack_client import SlackClient


# ─────────────────────────────────────────────────────────────────────────────
# OAuth helpers
# ─────────────────────────────────────────────────────────────────────────────

class TestOAuthState:
    def test_decodes_user_id(self):
        assert oauth.decode_state(oauth.encode_state("user-9")) == "user-9"

    @pytest.mark.parametrize("state", ["%%%", "bm90IGpzb24=", "e30="])
    def test_rejects_bad_state(self, state):
        # "bm90IGpzb24=" 为 "not json"，"e30=" 为 "{}"
        with pytest.raises(InvalidArgument):
            oauth.decode_state(state)


class TestAuthorizeUrls:
    def test_slack_url(self, monkeypatch):
        monkeypatch.setattr(settings, "slack_client_id", "cid")
        monkeypatch.setattr(settings, "api_base_url", "https://api.example.com")

        url = urlparse(oauth.slack_authorize_url("user-1"))
        query = parse_qs(url.query)

        assert url.netloc == "slack.com"
        assert query["client_id"] == ["cid"]
        assert query["scope"] == [",".join(oauth.SLACK_SCOPES)]
        assert query["redirect_uri"] == ["https://api.example.com/api/auth/slack/oauth/callback"]
        assert oauth.decode_state(query["state"][0]) == "user-1"

    def test_asana_url(self, monkeypatch):
        monkeypatch.setattr(settings, "asana_client_id", "aid")

        query = parse_qs(urlparse(oauth.asana_authorize_url("user-2")).query)

        assert query["response_type"] == ["code"]
        assert query["client_id"] == ["aid"]
        assert oauth.decode_state(query["state"][0]) == "user-2"

    def test_integrations_redirect(self, monkeypatch):
        monkeypatch.setattr(settings, "frontend_url", "https://app.example.com")
        assert (
            oauth.integrations_redirect(success="slack_connected")
            == "https://app.example.com/app/integrations?success=slack_connected"
        )


# ─────────────────────────────────────────────────────────────────────────────
# Slack adapter
# ─────────────────────────────────────────────────────────────────────────────

class FakeWebClient:
    history: dict = {}
    error: str | None = None
    tokens: list = []
    history_kwargs: dict = {}

    def __init__(self, token=None):
        FakeWebClient.tokens.append(token)

    def _maybe_fail(self):
        if FakeWebClient.error:
            raise SlackApiError("failed", {"ok": False, "error": FakeWebClient.error})

    async def conversations_history(self, **kwargs):
        self._maybe_fail()
        FakeWebClient.history_kwargs = kwargs
        return FakeWebClient.history

    async def conversations_list(self, **kwargs):
        self._maybe_fail()
        return {"channels": [{"id": "C1", "name": "general", "is_archived": False}]}

    async def conversations_info(self, channel):
        self._maybe_fail()
        return {"channel": {"id": channel, "name": "general", "is_private": True}}

    async def oauth_v2_access(self, **kwargs):
        self._maybe_fail()
        return {"access_token": "xoxb-new", "team": {"id": "T9", "name": "Acme"}}


@pytest.fixture
def fake_web_client():
    FakeWebClient.history = {}
    FakeWebClient.error = None
    FakeWebClient.tokens = []
    FakeWebClient.history_kwargs = {}
    return FakeWebClient


class TestSlackClient:
    @pytest.mark.asyncio
    async def test_keeps_only_human_text_messages(self, fake_web_client):
        fake_web_client.history = {
            "messages": [
                {"type": "message", "user": "U1", "text": "hello", "ts": "1.0"},
                {"type": "message", "bot_id": "B1", "text": "deploy done", "ts": "2.0"},
                {"type": "message", "user": "U2", "text": "", "ts": "3.0"},
                {"type": "channel_join", "user": "U3", "text": "joined", "ts": "4.0"},
            ]
        }
        messages = await SlackClient(fake_web_client).get_channel_messages("C1", "xoxp")

        assert [(m.user, m.text, m.timestamp) for m in messages] == [("U1", "hello", "1.0")]
        assert fake_web_client.tokens == ["xoxp"]

    @pytest.mark.asyncio
    async def test_recent_messages_window(self, fake_web_client):
        before = time.time()
        await SlackClient(fake_web_client).get_recent_messages("C1", hours=6, access_token="xoxp")

        oldest = float(fake_web_client.history_kwargs["oldest"])
        assert before - 6 * 3600 - 1 <= oldest <= time.time() - 6 * 3600 + 1

    @pytest.mark.asyncio
    async def test_channel_info(self, fake_web_client):
        info = await SlackClient(fake_web_client).get_channel_info("C7", "xoxp")
        assert info == {"id": "C7", "name": "general", "is_private": True}

    @pytest.mark.asyncio
    async def test_falls_back_to_bot_token(self, fake_web_client, monkeypatch):
        monkeypatch.setattr(settings, "slack_bot_token", "xoxb-bot")
        await SlackClient(fake_web_client).list_channels()
        assert fake_web_client.tokens == ["xoxb-bot"]

    @pytest.mark.asyncio
    async def test_no_token(self, fake_web_client, monkeypatch):
        monkeypatch.setattr(settings, "slack_bot_token", None)
        with pytest.raises(NotConnected):
            await SlackClient(fake_web_client).list_channels()

    @pytest.mark.asyncio
    async def test_api_error(self, fake_web_client):
        fake_web_client.error = "channel_not_found"
        with pytest.raises(UpstreamError):
            await SlackClient(fake_web_client).get_channel_messages("C404", "xoxp")

    @pytest.mark.asyncio
    async def test_exchange_code(self, fake_web_client):
        result = await SlackClient(fake_web_client).exchange_code("code", "http://cb")
        assert (result.access_token, result.team_id, result.team_name) == ("xoxb-new", "T9", "Acme")


class TestSlackSignature:
    def _headers(self, secret: str, body: bytes, timestamp: int) -> dict:
        base = f"v0:{timestamp}:{body.decode()}".encode()
        signature = "v0=" + hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()
        return {"X-Slack-Request-Timestamp": str(timestamp), "X-Slack-Signature": signature}

    def test_valid_signature(self, monkeypatch):
        monkeypatch.setattr(settings, "slack_signing_secret", "shh")
        body = b'{"type": "event_callback"}'
        headers = self._headers("shh", body, int(time.time()))

        assert SlackClient().verify_signature(body, headers) is True

    def test_wrong_secret(self, monkeypatch):
        monkeypatch.setattr(settings, "slack_signing_secret", "shh")
        body = b"{}"
        headers = self._headers("other", body, int(time.time()))

        assert SlackClient().verify_signature(body, headers) is False

    def test_stale_timestamp(self, monkeypatch):
        monkeypatch.setattr(settings, "slack_signing_secret", "shh")
        body = b"{}"
        headers = self._headers("shh", body, int(time.time()) - 600)

        assert SlackClient().verify_signature(body, headers) is False

    def test_no_secret_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "slack_signing_secret", None)
        assert SlackClient().verify_signature(b"{}", {}) is False


# ─────────────────────────────────────────────────────────────────────────────
# Integration and settings storage
# ─────────────────────────────────────────────────────────────────────────────

class TestIntegrationRepository:
    @pytest.mark.asyncio
    async def test_reconnect_overwrites(self, session):
        repo = IntegrationRepository(session)
        first = await repo.save_integration("u1", "slack", IntegrationTokens(access_token="old", team_id="T1"))
        second = await repo.save_integration("u1", "slack", IntegrationTokens(access_token="new", team_id="T2"))

        assert first.id == second.id
        stored = await repo.get_integration("u1", "slack")
        assert (stored.access_token, stored.team_id) == ("new", "T2")

    @pytest.mark.asyncio
    async def test_platforms_are_separate(self, session):
        repo = IntegrationRepository(session)
        await repo.save_integration("u1", "slack", IntegrationTokens(access_token="s"))
        await repo.save_integration("u1", "asana", IntegrationTokens(access_token="a", workspace_id="W1"))

        await repo.delete_integration("u1", "slack")

        assert await repo.get_integration("u1", "slack") is None
        assert (await repo.get_integration("u1", "asana")).workspace_id == "W1"


class TestSettingsRepository:
    @pytest.mark.asyncio
    async def test_upsert_keeps_unspecified_defaults(self, session):
        repo = SettingsRepository(session)
        assert await repo.get("u1") is None

        record = await repo.upsert("u1", {"blocker_alerts": True})
        assert record.blocker_alerts is True
        assert record.email_notifications is True
        assert record.appearance == "light"

        record = await repo.upsert("u1", {"appearance": "dark"})
        assert record.blocker_alerts is True
        assert record.appearance == "dark"
