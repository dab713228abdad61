"""Slack 数据源：频道列表、消息拉取、OAuth 换取 Token、请求签名校验"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from slack_sdk.errors import SlackApiError
from slack_sdk.signature import SignatureVerifier
from slack_sdk.web.async_client import AsyncWebClient

from app.core.config import settings
from app.core.errors import NotConnected, UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class SlackMessage:
    user: str | None
    text: str
    timestamp: str


@dataclass
class SlackOAuthResult:
    access_token: str
    team_id: str | None
    team_name: str | None


class SlackClient:
    """每次调用按 Token 新建 AsyncWebClient，不共享连接状态"""

    def __init__(self, client_factory: Callable[..., Any] = AsyncWebClient) -> None:
        self._client_factory = client_factory

    def _client(self, access_token: str | None) -> Any:
        token = access_token or settings.slack_bot_token
        if not token:
            raise NotConnected("Slack not configured - no access token")
        return self._client_factory(token=token)

    async def list_channels(self, access_token: str | None = None) -> list[dict[str, str]]:
        client = self._client(access_token)
        try:
            result = await client.conversations_list(
                types="public_channel,private_channel",
                exclude_archived=True,
                limit=100,
            )
        except SlackApiError as exc:
            logger.error(f"获取 Slack 频道列表失败: {exc.response.get('error')}")
            raise UpstreamError(f"Slack API error: {exc.response.get('error')}") from exc

        return [{"id": ch["id"], "name": ch["name"]} for ch in result.get("channels", [])]

    async def get_channel_info(self, channel_id: str, access_token: str | None = None) -> dict[str, Any]:
        client = self._client(access_token)
        try:
            result = await client.conversations_info(channel=channel_id)
        except SlackApiError as exc:
            logger.error(f"获取 Slack 频道信息失败: {channel_id}, {exc.response.get('error')}")
            raise UpstreamError(f"Slack API error: {exc.response.get('error')}") from exc

        channel = result.get("channel", {})
        return {
            "id": channel.get("id", channel_id),
            "name": channel.get("name", channel_id),
            "is_private": bool(channel.get("is_private", False)),
        }

    async def get_channel_messages(
        self,
        channel_id: str,
        access_token: str | None = None,
        *,
        oldest: str | None = None,
        limit: int = 100,
    ) -> list[SlackMessage]:
        """拉取频道消息，只保留真人发的文本消息"""
        client = self._client(access_token)
        kwargs: dict[str, Any] = {"channel": channel_id, "limit": limit}
        if oldest:
            kwargs["oldest"] = oldest

        try:
            result = await client.conversations_history(**kwargs)
        except SlackApiError as exc:
            logger.error(f"拉取 Slack 消息失败: {channel_id}, {exc.response.get('error')}")
            raise UpstreamError(f"Slack API error: {exc.response.get('error')}") from exc

        messages = []
        for msg in result.get("messages", []):
            if msg.get("bot_id") or msg.get("type") != "message" or not msg.get("text"):
                continue
            messages.append(SlackMessage(user=msg.get("user"), text=msg["text"], timestamp=msg.get("ts", "")))
        return messages

    async def get_recent_messages(
        self,
        channel_id: str,
        hours: int = 24,
        access_token: str | None = None,
    ) -> list[SlackMessage]:
        oldest = datetime.now(timezone.utc) - timedelta(hours=hours)
        return await self.get_channel_messages(channel_id, access_token, oldest=f"{oldest.timestamp():.6f}")

    async def exchange_code(self, code: str, redirect_uri: str) -> SlackOAuthResult:
        """用授权码换取 Token（oauth.v2.access）"""
        client = self._client_factory()
        try:
            result = await client.oauth_v2_access(
                client_id=settings.slack_client_id,
                client_secret=settings.slack_client_secret,
                code=code,
                redirect_uri=redirect_uri,
            )
        except SlackApiError as exc:
            logger.error(f"Slack OAuth 换取 Token 失败: {exc.response.get('error')}")
            raise UpstreamError(f"Slack OAuth error: {exc.response.get('error')}") from exc

        team = result.get("team") or {}
        return SlackOAuthResult(
            access_token=result["access_token"],
            team_id=team.get("id"),
            team_name=team.get("name"),
        )

    def verify_signature(self, body: str | bytes, headers: Mapping[str, str]) -> bool:
        """校验 Slack 请求签名（v0 HMAC，5 分钟内有效）"""
        if not settings.slack_signing_secret:
            return False
        verifier = SignatureVerifier(signing_secret=settings.slack_signing_secret)
        return verifier.is_valid_request(body, dict(headers))


slack_client = SlackClient()
