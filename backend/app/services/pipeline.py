from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import InvalidArgument, NotConnected
from app.models.summary import SlackSummary
from app.services.repositories.integration_repository import IntegrationRepository
from app.services.repositories.summary_repository import SummaryRepository
from app.services.slack_client import SlackClient, slack_client
from app.services.summary_client import SummaryClient, summary_client

logger = logging.getLogger(__name__)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


class SummaryPipeline:
    """拉取频道消息 -> 生成摘要 -> 保存摘要记录"""

    def __init__(
        self,
        slack: SlackClient | None = None,
        summarizer: SummaryClient | None = None,
    ) -> None:
        self._slack = slack or slack_client
        self._summarizer = summarizer or summary_client

    async def run(
        self,
        session: AsyncSession,
        *,
        user_id: str,
        channel_id: str,
        hours: int = 24,
    ) -> SlackSummary | None:
        """
        生成一次频道摘要

        Returns:
            新建的摘要记录；窗口内没有消息时返回 None
        """
        if not channel_id:
            raise InvalidArgument("channelId is required")
        if hours <= 0:
            raise InvalidArgument("hours must be positive")

        integration = await IntegrationRepository(session).get_integration(user_id, "slack")
        if integration is None:
            raise NotConnected("Slack not connected")

        window_end = datetime.now(timezone.utc)
        window_start = window_end - timedelta(hours=hours)

        # 存储的时间窗口与实际查询 Slack 的 oldest 一致
        messages: Sequence = await self._slack.get_channel_messages(
            channel_id, integration.access_token, oldest=f"{window_start.timestamp():.6f}"
        )
        if not messages:
            logger.info(f"频道 {channel_id} 最近 {hours} 小时没有消息，跳过摘要")
            return None

        channel = await self._slack.get_channel_info(channel_id, integration.access_token)
        channel_name = channel.get("name") or channel_id

        result = await self._summarizer.summarize(messages, channel_name)

        record = await SummaryRepository(session).create_summary(
            channel_id=channel_id,
            channel_name=channel_name,
            team_id=integration.team_id,
            summary=str(result.get("summary") or ""),
            blockers=_string_list(result.get("blockers")),
            key_topics=_string_list(result.get("keyTopics")),
            message_count=len(messages),
            time_period_start=window_start,
            time_period_end=window_end,
        )
        logger.info(
            f"摘要已保存: id={record.id}, channel=#{channel_name}, "
            f"blockers={len(record.blockers)}, messages={len(messages)}"
        )
        return record


summary_pipeline = SummaryPipeline()
