import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFound, PersistenceError
from app.models.summary import SlackSummary

logger = logging.getLogger(__name__)


class SummaryRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_summary(
        self,
        *,
        channel_id: str,
        channel_name: str | None,
        team_id: str | None,
        summary: str,
        blockers: Sequence[str],
        key_topics: Sequence[str],
        message_count: int,
        time_period_start: datetime | None,
        time_period_end: datetime | None,
    ) -> SlackSummary:
        now = datetime.now(timezone.utc)
        record = SlackSummary(
            channel_id=channel_id,
            channel_name=channel_name,
            team_id=team_id,
            summary=summary,
            blockers=list(blockers),
            key_topics=list(key_topics),
            blocker_status=[],
            message_count=message_count,
            time_period_start=time_period_start,
            time_period_end=time_period_end,
            created_at=now,
            updated_at=now,
        )
        self._session.add(record)
        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error(f"保存摘要失败: channel={channel_id}, {exc}", exc_info=True)
            raise PersistenceError("Failed to save summary") from exc
        await self._session.refresh(record)
        return record

    async def get_by_id(self, summary_id: int) -> SlackSummary | None:
        # 每次都从数据库重新读取，避免拿到会话缓存里的旧 blocker_status
        try:
            return await self._session.get(SlackSummary, summary_id, populate_existing=True)
        except SQLAlchemyError as exc:
            logger.error(f"读取摘要失败: id={summary_id}, {exc}", exc_info=True)
            raise PersistenceError("Failed to load summary") from exc

    async def list_by_team(self, team_id: str, *, limit: int | None = 10) -> Sequence[SlackSummary]:
        query = (
            select(SlackSummary)
            .where(SlackSummary.team_id == team_id)
            .order_by(SlackSummary.created_at.desc(), SlackSummary.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        try:
            result = await self._session.execute(query)
        except SQLAlchemyError as exc:
            logger.error(f"查询团队摘要失败: team={team_id}, {exc}", exc_info=True)
            raise PersistenceError("Failed to list summaries") from exc
        return result.scalars().all()

    def _blockers_not_empty(self):
        # SQLite 用 json_type，Postgres 的 json 列用 json_typeof；非数组按空处理
        json_type = func.json_typeof if self._session.get_bind().dialect.name == "postgresql" else func.json_type
        blockers_length = case(
            (json_type(SlackSummary.blockers) == "array", func.json_array_length(SlackSummary.blockers)),
            else_=0,
        )
        return blockers_length > 0

    async def list_with_blockers(self, team_id: str, *, limit: int | None = None) -> list[SlackSummary]:
        """团队内 blockers 非空的摘要，新的在前（不看解决状态）"""
        query = (
            select(SlackSummary)
            .where(
                SlackSummary.team_id == team_id,
                self._blockers_not_empty(),
            )
            .order_by(SlackSummary.created_at.desc(), SlackSummary.id.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        try:
            result = await self._session.execute(query)
        except SQLAlchemyError as exc:
            logger.error(f"查询团队 blockers 失败: team={team_id}, {exc}", exc_info=True)
            raise PersistenceError("Failed to list blockers") from exc
        return list(result.scalars().all())

    async def update_blocker_status(self, summary_id: int, overlay: list[dict[str, Any]]) -> None:
        """整体替换 blocker_status 并更新 updated_at（单条 UPDATE，后写覆盖先写）"""
        try:
            result = await self._session.execute(
                update(SlackSummary)
                .where(SlackSummary.id == summary_id)
                .values(blocker_status=overlay, updated_at=datetime.now(timezone.utc))
            )
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error(f"更新 blocker_status 失败: id={summary_id}, {exc}", exc_info=True)
            raise PersistenceError("Failed to update blocker status") from exc

        if result.rowcount == 0:
            raise NotFound(f"Summary {summary_id} not found")
