"""第三方平台授权仓库"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import PersistenceError
from app.models.integration import Integration

logger = logging.getLogger(__name__)


@dataclass
class IntegrationTokens:
    """OAuth 回调换到的令牌和团队/工作区信息"""

    access_token: str
    refresh_token: str | None = None
    team_id: str | None = None
    team_name: str | None = None
    workspace_id: str | None = None
    workspace_name: str | None = None


class IntegrationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_integration(self, user_id: str, platform: str) -> Integration | None:
        try:
            result = await self._session.execute(
                select(Integration)
                .where(Integration.user_id == user_id)
                .where(Integration.platform == platform)
            )
        except SQLAlchemyError as exc:
            logger.error(f"读取授权信息失败: user={user_id}, platform={platform}, {exc}", exc_info=True)
            raise PersistenceError("Failed to load integration") from exc
        return result.scalar_one_or_none()

    async def save_integration(self, user_id: str, platform: str, tokens: IntegrationTokens) -> Integration:
        """按 (user_id, platform) upsert"""
        integration = await self.get_integration(user_id, platform)
        if integration is None:
            integration = Integration(user_id=user_id, platform=platform)
            self._session.add(integration)

        integration.access_token = tokens.access_token
        integration.refresh_token = tokens.refresh_token
        integration.team_id = tokens.team_id
        integration.team_name = tokens.team_name
        integration.workspace_id = tokens.workspace_id
        integration.workspace_name = tokens.workspace_name
        integration.updated_at = datetime.now(timezone.utc)

        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error(f"保存授权信息失败: user={user_id}, platform={platform}, {exc}", exc_info=True)
            raise PersistenceError("Failed to save integration") from exc
        await self._session.refresh(integration)
        return integration

    async def delete_integration(self, user_id: str, platform: str) -> bool:
        try:
            await self._session.execute(
                delete(Integration)
                .where(Integration.user_id == user_id)
                .where(Integration.platform == platform)
            )
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error(f"删除授权信息失败: user={user_id}, platform={platform}, {exc}", exc_info=True)
            raise PersistenceError("Failed to delete integration") from exc
        return True
