"""用户设置仓库"""

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import PersistenceError
from app.models.user_settings import UserSettings

logger = logging.getLogger(__name__)

# 没有记录时返回的默认值
DEFAULT_SETTINGS: dict[str, Any] = {
    "email_notifications": True,
    "slack_notifications": True,
    "blocker_alerts": False,
    "daily_digest": True,
    "appearance": "light",
}


class SettingsRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str) -> UserSettings | None:
        try:
            result = await self._session.execute(
                select(UserSettings).where(UserSettings.user_id == user_id)
            )
        except SQLAlchemyError as exc:
            logger.error(f"读取用户设置失败: user={user_id}, {exc}", exc_info=True)
            raise PersistenceError("Failed to load settings") from exc
        return result.scalar_one_or_none()

    async def upsert(self, user_id: str, values: dict[str, Any]) -> UserSettings:
        record = await self.get(user_id)
        if record is None:
            record = UserSettings(user_id=user_id, **DEFAULT_SETTINGS)
            self._session.add(record)

        for key, value in values.items():
            if key in DEFAULT_SETTINGS and value is not None:
                setattr(record, key, value)
        record.updated_at = datetime.now(timezone.utc)

        try:
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.error(f"保存用户设置失败: user={user_id}, {exc}", exc_info=True)
            raise PersistenceError("Failed to save settings") from exc
        await self._session.refresh(record)
        return record
