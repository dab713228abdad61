from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.core.config import settings
from app.services.blocker_reconciliation import StoredOverlay


class SummaryItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    channel_id: str
    channel_name: str | None = None
    team_id: str | None = None
    summary: str
    key_topics: List[str] = []
    blockers: List[str] = []
    blocker_status: List[Any] = []
    message_count: int = 0
    time_period_start: datetime | None = None
    time_period_end: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @field_validator("key_topics", "blockers", mode="before")
    @classmethod
    def _coerce_list(cls, value: Any) -> Any:
        # 旧数据可能为 NULL 或非数组
        return value if isinstance(value, list) else []

    @field_validator("blocker_status", mode="before")
    @classmethod
    def _coerce_overlay(cls, value: Any) -> Any:
        return StoredOverlay.from_stored(value).entries


class SummarizeRequest(BaseModel):
    user_id: str = Field(..., alias="userId")
    channel_id: str = Field(..., alias="channelId")
    hours: int = Field(default_factory=lambda: settings.summary_default_hours, ge=1, le=24 * 30)


class SummarizeResponse(BaseModel):
    summary: SummaryItem | None = None
    message: str | None = None
