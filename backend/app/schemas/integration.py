"""集成状态与用户设置 Schema"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class IntegrationStatus(BaseModel):
    connected: bool
    team: str | None = None
    workspace: str | None = None


class UserSettingsValues(BaseModel):
    email_notifications: bool | None = None
    slack_notifications: bool | None = None
    blocker_alerts: bool | None = None
    daily_digest: bool | None = None
    appearance: Literal["light", "dark"] | None = None


class UserSettingsUpdate(BaseModel):
    user_id: str = Field(..., alias="userId")
    settings: UserSettingsValues


class UserSettingsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str
    email_notifications: bool
    slack_notifications: bool
    blocker_alerts: bool
    daily_digest: bool
    appearance: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
