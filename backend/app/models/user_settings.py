"""用户通知设置模型"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Integer, String

from app.core.db import Base


class UserSettings(Base):
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), unique=True, nullable=False, index=True)

    email_notifications = Column(Boolean, default=True, nullable=False)
    slack_notifications = Column(Boolean, default=True, nullable=False)
    blocker_alerts = Column(Boolean, default=False, nullable=False)
    daily_digest = Column(Boolean, default=True, nullable=False)
    appearance = Column(String(20), default="light", nullable=False)  # "light", "dark"

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)
