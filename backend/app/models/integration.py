"""第三方平台授权模型"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint

from app.core.db import Base


class Integration(Base):
    """每个 (user_id, platform) 一行，重新授权时覆盖"""

    __tablename__ = "integrations"
    __table_args__ = (UniqueConstraint("user_id", "platform", name="uq_user_platform"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(255), nullable=False, index=True)
    platform = Column(String(32), nullable=False)  # "slack", "asana"

    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=True)

    # Slack 使用 team，Asana 使用 workspace
    team_id = Column(String(64), nullable=True, index=True)
    team_name = Column(String(255), nullable=True)
    workspace_id = Column(String(64), nullable=True)
    workspace_name = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)
