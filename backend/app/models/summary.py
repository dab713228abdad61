from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text

from app.core.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SlackSummary(Base):
    """频道摘要表，一次摘要生成一行"""

    __tablename__ = "slack_summaries"

    id = Column(Integer, primary_key=True, index=True)

    # 来源会话
    channel_id = Column(String(64), nullable=False, index=True)
    channel_name = Column(String(255), nullable=True)
    team_id = Column(String(64), nullable=True, index=True)

    summary = Column(Text, nullable=False)
    key_topics = Column(JSON, nullable=False, default=list)

    # 创建后不再修改，下标即 blocker 的身份
    blockers = Column(JSON, nullable=False, default=list)
    # 与 blockers 下标对齐的状态覆盖层，可能比 blockers 短
    blocker_status = Column(JSON, nullable=True, default=list)

    message_count = Column(Integer, nullable=False, default=0)
    time_period_start = Column(DateTime, nullable=True)
    time_period_end = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=_utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)
