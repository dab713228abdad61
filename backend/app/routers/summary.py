import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_session
from app.routers.deps import require_user_id
from app.schemas.summary import SummaryItem
from app.services.repositories.integration_repository import IntegrationRepository
from app.services.repositories.summary_repository import SummaryRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/summaries", tags=["summaries"])


@router.get("", response_model=List[SummaryItem])
async def list_summaries(
    user_id: str | None = Query(None, alias="userId"),
    limit: int = Query(10, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
) -> List[SummaryItem]:
    """用户所在 Slack 团队的摘要，新的在前；未连接 Slack 时返回空列表"""
    user_id = require_user_id(user_id)
    integration = await IntegrationRepository(session).get_integration(user_id, "slack")
    if integration is None or not integration.team_id:
        return []

    records = await SummaryRepository(session).list_by_team(integration.team_id, limit=limit)
    return [SummaryItem.model_validate(record) for record in records]
