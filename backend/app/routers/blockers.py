"""Blocker 解决状态 API 路由"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_session
from app.routers.deps import require_user_id
from app.schemas.blocker import ActiveBlockersResponse, BlockerStatusResponse, ResolveBlockerRequest
from app.schemas.summary import SummaryItem
from app.services.blocker_reconciliation import BlockerReconciler
from app.services.repositories.integration_repository import IntegrationRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/blockers", tags=["blockers"])


@router.post("/resolve", response_model=BlockerStatusResponse)
async def resolve_blocker(
    data: ResolveBlockerRequest,
    session: AsyncSession = Depends(get_session),
) -> BlockerStatusResponse:
    """
    将摘要中的某个 blocker 标记为已解决，resolvedAt 由调用方提供
    """
    overlay = await BlockerReconciler(session).resolve(
        data.summary_id,
        data.block_index,
        data.resolved_by,
        data.resolved_at,
    )
    return BlockerStatusResponse(message="Blocker resolved successfully", blocker_status=overlay)


@router.get("", response_model=ActiveBlockersResponse)
async def list_team_blockers(
    user_id: str | None = Query(None, alias="userId"),
    limit: int | None = Query(None, ge=1, le=200),
    session: AsyncSession = Depends(get_session),
) -> ActiveBlockersResponse:
    """
    用户所在 Slack 团队中带 blockers 的摘要（不按解决状态过滤）
    """
    user_id = require_user_id(user_id)
    integration = await IntegrationRepository(session).get_integration(user_id, "slack")
    if integration is None or not integration.team_id:
        return ActiveBlockersResponse(items=[], total=0)

    records = await BlockerReconciler(session).list_active_by_team(integration.team_id, limit=limit)
    items = [SummaryItem.model_validate(record) for record in records]
    return ActiveBlockersResponse(items=items, total=len(items))


@router.get("/{summary_id}", response_model=BlockerStatusResponse)
async def get_blocker_status(
    summary_id: int,
    session: AsyncSession = Depends(get_session),
) -> BlockerStatusResponse:
    overlay = await BlockerReconciler(session).get_status(summary_id)
    return BlockerStatusResponse(blocker_status=overlay)
