"""Slack API 路由"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_session
from app.core.errors import NotConnected
from app.routers.deps import get_slack_client, get_summary_pipeline, require_user_id
from app.schemas.summary import SummarizeRequest, SummarizeResponse, SummaryItem
from app.services.pipeline import SummaryPipeline
from app.services.repositories.integration_repository import IntegrationRepository
from app.services.slack_client import SlackClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slack", tags=["slack"])


@router.get("/channels")
async def list_channels(
    user_id: str | None = Query(None, alias="userId"),
    session: AsyncSession = Depends(get_session),
    slack: SlackClient = Depends(get_slack_client),
) -> dict:
    user_id = require_user_id(user_id)
    integration = await IntegrationRepository(session).get_integration(user_id, "slack")
    if integration is None:
        raise NotConnected("Slack not connected")

    channels = await slack.list_channels(integration.access_token)
    return {
        "channels": channels,
        "teamId": integration.team_id,
        "teamName": integration.team_name,
    }


@router.post("/summarize", response_model=SummarizeResponse)
async def summarize_channel(
    data: SummarizeRequest,
    session: AsyncSession = Depends(get_session),
    pipeline: SummaryPipeline = Depends(get_summary_pipeline),
) -> SummarizeResponse:
    """生成频道摘要；时间窗口内没有消息时返回空结果而不是错误"""
    record = await pipeline.run(
        session,
        user_id=data.user_id,
        channel_id=data.channel_id,
        hours=data.hours,
    )
    if record is None:
        return SummarizeResponse(message=f"No messages in the last {data.hours} hours")
    return SummarizeResponse(summary=SummaryItem.model_validate(record))


@router.post("/webhook")
async def slack_webhook(
    request: Request,
    slack: SlackClient = Depends(get_slack_client),
):
    body = await request.body()
    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON body")

    logger.info(f"收到 Slack webhook: type={payload.get('type')}")

    # URL 验证请求直接回传 challenge
    if payload.get("type") == "url_verification":
        return PlainTextResponse(payload.get("challenge", ""))

    if not slack.verify_signature(body, request.headers):
        logger.warning("Slack 签名校验失败")
        raise HTTPException(status_code=401, detail="Invalid signature")

    return {"ok": True}
