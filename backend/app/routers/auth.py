"""OAuth 授权与用户设置路由"""

import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.db import get_session
from app.core.errors import ServiceError
from app.routers.deps import get_asana_client, get_slack_client, require_user_id
from app.schemas.integration import IntegrationStatus, UserSettingsResponse, UserSettingsUpdate
from app.services import oauth
from app.services.asana_client import AsanaClient
from app.services.repositories.integration_repository import IntegrationRepository, IntegrationTokens
from app.services.repositories.settings_repository import DEFAULT_SETTINGS, SettingsRepository
from app.services.slack_client import SlackClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# ---------- Slack ----------

@router.get("/slack/connect")
async def slack_connect(user_id: str | None = Query(None, alias="userId")) -> RedirectResponse:
    user_id = require_user_id(user_id)
    return RedirectResponse(oauth.slack_authorize_url(user_id))


@router.get("/slack/oauth/callback")
async def slack_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    session: AsyncSession = Depends(get_session),
    slack: SlackClient = Depends(get_slack_client),
) -> RedirectResponse:
    if error:
        logger.error(f"Slack OAuth 授权被拒绝: {error}")
        return RedirectResponse(oauth.integrations_redirect(error="slack_auth_failed"))
    if not code or not state:
        return RedirectResponse(oauth.integrations_redirect(error="missing_params"))

    try:
        user_id = oauth.decode_state(state)
        result = await slack.exchange_code(code, settings.slack_redirect_uri)
        await IntegrationRepository(session).save_integration(
            user_id,
            "slack",
            IntegrationTokens(
                access_token=result.access_token,
                team_id=result.team_id,
                team_name=result.team_name,
            ),
        )
    except ServiceError as e:
        logger.error(f"Slack OAuth 回调处理失败: {e}", exc_info=True)
        return RedirectResponse(oauth.integrations_redirect(error="oauth_failed"))

    logger.info(f"Slack 集成已保存: user={user_id}, team={result.team_id}")
    return RedirectResponse(oauth.integrations_redirect(success="slack_connected"))


@router.get("/slack/status", response_model=IntegrationStatus)
async def slack_status(
    user_id: str | None = Query(None, alias="userId"),
    session: AsyncSession = Depends(get_session),
) -> IntegrationStatus:
    user_id = require_user_id(user_id)
    integration = await IntegrationRepository(session).get_integration(user_id, "slack")
    return IntegrationStatus(
        connected=integration is not None,
        team=integration.team_name if integration else None,
    )


@router.delete("/slack/disconnect")
async def slack_disconnect(
    user_id: str | None = Query(None, alias="userId"),
    session: AsyncSession = Depends(get_session),
) -> dict:
    user_id = require_user_id(user_id)
    await IntegrationRepository(session).delete_integration(user_id, "slack")
    logger.info(f"Slack 集成已断开: user={user_id}")
    return {"success": True}


# ---------- Asana ----------

@router.get("/asana/connect")
async def asana_connect(user_id: str | None = Query(None, alias="userId")) -> RedirectResponse:
    user_id = require_user_id(user_id)
    return RedirectResponse(oauth.asana_authorize_url(user_id))


@router.get("/asana/oauth/callback")
async def asana_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    session: AsyncSession = Depends(get_session),
    asana: AsanaClient = Depends(get_asana_client),
) -> RedirectResponse:
    if error:
        logger.error(f"Asana OAuth 授权被拒绝: {error}")
        return RedirectResponse(oauth.integrations_redirect(error="asana_auth_failed"))
    if not code or not state:
        return RedirectResponse(oauth.integrations_redirect(error="missing_params"))

    try:
        user_id = oauth.decode_state(state)
        token_data = await asana.exchange_code(code, settings.asana_redirect_uri)
        access_token = token_data["access_token"]

        # 默认使用第一个工作区
        workspaces = await asana.get_workspaces(access_token)
        workspace = workspaces[0] if workspaces else {}

        await IntegrationRepository(session).save_integration(
            user_id,
            "asana",
            IntegrationTokens(
                access_token=access_token,
                refresh_token=token_data.get("refresh_token"),
                workspace_id=workspace.get("gid"),
                workspace_name=workspace.get("name"),
            ),
        )
    except (ServiceError, KeyError) as e:
        logger.error(f"Asana OAuth 回调处理失败: {e}", exc_info=True)
        return RedirectResponse(oauth.integrations_redirect(error="oauth_failed"))

    logger.info(f"Asana 集成已保存: user={user_id}, workspace={workspace.get('gid')}")
    return RedirectResponse(oauth.integrations_redirect(success="asana_connected"))


@router.get("/asana/status", response_model=IntegrationStatus)
async def asana_status(
    user_id: str | None = Query(None, alias="userId"),
    session: AsyncSession = Depends(get_session),
) -> IntegrationStatus:
    user_id = require_user_id(user_id)
    integration = await IntegrationRepository(session).get_integration(user_id, "asana")
    return IntegrationStatus(
        connected=integration is not None,
        workspace=integration.workspace_name if integration else None,
    )


@router.delete("/asana/disconnect")
async def asana_disconnect(
    user_id: str | None = Query(None, alias="userId"),
    session: AsyncSession = Depends(get_session),
) -> dict:
    user_id = require_user_id(user_id)
    await IntegrationRepository(session).delete_integration(user_id, "asana")
    logger.info(f"Asana 集成已断开: user={user_id}")
    return {"success": True}


# ---------- 用户设置 ----------

@router.get("/settings", response_model=UserSettingsResponse)
async def get_user_settings(
    user_id: str | None = Query(None, alias="userId"),
    session: AsyncSession = Depends(get_session),
) -> UserSettingsResponse:
    user_id = require_user_id(user_id)
    record = await SettingsRepository(session).get(user_id)
    if record is None:
        # 没有记录时返回默认值，不写库
        return UserSettingsResponse(user_id=user_id, **DEFAULT_SETTINGS)
    return UserSettingsResponse.model_validate(record)


@router.post("/settings", response_model=UserSettingsResponse)
async def update_user_settings(
    data: UserSettingsUpdate,
    session: AsyncSession = Depends(get_session),
) -> UserSettingsResponse:
    record = await SettingsRepository(session).upsert(
        data.user_id, data.settings.model_dump(exclude_none=True)
    )
    logger.info(f"用户设置已更新: user={data.user_id}")
    return UserSettingsResponse.model_validate(record)
