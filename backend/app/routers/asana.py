"""Asana API 路由"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_session
from app.core.errors import NotConnected
from app.models.integration import Integration
from app.routers.deps import get_asana_client, get_summary_client, require_user_id
from app.services.asana_client import AsanaClient, calculate_project_health, group_workload
from app.services.repositories.integration_repository import IntegrationRepository
from app.services.summary_client import SummaryClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/asana", tags=["asana"])


async def _asana_integration(session: AsyncSession, user_id: str | None) -> Integration:
    user_id = require_user_id(user_id)
    integration = await IntegrationRepository(session).get_integration(user_id, "asana")
    if integration is None:
        raise NotConnected("Asana not connected")
    return integration


@router.get("/workspaces")
async def list_workspaces(
    user_id: str | None = Query(None, alias="userId"),
    session: AsyncSession = Depends(get_session),
    asana: AsanaClient = Depends(get_asana_client),
) -> dict:
    integration = await _asana_integration(session, user_id)
    workspaces = await asana.get_workspaces(integration.access_token)
    return {"workspaces": workspaces}


@router.get("/projects")
async def list_projects(
    user_id: str | None = Query(None, alias="userId"),
    session: AsyncSession = Depends(get_session),
    asana: AsanaClient = Depends(get_asana_client),
) -> dict:
    integration = await _asana_integration(session, user_id)
    projects = await asana.get_projects(integration.access_token, integration.workspace_id)

    # 过滤已归档的项目
    active_projects = [p for p in projects if not p.get("archived")]
    return {"projects": active_projects}


@router.get("/projects/{project_id}/health")
async def project_health(
    project_id: str,
    user_id: str | None = Query(None, alias="userId"),
    session: AsyncSession = Depends(get_session),
    asana: AsanaClient = Depends(get_asana_client),
    summarizer: SummaryClient = Depends(get_summary_client),
) -> dict:
    integration = await _asana_integration(session, user_id)
    tasks = await asana.get_tasks_for_project(integration.access_token, project_id)

    health = calculate_project_health(tasks)
    ai_analysis = await summarizer.analyze_tasks(tasks, "Project")

    return {
        "health": health,
        "aiAnalysis": ai_analysis,
        "tasks": tasks[:10],
    }


@router.get("/workload")
async def team_workload(
    user_id: str | None = Query(None, alias="userId"),
    session: AsyncSession = Depends(get_session),
    asana: AsanaClient = Depends(get_asana_client),
) -> dict:
    integration = await _asana_integration(session, user_id)
    tasks = await asana.get_all_tasks(integration.access_token, integration.workspace_id)
    return {"workload": group_workload(tasks)}
