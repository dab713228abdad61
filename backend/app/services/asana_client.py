"""Asana API 客户端"""

import logging
from collections.abc import Sequence
from datetime import date
from typing import Any

import httpx

from app.core.config import settings
from app.core.errors import UpstreamError

logger = logging.getLogger(__name__)

PROJECT_FIELDS = "name,due_date,completed,archived,notes,members,owner"
PROJECT_TASK_FIELDS = "name,completed,due_on,assignee,assignee.name,notes,tags,num_subtasks,completed_at,created_at"
WORKSPACE_TASK_FIELDS = "name,completed,due_on,assignee,assignee.name,notes,projects,tags"


class AsanaClient:
    """Asana API 客户端，access token 由调用方按用户传入"""

    BASE_URL = "https://app.asana.com/api/1.0"
    TOKEN_URL = "https://app.asana.com/-/oauth_token"

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    def _http(self, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=settings.http_timeout_seconds,
            transport=self._transport,
            **kwargs,
        )

    async def _get(self, access_token: str, path: str, params: dict[str, Any]) -> list[dict[str, Any]]:
        try:
            async with self._http(
                base_url=self.BASE_URL,
                headers={"Authorization": f"Bearer {access_token}", "Accept": "application/json"},
            ) as client:
                response = await client.get(path, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Asana API 请求失败: {path} {e.response.status_code} - {e.response.text}")
            raise UpstreamError(f"Asana API error: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Asana API 请求出错: {path} {e}", exc_info=True)
            raise UpstreamError(f"Asana API request failed: {e}") from e

        return data.get("data", []) if isinstance(data, dict) else []

    async def get_workspaces(self, access_token: str) -> list[dict[str, Any]]:
        return await self._get(access_token, "/workspaces", {})

    async def get_projects(self, access_token: str, workspace_id: str) -> list[dict[str, Any]]:
        return await self._get(
            access_token,
            f"/workspaces/{workspace_id}/projects",
            {"opt_fields": PROJECT_FIELDS},
        )

    async def get_tasks_for_project(self, access_token: str, project_id: str) -> list[dict[str, Any]]:
        return await self._get(
            access_token,
            f"/projects/{project_id}/tasks",
            {"opt_fields": PROJECT_TASK_FIELDS},
        )

    async def get_all_tasks(self, access_token: str, workspace_id: str) -> list[dict[str, Any]]:
        """
        工作区内所有未完成任务

        /tasks 接口要求指定 project 或 assignee，这里逐个项目拉取并按 gid 去重
        """
        projects = await self.get_projects(access_token, workspace_id)
        tasks: dict[str, dict[str, Any]] = {}
        for project in projects:
            if project.get("archived"):
                continue
            project_tasks = await self._get(
                access_token,
                "/tasks",
                {
                    "project": project["gid"],
                    "completed_since": "now",
                    "opt_fields": WORKSPACE_TASK_FIELDS,
                },
            )
            for task in project_tasks:
                tasks.setdefault(task.get("gid") or str(len(tasks)), task)
        return list(tasks.values())

    async def exchange_code(self, code: str, redirect_uri: str) -> dict[str, Any]:
        """用授权码换取 access_token / refresh_token"""
        try:
            async with self._http() as client:
                response = await client.post(
                    self.TOKEN_URL,
                    data={
                        "grant_type": "authorization_code",
                        "client_id": settings.asana_client_id or "",
                        "client_secret": settings.asana_client_secret or "",
                        "redirect_uri": redirect_uri,
                        "code": code,
                    },
                )
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Asana OAuth 换取 Token 失败: {e.response.status_code} - {e.response.text}")
            raise UpstreamError("Failed to exchange code for token") from e
        except httpx.HTTPError as e:
            logger.error(f"Asana OAuth 请求出错: {e}", exc_info=True)
            raise UpstreamError("Failed to exchange code for token") from e


def _due_date(task: dict[str, Any]) -> date | None:
    due_on = task.get("due_on")
    if not due_on:
        return None
    try:
        return date.fromisoformat(due_on)
    except ValueError:
        return None


def _is_overdue(task: dict[str, Any], today: date) -> bool:
    due = _due_date(task)
    return not task.get("completed") and due is not None and due < today


def calculate_project_health(tasks: Sequence[dict[str, Any]] | None, today: date | None = None) -> dict[str, Any]:
    """
    计算项目健康度

    逾期率 > 20% 为 at-risk，> 40% 为 critical
    """
    today = today or date.today()
    tasks = list(tasks or [])

    total = len(tasks)
    completed = sum(1 for t in tasks if t.get("completed"))
    overdue = sum(1 for t in tasks if _is_overdue(t, today))
    on_track = sum(
        1 for t in tasks
        if not t.get("completed") and _due_date(t) is not None and _due_date(t) >= today
    )

    completion_rate = (completed / total) * 100 if total else 0
    overdue_rate = (overdue / total) * 100 if total else 0

    health_status = "healthy"
    if overdue_rate > 20:
        health_status = "at-risk"
    if overdue_rate > 40:
        health_status = "critical"

    return {
        "total": total,
        "completed": completed,
        "overdue": overdue,
        "onTrack": on_track,
        "completionRate": int(completion_rate + 0.5),
        "overdueRate": int(overdue_rate + 0.5),
        "healthStatus": health_status,
    }


def group_workload(tasks: Sequence[dict[str, Any]], today: date | None = None) -> list[dict[str, Any]]:
    """按负责人统计任务数，保持首次出现的顺序"""
    today = today or date.today()
    workload: dict[str, dict[str, Any]] = {}

    for task in tasks:
        assignee = (task.get("assignee") or {}).get("name") or "Unassigned"
        entry = workload.setdefault(
            assignee,
            {"name": assignee, "totalTasks": 0, "completedTasks": 0, "overdueTasks": 0},
        )
        entry["totalTasks"] += 1
        if task.get("completed"):
            entry["completedTasks"] += 1
        if _is_overdue(task, today):
            entry["overdueTasks"] += 1

    return list(workload.values())


asana_client = AsanaClient()
