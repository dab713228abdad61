"""Anthropic API 客户端，用于生成频道摘要和任务分析"""

import json
import logging
from collections.abc import Sequence
from typing import Any, Protocol

import httpx

from app.core.config import settings
from app.core.errors import MalformedResponse, UpstreamError

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


class ChatMessage(Protocol):
    user: str | None
    text: str


def extract_json_object(text: str) -> dict[str, Any]:
    """
    从模型输出中取出第一个合法的 JSON 对象

    模型不一定只返回 JSON，前后可能夹带说明文字或代码块标记。
    """
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except ValueError:
            obj = None
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    raise MalformedResponse("Failed to parse AI response: no JSON object found")


class SummaryClient:
    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport
        self._model = settings.anthropic_model

    def _build_prompt(self, messages: Sequence[ChatMessage]) -> str:
        formatted = []
        for message in messages:
            author = message.user or "unknown"
            formatted.append(f"[{author}]: {message.text}")
        return "\n".join(formatted)

    async def _complete(self, prompt: str) -> str:
        api_key = settings.anthropic_api_key
        if not api_key:
            raise UpstreamError("ANTHROPIC_API_KEY not configured")

        payload = {
            "model": self._model,
            "max_tokens": settings.anthropic_max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(
                base_url=settings.anthropic_base_url,
                timeout=settings.http_timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post("/v1/messages", headers=headers, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            logger.error(f"Anthropic API 请求失败: {exc.response.status_code} - {exc.response.text}")
            raise UpstreamError(f"Claude API error: {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error(f"Anthropic API 请求出错: {exc}", exc_info=True)
            raise UpstreamError(f"Claude API request failed: {exc}") from exc
        except ValueError as exc:
            raise MalformedResponse("Claude API returned non-JSON body") from exc

        try:
            return data["content"][0]["text"]
        except (KeyError, IndexError, TypeError) as exc:
            logger.error(f"Anthropic 返回格式不符合预期: {json.dumps(data, ensure_ascii=False)[:500]}")
            raise MalformedResponse("Claude API response has no text content") from exc

    async def summarize(self, messages: Sequence[ChatMessage], channel_name: str) -> dict[str, Any]:
        """返回 {"summary": str, "blockers": [...], "keyTopics": [...]}，字段以模型输出为准"""
        prompt = (
            f"Analyze these Slack messages from #{channel_name}:\n\n"
            f"{self._build_prompt(messages)}\n\n"
            "Provide a JSON response with:\n"
            "{\n"
            '  "summary": "Brief 2-3 sentence summary",\n'
            '  "blockers": ["blocker1", "blocker2"],\n'
            '  "keyTopics": ["topic1", "topic2", "topic3"]\n'
            "}"
        )
        content = await self._complete(prompt)
        result = extract_json_object(content)
        logger.info(f"频道 #{channel_name} 摘要生成完成，消息数 {len(messages)}")
        return result

    async def analyze_tasks(self, tasks: Sequence[dict[str, Any]], context: str) -> dict[str, Any]:
        """对 Asana 任务做风险分析，返回 {"summary", "risks", "recommendations"}"""
        lines = []
        for task in tasks:
            assignee = (task.get("assignee") or {}).get("name") or "Unassigned"
            state = "done" if task.get("completed") else "open"
            due = task.get("due_on") or "no due date"
            lines.append(f"- {task.get('name', '')} ({state}, {assignee}, due {due})")

        prompt = (
            f"Analyze these Asana tasks for {context}:\n\n"
            + "\n".join(lines)
            + "\n\nProvide a JSON response with:\n"
            "{\n"
            '  "summary": "Brief 2-3 sentence assessment",\n'
            '  "risks": ["risk1", "risk2"],\n'
            '  "recommendations": ["recommendation1", "recommendation2"]\n'
            "}"
        )
        content = await self._complete(prompt)
        return extract_json_object(content)


summary_client = SummaryClient()
