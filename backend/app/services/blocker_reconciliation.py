"""Blocker 解决状态维护

每条摘要的 blockers 在创建后不再变化，解决状态保存在与之下标对齐的
blocker_status 覆盖层中：

    blocker_status[i] = {"status": "active" | "resolved",
                         "resolved_at": str | None,
                         "resolved_by": str | None}

覆盖层可以比 blockers 短，缺失的下标视为 active。
"""

import asyncio
import json
import logging
import weakref
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import InvalidArgument, NotFound
from app.models.summary import SlackSummary
from app.services.repositories.summary_repository import SummaryRepository

logger = logging.getLogger(__name__)

STATUS_ACTIVE = "active"
STATUS_RESOLVED = "resolved"


class OverlayState(str, Enum):
    VALID = "valid"
    ABSENT = "absent"
    MALFORMED = "malformed"


@dataclass(frozen=True)
class StoredOverlay:
    """数据库中 blocker_status 的读取结果

    ABSENT 和 MALFORMED 都按空数组处理，不抛异常。
    """

    state: OverlayState
    entries: list[Any] = field(default_factory=list)

    @classmethod
    def from_stored(cls, raw: Any) -> "StoredOverlay":
        if raw is None:
            return cls(OverlayState.ABSENT)

        # 旧数据可能把 JSON 以字符串形式存入
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError:
                return cls(OverlayState.MALFORMED)
            if raw is None:
                return cls(OverlayState.ABSENT)

        if isinstance(raw, list):
            return cls(OverlayState.VALID, [dict(e) if isinstance(e, dict) else e for e in raw])
        return cls(OverlayState.MALFORMED)


def default_entry() -> dict[str, Any]:
    return {"status": STATUS_ACTIVE, "resolved_at": None, "resolved_by": None}


def apply_resolution(
    entries: Sequence[Any],
    block_index: int,
    resolved_by: str,
    resolved_at: str,
) -> list[Any]:
    """补齐到 block_index 并把该下标标记为 resolved，返回新列表"""
    overlay = list(entries)
    while len(overlay) <= block_index:
        overlay.append(default_entry())
    overlay[block_index] = {
        "status": STATUS_RESOLVED,
        "resolved_at": resolved_at,
        "resolved_by": resolved_by,
    }
    return overlay


# 数据库 INTEGER 主键上限
MAX_SUMMARY_ID = 2**63 - 1


def _require_summary_id(summary_id: Any) -> int:
    if summary_id is None or summary_id == "" or isinstance(summary_id, bool):
        raise InvalidArgument("summaryId is required")
    if isinstance(summary_id, str):
        # isdecimal 排除 "²" 这类 isdigit 为真但 int() 无法解析的字符
        if not summary_id.isdecimal():
            raise InvalidArgument("summaryId must be an integer")
        try:
            summary_id = int(summary_id)
        except ValueError:
            raise InvalidArgument("summaryId must be an integer")
    if not isinstance(summary_id, int):
        raise InvalidArgument("summaryId must be an integer")
    if not 1 <= summary_id <= MAX_SUMMARY_ID:
        raise InvalidArgument("summaryId out of range")
    return summary_id


def _require_block_index(block_index: Any) -> int:
    if block_index is None:
        raise InvalidArgument("blockIndex is required")
    # bool 是 int 的子类，需要单独排除
    if isinstance(block_index, bool) or not isinstance(block_index, int):
        raise InvalidArgument("blockIndex must be an integer")
    if block_index < 0:
        raise InvalidArgument("blockIndex must be >= 0")
    return block_index


def _require_resolved_at(resolved_at: Any) -> str:
    if isinstance(resolved_at, datetime):
        return resolved_at.isoformat()
    if not isinstance(resolved_at, str) or not resolved_at.strip():
        raise InvalidArgument("resolvedAt is required")
    return resolved_at


# 同一进程内按摘要 id 串行化 resolve；无人持有时自动回收
_summary_locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()


def _lock_for(summary_id: int) -> asyncio.Lock:
    lock = _summary_locks.get(summary_id)
    if lock is None:
        lock = asyncio.Lock()
        _summary_locks[summary_id] = lock
    return lock


class BlockerReconciler:
    """Blocker 解决状态的读写入口"""

    def __init__(
        self,
        session: AsyncSession,
        *,
        strict: bool | None = None,
        max_index: int | None = None,
    ) -> None:
        self._repo = SummaryRepository(session)
        self._strict = settings.blocker_strict_index if strict is None else strict
        self._max_index = settings.blocker_max_index if max_index is None else max_index

    async def _load(self, summary_id: int) -> SlackSummary:
        record = await self._repo.get_by_id(summary_id)
        if record is None:
            raise NotFound(f"Summary {summary_id} not found")
        return record

    async def resolve(
        self,
        summary_id: Any,
        block_index: Any,
        resolved_by: Any,
        resolved_at: Any,
    ) -> list[Any]:
        """
        将某个 blocker 标记为已解决

        Args:
            summary_id: 摘要 id
            block_index: blockers 中的下标
            resolved_by: 操作人
            resolved_at: 调用方提供的解决时间（不使用服务器时间）

        Returns:
            更新后的完整 blocker_status
        """
        summary_id = _require_summary_id(summary_id)
        block_index = _require_block_index(block_index)
        if block_index >= self._max_index:
            raise InvalidArgument(f"blockIndex must be < {self._max_index}")
        if not isinstance(resolved_by, str) or not resolved_by.strip():
            raise InvalidArgument("resolvedBy is required")
        resolved_at = _require_resolved_at(resolved_at)

        async with _lock_for(summary_id):
            record = await self._load(summary_id)

            if self._strict:
                blockers = record.blockers if isinstance(record.blockers, list) else []
                if block_index >= len(blockers):
                    raise InvalidArgument(
                        f"blockIndex {block_index} out of range for {len(blockers)} blockers"
                    )

            stored = StoredOverlay.from_stored(record.blocker_status)
            if stored.state is OverlayState.MALFORMED:
                logger.warning(f"摘要 {summary_id} 的 blocker_status 格式异常，按空数组处理")

            overlay = apply_resolution(stored.entries, block_index, resolved_by, resolved_at)
            await self._repo.update_blocker_status(summary_id, overlay)

        logger.info(f"Blocker 已解决: summary={summary_id}, index={block_index}, by={resolved_by}")
        return overlay

    async def get_status(self, summary_id: Any) -> list[Any]:
        """返回已存储的覆盖层，不补齐默认值"""
        summary_id = _require_summary_id(summary_id)
        record = await self._load(summary_id)
        return StoredOverlay.from_stored(record.blocker_status).entries

    async def list_active_by_team(self, team_id: str, *, limit: int | None = None) -> list[SlackSummary]:
        if not team_id:
            raise InvalidArgument("teamId is required")
        return await self._repo.list_with_blockers(team_id, limit=limit)
