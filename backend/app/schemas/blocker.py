"""Blocker 状态 Schema"""

from typing import Any, List, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.summary import SummaryItem


class BlockerStatusEntry(BaseModel):
    status: Literal["active", "resolved"] = "active"
    resolved_at: str | None = None
    resolved_by: str | None = None


class ResolveBlockerRequest(BaseModel):
    """字段类型不在这里校验，交给 BlockerReconciler 统一返回 400"""

    model_config = ConfigDict(populate_by_name=True)

    summary_id: Any = Field(None, alias="summaryId")
    block_index: Any = Field(None, alias="blockIndex")
    resolved_by: Any = Field(None, alias="resolvedBy")
    resolved_at: Any = Field(None, alias="resolvedAt")


class BlockerStatusResponse(BaseModel):
    success: bool = True
    message: str | None = None
    # 原样返回存储内容，可能比 blockers 短
    blocker_status: List[Any]


class ActiveBlockersResponse(BaseModel):
    items: List[SummaryItem]
    total: int
