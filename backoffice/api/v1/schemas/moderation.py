"""
审核后台请求 / 响应 Schema

对外字段统一使用 camelCase
"""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from fastapi import Body
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from backoffice.core.config import settings


class CamelModel(BaseModel):
    """camelCase 序列化基类"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ============================================================
# 批量操作
# ============================================================

class BulkRevertRequest(CamelModel):
    """批量驳回编辑请求"""
    operation: Literal["revert"]
    edit_request_ids: List[str] = Field(
        ...,
        min_length=1,
        max_length=settings.BULK_MAX_ITEMS,
        description="编辑请求 ID 列表",
    )
    reason: str = Field(..., min_length=1, description="操作原因（必填）")


class RangeBlockRequest(CamelModel):
    """批量封禁账号"""
    operation: Literal["range-block"]
    user_ids: List[str] = Field(
        ...,
        min_length=1,
        max_length=settings.BULK_MAX_ITEMS,
        description="用户 ID 列表",
    )
    reason: str = Field(..., min_length=1, description="操作原因（必填）")
    duration: Optional[int] = Field(
        None,
        ge=1,
        le=settings.BULK_MAX_DURATION_DAYS,
        description="封禁天数，不指定则立即生效",
    )


# 按 operation 字段区分的请求体；未知 operation 在校验阶段即返回 400
BulkOperationRequest = Annotated[
    Union[BulkRevertRequest, RangeBlockRequest],
    Body(discriminator="operation"),
]


class BulkOperationItemOut(CamelModel):
    id: str
    success: bool
    error: Optional[str] = None


class BulkOperationResultOut(CamelModel):
    operation: str
    total_items: int
    success_count: int
    failure_count: int
    results: List[BulkOperationItemOut]
    duration: int


class AuditWriteOut(CamelModel):
    success: bool
    log_id: Optional[str] = None
    queued: bool = False
    error: Optional[str] = None


class BulkOperationResponse(CamelModel):
    success: bool
    message: str
    result: BulkOperationResultOut
    audit: Optional[AuditWriteOut] = None


# ============================================================
# 软删除
# ============================================================

class SoftDeleteRequest(CamelModel):
    reason: Optional[str] = Field(None, description="删除原因")
    metadata: Optional[Dict[str, Any]] = Field(None, description="附加信息")


class SoftDeleteResponse(CamelModel):
    success: bool
    audit_id: Optional[str] = None


class RestoreResponse(CamelModel):
    success: bool
    restored_count: int = 0


class SoftDeleteAuditOut(CamelModel):
    id: str
    content_type: str
    content_id: str
    deleted_by: str
    reason: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="metadata_")
    deleted_at: datetime
    restored_at: Optional[datetime] = None
    restored_by: Optional[str] = None


class SoftDeleteHistoryResponse(CamelModel):
    content_type: str
    content_id: str
    is_deleted: bool
    audits: List[SoftDeleteAuditOut]


# ============================================================
# 单条审核决策
# ============================================================

class EditRequestApproveRequest(CamelModel):
    note: Optional[str] = Field(None, description="审核备注")


class EditRequestRejectRequest(CamelModel):
    reason: str = Field(..., min_length=1, description="驳回原因（必填）")


class QueueActionRequest(CamelModel):
    action: Literal["approve", "reject"]
    justification: str = Field(..., min_length=1, description="决策理由（必填）")


class QueueAssignRequest(CamelModel):
    moderator_id: Optional[str] = Field(None, description="审核员 ID，缺省为当前操作者")


class ModerationDecisionResponse(CamelModel):
    success: bool
    action: str
    target_id: str
    action_log_id: str
    audit: Optional[AuditWriteOut] = None


class QueueAssignResponse(CamelModel):
    success: bool
    queue_item_id: str
    assigned_to: str
    status: str


# ============================================================
# 统计
# ============================================================

class ModerationStatsResponse(CamelModel):
    total_pending: int
    total_in_review: int
    total_resolved: int
    pending_by_priority: Dict[str, int]
    queue_by_content_type: Dict[str, int]


# ============================================================
# 审计日志
# ============================================================

class AuditLogOut(CamelModel):
    id: str
    actor_id: str
    action: str
    target_type: str
    target_id: str
    reason: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias="metadata_")
    created_at: datetime


class AuditQueueEntryOut(AuditLogOut):
    attempts: int
    last_attempt: Optional[datetime] = None


class AuditQueueProcessResponse(CamelModel):
    processed: int
    failed: int = 0
    dead_lettered: int = 0
