"""
审核后台 API

- POST /admin/moderation/bulk - 批量操作（revert / range-block）
- GET /admin/moderation/stats - 待审核队列统计
- POST /admin/moderation/content/{content_type}/{content_id}/delete - 软删除内容
- POST /admin/moderation/content/{content_type}/{content_id}/restore - 恢复内容
- GET /admin/moderation/content/{content_type}/{content_id}/soft-delete-audit - 软删除记录
- POST /admin/moderation/edit-requests/{edit_request_id}/approve - 通过编辑请求
- POST /admin/moderation/edit-requests/{edit_request_id}/reject - 驳回编辑请求
- POST /admin/moderation/queue/{queue_item_id}/action - 队列条目决策
- POST /admin/moderation/queue/{queue_item_id}/assign - 分配审核员
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Response, status
from fastapi.responses import JSONResponse

from backoffice.api.deps import DB, BulkExecutor, ModerationActions, SoftDeletes
from backoffice.api.v1.schemas.moderation import (
    BulkOperationRequest,
    BulkOperationResponse,
    BulkRevertRequest,
    EditRequestApproveRequest,
    EditRequestRejectRequest,
    ModerationDecisionResponse,
    ModerationStatsResponse,
    QueueActionRequest,
    QueueAssignRequest,
    QueueAssignResponse,
    RestoreResponse,
    SoftDeleteAuditOut,
    SoftDeleteHistoryResponse,
    SoftDeleteRequest,
    SoftDeleteResponse,
)
from backoffice.core.errors import (
    ErrorCode,
    ModerationError,
    NotFoundError,
    PreconditionError,
    UnsupportedOperationError,
)
from backoffice.core.rbac import ModeratorOrAbove
from backoffice.services.moderation_stats import get_moderation_stats
from backoffice.services.soft_delete import SoftDeleteResult

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/admin/moderation")


def _raise_for_result(result: SoftDeleteResult) -> None:
    """将软删除 / 恢复失败结果映射为结构化错误"""
    if result.success:
        return

    error_types = {
        ErrorCode.UNSUPPORTED_OPERATION: UnsupportedOperationError,
        ErrorCode.NOT_FOUND: NotFoundError,
        ErrorCode.PRECONDITION_FAILED: PreconditionError,
    }
    error_type = error_types.get(result.code, ModerationError)
    raise error_type(result.error or "Operation failed")


# ============================================================
# 批量操作
# ============================================================

@router.post("/bulk", response_model=BulkOperationResponse)
async def bulk_operation(
    payload: BulkOperationRequest,
    actor: ModeratorOrAbove,
    executor: BulkExecutor,
    response: Response,
):
    """
    批量审核操作

    条目逐个独立事务处理，单条失败记录在 results 中，不影响其他条目
    """
    if isinstance(payload, BulkRevertRequest):
        target_ids = payload.edit_request_ids
        duration: Optional[int] = None
    else:
        target_ids = payload.user_ids
        duration = payload.duration

    try:
        result = await executor.execute(
            operation=payload.operation,
            target_ids=target_ids,
            reason=payload.reason,
            actor_id=actor.id,
            duration=duration,
        )
    except ModerationError:
        raise
    except Exception as exc:
        logger.exception("bulk_operation_error", operation=payload.operation, actor_id=actor.id)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": "Internal server error",
                "code": ErrorCode.INTERNAL_ERROR,
                "message": str(exc) or exc.__class__.__name__,
            },
        )

    response.headers["Cache-Control"] = "no-store"
    return BulkOperationResponse.model_validate(
        {
            "success": True,
            "message": f"Bulk {payload.operation} completed",
            "result": result.to_dict(),
            "audit": result.audit.to_dict() if result.audit else None,
        }
    )


# ============================================================
# 统计
# ============================================================

@router.get("/stats", response_model=ModerationStatsResponse)
async def moderation_stats(actor: ModeratorOrAbove, db: DB) -> ModerationStatsResponse:
    """待审核队列统计"""
    stats = await get_moderation_stats(db)
    return ModerationStatsResponse.model_validate(stats.to_dict())


# ============================================================
# 软删除
# ============================================================

@router.post(
    "/content/{content_type}/{content_id}/delete",
    response_model=SoftDeleteResponse,
)
async def soft_delete_content(
    content_type: str,
    content_id: str,
    actor: ModeratorOrAbove,
    manager: SoftDeletes,
    body: Optional[SoftDeleteRequest] = None,
) -> SoftDeleteResponse:
    """软删除内容"""
    body = body or SoftDeleteRequest()
    result = await manager.soft_delete_content(
        content_type=content_type,
        content_id=content_id,
        deleted_by=actor.id,
        reason=body.reason,
        metadata=body.metadata,
    )
    _raise_for_result(result)
    return SoftDeleteResponse(success=True, audit_id=result.audit_id)


@router.post(
    "/content/{content_type}/{content_id}/restore",
    response_model=RestoreResponse,
)
async def restore_content(
    content_type: str,
    content_id: str,
    actor: ModeratorOrAbove,
    manager: SoftDeletes,
) -> RestoreResponse:
    """恢复内容（幂等）"""
    result = await manager.restore_content(
        content_type=content_type,
        content_id=content_id,
        restored_by=actor.id,
    )
    _raise_for_result(result)
    return RestoreResponse(success=True, restored_count=result.restored_count)


@router.get(
    "/content/{content_type}/{content_id}/soft-delete-audit",
    response_model=SoftDeleteHistoryResponse,
)
async def soft_delete_history(
    content_type: str,
    content_id: str,
    actor: ModeratorOrAbove,
    manager: SoftDeletes,
) -> SoftDeleteHistoryResponse:
    """内容的软删除记录"""
    is_deleted = await manager.is_content_deleted(content_type, content_id)
    audits = await manager.get_soft_delete_audit(content_type, content_id)
    return SoftDeleteHistoryResponse(
        content_type=content_type,
        content_id=content_id,
        is_deleted=is_deleted,
        audits=[SoftDeleteAuditOut.model_validate(audit) for audit in audits],
    )


# ============================================================
# 单条审核决策
# ============================================================

@router.post(
    "/edit-requests/{edit_request_id}/approve",
    response_model=ModerationDecisionResponse,
)
async def approve_edit_request(
    edit_request_id: str,
    actor: ModeratorOrAbove,
    service: ModerationActions,
    body: Optional[EditRequestApproveRequest] = None,
) -> ModerationDecisionResponse:
    """通过编辑请求，修改写入内容"""
    body = body or EditRequestApproveRequest()
    result = await service.approve_edit_request(
        edit_request_id=edit_request_id,
        reviewed_by=actor.id,
        note=body.note,
    )
    return ModerationDecisionResponse.model_validate(result.to_dict())


@router.post(
    "/edit-requests/{edit_request_id}/reject",
    response_model=ModerationDecisionResponse,
)
async def reject_edit_request(
    edit_request_id: str,
    body: EditRequestRejectRequest,
    actor: ModeratorOrAbove,
    service: ModerationActions,
) -> ModerationDecisionResponse:
    """驳回编辑请求"""
    result = await service.reject_edit_request(
        edit_request_id=edit_request_id,
        reviewed_by=actor.id,
        reason=body.reason,
    )
    return ModerationDecisionResponse.model_validate(result.to_dict())


@router.post(
    "/queue/{queue_item_id}/action",
    response_model=ModerationDecisionResponse,
)
async def process_queue_item(
    queue_item_id: str,
    body: QueueActionRequest,
    actor: ModeratorOrAbove,
    service: ModerationActions,
) -> ModerationDecisionResponse:
    """对待审核队列条目作出决策"""
    result = await service.process_queue_item(
        queue_item_id=queue_item_id,
        action=body.action,
        performed_by=actor.id,
        justification=body.justification,
    )
    return ModerationDecisionResponse.model_validate(result.to_dict())


@router.post(
    "/queue/{queue_item_id}/assign",
    response_model=QueueAssignResponse,
)
async def assign_queue_item(
    queue_item_id: str,
    actor: ModeratorOrAbove,
    service: ModerationActions,
    body: Optional[QueueAssignRequest] = None,
) -> QueueAssignResponse:
    """分配审核员（缺省分配给自己）"""
    moderator_id = (body.moderator_id if body else None) or actor.id
    item = await service.assign_queue_item(queue_item_id, moderator_id)
    return QueueAssignResponse(
        success=True,
        queue_item_id=item.id,
        assigned_to=item.assigned_to,
        status=item.status,
    )
