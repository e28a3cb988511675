"""
审计日志 API

- GET /admin/audit-logs - 检索审计日志
- GET /admin/audit-queue - 兜底队列中待回放的条目
- POST /admin/audit-queue/process - 立即回放一次兜底队列（仅管理员）
"""

from datetime import datetime
from typing import List, Optional

import structlog
from fastapi import APIRouter, Query

from backoffice.api.deps import DB, QueueProcessor
from backoffice.api.v1.schemas.moderation import (
    AuditLogOut,
    AuditQueueEntryOut,
    AuditQueueProcessResponse,
)
from backoffice.core.audit import AuditLogFilters, get_audit_queue_entries, search_audit_logs
from backoffice.core.rbac import AdminOnly, ModeratorOrAbove

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/admin")


@router.get("/audit-logs", response_model=List[AuditLogOut])
async def list_audit_logs(
    actor: ModeratorOrAbove,
    db: DB,
    actor_id: Optional[str] = Query(None, alias="actorId"),
    action: Optional[str] = Query(None),
    target_type: Optional[str] = Query(None, alias="targetType"),
    target_id: Optional[str] = Query(None, alias="targetId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    limit: int = Query(100, ge=1, le=1000),
):
    """检索审计日志（按时间倒序）"""
    filters = AuditLogFilters(
        actor_id=actor_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        start_date=start_date,
        end_date=end_date,
    )
    logs = await search_audit_logs(db, filters, limit)
    return [AuditLogOut.model_validate(log) for log in logs]


@router.get("/audit-queue", response_model=List[AuditQueueEntryOut])
async def list_audit_queue(actor: ModeratorOrAbove, db: DB):
    """兜底队列中待回放的条目（按入队时间升序）"""
    entries = await get_audit_queue_entries(db)
    return [AuditQueueEntryOut.model_validate(entry) for entry in entries]


@router.post("/audit-queue/process", response_model=AuditQueueProcessResponse)
async def process_audit_queue(actor: AdminOnly, processor: QueueProcessor):
    """立即回放一次兜底队列"""
    processed = await processor.process_audit_queue()
    report = processor.last_report

    logger.info("audit_queue_manual_drain", actor_id=actor.id, processed=processed)

    return AuditQueueProcessResponse(
        processed=processed,
        failed=report.failed if report else 0,
        dead_lettered=report.dead_lettered if report else 0,
    )
