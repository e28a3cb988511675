"""
单条审核决策

- 编辑请求：approve（修改写入内容实体）/ reject（必须填写原因）
- 待审核队列：approve / reject 决策、分配审核员

与批量操作相同，每次决策在单个事务中完成「读取 → 校验 → 修改 → 写 ModerationActionLog」，
事务提交后再通过 AuditWriter 写入审计日志（审计失败不回滚决策）

内容删除不经过队列决策，统一走软删除接口
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.core.audit import AuditWriter, AuditWriteResult, TargetType
from backoffice.core.errors import (
    NotFoundError,
    PreconditionError,
    UnsupportedOperationError,
    ValidationError,
)
from backoffice.database.engine import async_session_maker
from backoffice.database.mixins import generate_uuid, utcnow
from backoffice.database.models.edit_request import EditRequest, EditRequestStatus
from backoffice.database.models.moderation import (
    ModerationAction,
    ModerationActionLog,
    ModerationQueueItem,
    QueueStatus,
)
from backoffice.services.soft_delete import ContentTypeRegistry, default_registry

logger = structlog.get_logger(__name__)

# 队列条目可执行的决策
QUEUE_ACTIONS = (ModerationAction.APPROVE, ModerationAction.REJECT)


@dataclass
class ModerationDecisionResult:
    """单条审核决策结果"""
    action: str
    target_id: str
    action_log_id: str
    audit: Optional[AuditWriteResult] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "action": self.action,
            "targetId": self.target_id,
            "actionLogId": self.action_log_id,
            "audit": self.audit.to_dict() if self.audit else None,
        }


class ModerationActionService:
    """单条审核决策服务"""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        audit_writer: Optional[AuditWriter] = None,
        registry: Optional[ContentTypeRegistry] = None,
    ):
        self.session_factory = session_factory or async_session_maker
        self.audit_writer = audit_writer or AuditWriter(self.session_factory)
        self.registry = registry or default_registry

    # ============================================================
    # 编辑请求
    # ============================================================

    async def approve_edit_request(
        self,
        edit_request_id: str,
        reviewed_by: str,
        note: Optional[str] = None,
    ) -> ModerationDecisionResult:
        """
        通过编辑请求，并将修改写入对应内容

        Raises:
            NotFoundError: 编辑请求不存在
            PreconditionError: 编辑请求不是 pending，或修改无法写入内容
        """
        log = logger.bind(edit_request_id=edit_request_id, reviewed_by=reviewed_by)

        async with self.session_factory() as session:
            async with session.begin():
                edit_request = await self._load_pending_edit_request(session, edit_request_id)

                if edit_request.content_type not in self.registry:
                    raise PreconditionError("Failed to apply edits to content")
                handler = self.registry.get(edit_request.content_type)
                applied = await handler.apply_changes(
                    session, edit_request.content_id, edit_request.changes
                )
                if not applied:
                    raise PreconditionError("Failed to apply edits to content")

                action_log = self._review(
                    session, edit_request, EditRequestStatus.APPROVED, reviewed_by, note
                )

        log.info("edit_request_approved", content_type=edit_request.content_type)
        return await self._audit_edit_request(edit_request, ModerationAction.APPROVE, action_log, note)

    async def reject_edit_request(
        self,
        edit_request_id: str,
        reviewed_by: str,
        reason: str,
    ) -> ModerationDecisionResult:
        """驳回编辑请求（必须填写原因）"""
        if not reason or not reason.strip():
            raise ValidationError("Reason is required to reject an edit request")

        async with self.session_factory() as session:
            async with session.begin():
                edit_request = await self._load_pending_edit_request(session, edit_request_id)
                action_log = self._review(
                    session, edit_request, EditRequestStatus.REJECTED, reviewed_by, reason
                )

        logger.info("edit_request_rejected", edit_request_id=edit_request_id, reviewed_by=reviewed_by)
        return await self._audit_edit_request(edit_request, ModerationAction.REJECT, action_log, reason)

    async def _load_pending_edit_request(
        self,
        session: AsyncSession,
        edit_request_id: str,
    ) -> EditRequest:
        result = await session.execute(
            select(EditRequest).where(EditRequest.id == edit_request_id).with_for_update()
        )
        edit_request = result.scalar_one_or_none()

        if edit_request is None:
            raise NotFoundError(f"Edit request {edit_request_id} not found")
        if edit_request.status != EditRequestStatus.PENDING:
            raise PreconditionError(
                f"Edit request {edit_request_id} is not pending (status: {edit_request.status})"
            )
        return edit_request

    def _review(
        self,
        session: AsyncSession,
        edit_request: EditRequest,
        status: str,
        reviewed_by: str,
        reason: Optional[str],
    ) -> ModerationActionLog:
        now = utcnow()
        edit_request.status = status
        edit_request.reviewed_by = reviewed_by
        edit_request.reviewed_at = now
        if reason:
            edit_request.reason = reason

        action_log = ModerationActionLog(
            id=generate_uuid(),
            action=ModerationAction.APPROVE if status == EditRequestStatus.APPROVED else ModerationAction.REJECT,
            content_type=TargetType.EDIT_REQUEST,
            content_id=edit_request.id,
            performed_by=reviewed_by,
            reason=reason,
            metadata_=self._edit_request_metadata(edit_request),
            created_at=now,
        )
        session.add(action_log)
        return action_log

    @staticmethod
    def _edit_request_metadata(edit_request: EditRequest) -> Dict[str, Any]:
        return {
            "contentType": edit_request.content_type,
            "contentId": edit_request.content_id,
            "userId": edit_request.user_id,
        }

    async def _audit_edit_request(
        self,
        edit_request: EditRequest,
        action: str,
        action_log: ModerationActionLog,
        reason: Optional[str],
    ) -> ModerationDecisionResult:
        audit = await self.audit_writer.write_audit(
            actor_id=edit_request.reviewed_by,
            action=action,
            target_type=TargetType.EDIT_REQUEST,
            target_id=edit_request.id,
            reason=reason,
            metadata=self._edit_request_metadata(edit_request),
        )
        return ModerationDecisionResult(
            action=action,
            target_id=edit_request.id,
            action_log_id=action_log.id,
            audit=audit,
        )

    # ============================================================
    # 待审核队列
    # ============================================================

    async def process_queue_item(
        self,
        queue_item_id: str,
        action: str,
        performed_by: str,
        justification: str,
    ) -> ModerationDecisionResult:
        """
        对待审核队列条目作出决策，条目转为 resolved

        Raises:
            UnsupportedOperationError: 未知决策
            ValidationError: 未填写决策理由
            NotFoundError: 条目或其内容不存在
            PreconditionError: 条目已处理
        """
        if action not in QUEUE_ACTIONS:
            raise UnsupportedOperationError(
                f"Unknown moderation action: {action}",
                details={"supportedActions": list(QUEUE_ACTIONS)},
            )
        if not justification or not justification.strip():
            raise ValidationError("Justification is required")

        log = logger.bind(queue_item_id=queue_item_id, action=action, performed_by=performed_by)

        async with self.session_factory() as session:
            async with session.begin():
                item = await self._load_open_queue_item(session, queue_item_id)

                if item.content_type in self.registry:
                    handler = self.registry.get(item.content_type)
                    if not await handler.exists(session, item.content_id):
                        raise NotFoundError(f"{item.content_type} {item.content_id} not found")

                now = utcnow()
                item.status = QueueStatus.RESOLVED
                item.justification = justification
                item.reviewed_by = performed_by
                item.reviewed_at = now

                metadata = {
                    "queueItemId": item.id,
                    "priority": item.priority,
                }
                action_log = ModerationActionLog(
                    id=generate_uuid(),
                    action=action,
                    content_type=item.content_type,
                    content_id=item.content_id,
                    performed_by=performed_by,
                    reason=justification,
                    metadata_=metadata,
                    created_at=now,
                )
                session.add(action_log)

        log.info("queue_item_resolved", content_type=item.content_type)

        audit = await self.audit_writer.write_audit(
            actor_id=performed_by,
            action=action,
            target_type=item.content_type,
            target_id=item.content_id,
            reason=justification,
            metadata=metadata,
        )
        return ModerationDecisionResult(
            action=action,
            target_id=item.id,
            action_log_id=action_log.id,
            audit=audit,
        )

    async def assign_queue_item(self, queue_item_id: str, moderator_id: str) -> ModerationQueueItem:
        """分配审核员，条目转为 in_review"""
        async with self.session_factory() as session:
            async with session.begin():
                item = await self._load_open_queue_item(session, queue_item_id)
                item.assigned_to = moderator_id
                item.status = QueueStatus.IN_REVIEW

        logger.info("queue_item_assigned", queue_item_id=queue_item_id, moderator_id=moderator_id)
        return item

    async def _load_open_queue_item(
        self,
        session: AsyncSession,
        queue_item_id: str,
    ) -> ModerationQueueItem:
        result = await session.execute(
            select(ModerationQueueItem)
            .where(ModerationQueueItem.id == queue_item_id)
            .with_for_update()
        )
        item = result.scalar_one_or_none()

        if item is None:
            raise NotFoundError(f"Queue item {queue_item_id} not found")
        if item.status == QueueStatus.RESOLVED:
            raise PreconditionError(f"Queue item {queue_item_id} already resolved")
        return item
