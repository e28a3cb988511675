"""
批量审核操作

支持的操作（封闭集合）：
- revert: 批量驳回待审核的编辑请求
- range-block: 批量封禁账号（失效会话 + 计划删除）

事务约定：
- 每个条目在各自独立的事务中完成「读取 → 校验 → 修改 → 写 ModerationActionLog」
- 不存在覆盖整批的事务：单个条目失败不会回滚或阻塞其他条目
- batch_size 仅用于限制单批资源占用，与原子性无关
请勿将逐条事务合并为整批事务，调用方依赖逐条的部分失败语义

条目级错误只记录在 BulkOperationItemResult.error 中，不会向上抛出；
全部条目处理完成后通过 AuditWriter 额外写入一条汇总审计日志
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Optional, Sequence

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.core.audit import AuditWriter, AuditWriteResult, TargetType
from backoffice.core.config import resolve_limit, settings
from backoffice.core.errors import (
    NotFoundError,
    PreconditionError,
    UnsupportedOperationError,
    ValidationError,
)
from backoffice.database.engine import async_session_maker
from backoffice.database.mixins import generate_uuid, utcnow
from backoffice.database.models.edit_request import EditRequest, EditRequestStatus
from backoffice.database.models.moderation import ModerationAction, ModerationActionLog
from backoffice.database.models.user import User, UserSession

logger = structlog.get_logger(__name__)


class BulkOperation:
    """批量操作类型"""
    REVERT = "revert"
    RANGE_BLOCK = "range-block"

    ALL = (REVERT, RANGE_BLOCK)


@dataclass
class BulkOperationItemResult:
    """单个条目结果"""
    id: str
    success: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"id": self.id, "success": self.success}
        if self.error is not None:
            body["error"] = self.error
        return body


@dataclass
class BulkOperationResult:
    """批量操作结果，success_count + failure_count == total_items"""
    operation: str
    total_items: int
    success_count: int = 0
    failure_count: int = 0
    results: List[BulkOperationItemResult] = field(default_factory=list)
    duration: int = 0  # 毫秒
    audit: Optional[AuditWriteResult] = None

    def record(self, item: BulkOperationItemResult) -> None:
        self.results.append(item)
        if item.success:
            self.success_count += 1
        else:
            self.failure_count += 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "totalItems": self.total_items,
            "successCount": self.success_count,
            "failureCount": self.failure_count,
            "results": [item.to_dict() for item in self.results],
            "duration": self.duration,
        }


ItemAction = Callable[[AsyncSession, str], Awaitable[None]]


class BulkOperationExecutor:
    """批量操作执行器"""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        audit_writer: Optional[AuditWriter] = None,
        batch_size: Optional[int] = None,
        max_items: Optional[int] = None,
        max_duration_days: Optional[int] = None,
    ):
        self.session_factory = session_factory or async_session_maker
        self.audit_writer = audit_writer or AuditWriter(self.session_factory)
        self.batch_size = resolve_limit("batch_size", batch_size, settings.BULK_BATCH_SIZE)
        self.max_items = resolve_limit("max_items", max_items, settings.BULK_MAX_ITEMS)
        self.max_duration_days = resolve_limit(
            "max_duration_days", max_duration_days, settings.BULK_MAX_DURATION_DAYS
        )

    async def execute(
        self,
        operation: str,
        target_ids: Sequence[str],
        reason: str,
        actor_id: str,
        duration: Optional[int] = None,
    ) -> BulkOperationResult:
        """
        执行批量操作

        Args:
            operation: revert / range-block
            target_ids: 编辑请求 ID 或用户 ID（1..max_items）
            reason: 操作原因（必填）
            actor_id: 操作者 ID
            duration: 封禁天数（仅 range-block，1..max_duration_days，不指定则立即生效）

        Raises:
            UnsupportedOperationError: 未知操作类型（未处理任何条目）
            ValidationError: 参数不合法（未处理任何条目）
        """
        started = time.monotonic()
        self._validate(operation, target_ids, reason, duration)

        log = logger.bind(operation=operation, actor_id=actor_id, total_items=len(target_ids))
        log.info("bulk_operation_start", batch_size=self.batch_size)

        audit_metadata: Dict[str, Any] = {}
        if operation == BulkOperation.REVERT:
            action = self._revert_action(actor_id, reason)
        else:
            deletion_scheduled_at = self._deletion_scheduled_at(duration)
            action = self._range_block_action(actor_id, reason, duration, deletion_scheduled_at)
            audit_metadata = {
                "durationDays": duration,
                "deletionScheduledAt": deletion_scheduled_at.isoformat(),
            }

        result = BulkOperationResult(operation=operation, total_items=len(target_ids))
        for batch in self._batches(target_ids):
            for target_id in batch:
                result.record(await self._run_item(operation, target_id, action))

        result.duration = int((time.monotonic() - started) * 1000)

        result.audit = await self.audit_writer.write_audit(
            actor_id=actor_id,
            action=f"bulk_{operation}",
            target_type=TargetType.BULK_OPERATION,
            target_id=f"bulk_{int(time.time() * 1000)}",
            reason=reason,
            metadata={
                "operation": operation,
                "totalItems": result.total_items,
                "successCount": result.success_count,
                "failureCount": result.failure_count,
                "duration": result.duration,
                **audit_metadata,
            },
        )

        log.info(
            "bulk_operation_complete",
            success_count=result.success_count,
            failure_count=result.failure_count,
            duration_ms=result.duration,
            audit_queued=result.audit.queued,
        )
        return result

    def _validate(
        self,
        operation: str,
        target_ids: Sequence[str],
        reason: str,
        duration: Optional[int],
    ) -> None:
        if operation not in BulkOperation.ALL:
            raise UnsupportedOperationError(
                f"Unknown operation type: {operation}",
                details={"supportedOperations": list(BulkOperation.ALL)},
            )
        if not target_ids:
            raise ValidationError("At least one target ID is required")
        if len(target_ids) > self.max_items:
            raise ValidationError(f"Maximum {self.max_items} items per bulk operation")
        if not reason or not reason.strip():
            raise ValidationError("Reason is required for bulk operations")
        if duration is not None:
            if operation != BulkOperation.RANGE_BLOCK:
                raise ValidationError("duration is only supported for range-block")
            if not 1 <= duration <= self.max_duration_days:
                raise ValidationError(f"duration must be between 1 and {self.max_duration_days} days")

    def _batches(self, target_ids: Sequence[str]) -> Iterator[Sequence[str]]:
        for start in range(0, len(target_ids), self.batch_size):
            yield target_ids[start:start + self.batch_size]

    @staticmethod
    def _deletion_scheduled_at(duration: Optional[int]) -> datetime:
        """整批共享：指定天数则 now + duration 天，否则立即生效"""
        now = utcnow()
        return now + timedelta(days=duration) if duration else now

    async def _run_item(
        self,
        operation: str,
        target_id: str,
        action: ItemAction,
    ) -> BulkOperationItemResult:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await action(session, target_id)
        except PreconditionError as exc:
            logger.info("bulk_item_failed", operation=operation, target_id=target_id, error=exc.message)
            return BulkOperationItemResult(id=target_id, success=False, error=exc.message)
        except Exception as exc:
            # 条目级错误不中断整批
            logger.warning(
                "bulk_item_failed",
                operation=operation,
                target_id=target_id,
                error=str(exc),
                exc_info=True,
            )
            return BulkOperationItemResult(
                id=target_id,
                success=False,
                error=str(exc) or exc.__class__.__name__,
            )

        return BulkOperationItemResult(id=target_id, success=True)

    def _revert_action(self, actor_id: str, reason: str) -> ItemAction:
        async def revert(session: AsyncSession, edit_request_id: str) -> None:
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

            now = utcnow()
            edit_request.status = EditRequestStatus.REJECTED
            edit_request.reviewed_by = actor_id
            edit_request.reviewed_at = now
            edit_request.reason = reason

            session.add(
                ModerationActionLog(
                    id=generate_uuid(),
                    action=ModerationAction.BULK_REVERT,
                    content_type=TargetType.EDIT_REQUEST,
                    content_id=edit_request_id,
                    performed_by=actor_id,
                    reason=reason,
                    metadata_={
                        "contentType": edit_request.content_type,
                        "contentId": edit_request.content_id,
                        "userId": edit_request.user_id,
                    },
                    created_at=now,
                )
            )

        return revert

    def _range_block_action(
        self,
        actor_id: str,
        reason: str,
        duration: Optional[int],
        deletion_scheduled_at: datetime,
    ) -> ItemAction:
        async def range_block(session: AsyncSession, user_id: str) -> None:
            result = await session.execute(
                select(User).where(User.id == user_id).with_for_update()
            )
            user = result.scalar_one_or_none()

            if user is None:
                raise NotFoundError(f"User {user_id} not found")

            now = utcnow()
            user.session_invalidated_at = now
            user.deletion_scheduled_at = deletion_scheduled_at
            user.deletion_reason = reason

            # 会话吊销与账号标记在同一事务内完成
            revoked = await session.execute(
                update(UserSession)
                .where(UserSession.user_id == user_id, UserSession.revoked.is_(False))
                .values(revoked=True)
                .execution_options(synchronize_session=False)
            )

            session.add(
                ModerationActionLog(
                    id=generate_uuid(),
                    action=ModerationAction.BULK_RANGE_BLOCK,
                    content_type=TargetType.USER,
                    content_id=user_id,
                    performed_by=actor_id,
                    reason=reason,
                    metadata_={
                        "duration": duration or "immediate",
                        "deletionScheduledAt": deletion_scheduled_at.isoformat(),
                        "sessionsRevoked": revoked.rowcount,
                    },
                    created_at=now,
                )
            )

        return range_block
