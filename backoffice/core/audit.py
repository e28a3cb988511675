"""
操作审计服务

提供：
- AuditWriter: 写入一条审计日志，直写失败时落入兜底队列
- AuditQueueProcessor: 定时回放兜底队列，有限次重试，超限转入死信
- 审计日志查询辅助函数

投递语义为至少一次：直写或经队列回放，最多 max_attempts 次回放失败后放弃
（转入 audit_dead_letters 并从队列删除）
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.core.config import resolve_limit, settings
from backoffice.core.errors import SinkUnavailableError
from backoffice.database.engine import async_session_maker
from backoffice.database.mixins import generate_uuid, utcnow
from backoffice.database.models.audit_log import AuditDeadLetter, AuditLog, AuditQueueEntry

logger = structlog.get_logger(__name__)

# 审计存储写入可能抛出的底层错误（驱动连接错误会以 OSError 形式出现）
SINK_ERRORS = (SQLAlchemyError, OSError)


class AuditAction:
    """审计操作类型常量"""
    DELETE = "delete"
    RESTORE = "restore"


class TargetType:
    """目标类型常量"""
    BULK_OPERATION = "bulk_operation"
    EDIT_REQUEST = "edit_request"
    USER = "user"


@dataclass
class AuditWriteResult:
    """审计写入结果"""
    success: bool
    log_id: Optional[str] = None
    queued: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.success, "queued": self.queued}
        if self.log_id is not None:
            body["logId"] = self.log_id
        if self.error is not None:
            body["error"] = self.error
        return body


@dataclass
class AuditLogFilters:
    """审计日志查询条件"""
    actor_id: Optional[str] = None
    action: Optional[str] = None
    target_type: Optional[str] = None
    target_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class AuditWriter:
    """
    审计日志写入器

    每次调用在独立会话中写入，不参与调用方事务；
    调用方的业务操作不会因为审计存储短暂不可用而失败
    """

    def __init__(self, session_factory: Optional[async_sessionmaker[AsyncSession]] = None):
        self.session_factory = session_factory or async_session_maker

    async def write_audit(
        self,
        actor_id: str,
        action: str,
        target_type: str,
        target_id: str,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditWriteResult:
        """
        写入审计日志

        Args:
            actor_id: 操作者 ID
            action: 操作类型（如 delete, bulk_revert）
            target_type: 目标类型（如 blog_post, user, bulk_operation）
            target_id: 目标 ID
            reason: 操作原因
            metadata: 操作详情（JSON）

        Returns:
            直写成功: success=True, queued=False, log_id 为审计日志 ID
            落入队列: success=True, queued=True, log_id 为队列条目 ID
            均失败: success=False, error 说明原因
        """
        log = logger.bind(
            actor_id=actor_id,
            action=action,
            target_type=target_type,
            target_id=target_id,
        )
        payload = {
            "actor_id": actor_id,
            "action": action,
            "target_type": target_type,
            "target_id": target_id,
            "reason": reason or None,
            "metadata_": metadata or None,
        }

        try:
            log_id = await self._store(self._insert_audit_log, payload)
        except SinkUnavailableError as exc:
            log.warning("audit_log_direct_write_failed", error=exc.message)
        else:
            log.info("audit_log_created", audit_id=log_id)
            return AuditWriteResult(success=True, log_id=log_id, queued=False)

        try:
            queue_id = await self._store(self._insert_queue_entry, payload)
        except SinkUnavailableError as exc:
            log.error("audit_log_queue_failed", error=exc.message)
            return AuditWriteResult(
                success=False,
                error=f"Both audit log and queue failed: {exc.message}",
            )

        log.warning("audit_log_queued", queue_entry_id=queue_id)
        return AuditWriteResult(success=True, log_id=queue_id, queued=True)

    async def _store(
        self,
        insert: Callable[[Dict[str, Any]], Awaitable[str]],
        payload: Dict[str, Any],
    ) -> str:
        try:
            return await insert(payload)
        except SINK_ERRORS as exc:
            raise SinkUnavailableError(str(exc) or exc.__class__.__name__) from exc

    async def _insert_audit_log(self, payload: Dict[str, Any]) -> str:
        async with self.session_factory() as session:
            async with session.begin():
                entry = AuditLog(id=generate_uuid(), created_at=utcnow(), **payload)
                session.add(entry)
            return entry.id

    async def _insert_queue_entry(self, payload: Dict[str, Any]) -> str:
        async with self.session_factory() as session:
            async with session.begin():
                entry = AuditQueueEntry(
                    id=generate_uuid(),
                    created_at=utcnow(),
                    attempts=0,
                    last_attempt=None,
                    **payload,
                )
                session.add(entry)
            return entry.id


class _ClaimLost(Exception):
    """条目认领已失效（被其他回放任务重新认领）"""


@dataclass
class DrainReport:
    """单次回放统计"""
    claimed: int = 0
    processed: int = 0
    failed: int = 0
    dead_lettered: int = 0
    failed_ids: List[str] = field(default_factory=list)


class AuditQueueProcessor:
    """
    审计队列回放

    1. 认领：按创建时间升序选取未认领（或认领已超时）的条目，写入本次 claim_token
    2. 逐条回放：同一事务内写入 audit_logs 并删除队列条目（保留原始 created_at）
    3. 失败：attempts + 1，记录 last_attempt，释放认领
    4. 收尾：attempts >= max_attempts 的条目转入死信并从队列删除

    认领步骤保证多个回放任务并发运行时不会重复写入同一条目
    """

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        max_attempts: Optional[int] = None,
        claim_timeout_seconds: Optional[int] = None,
        batch_limit: Optional[int] = None,
    ):
        self.session_factory = session_factory or async_session_maker
        self.max_attempts = resolve_limit(
            "max_attempts", max_attempts, settings.AUDIT_QUEUE_MAX_ATTEMPTS
        )
        self.claim_timeout = timedelta(
            seconds=resolve_limit(
                "claim_timeout_seconds",
                claim_timeout_seconds,
                settings.AUDIT_QUEUE_CLAIM_TIMEOUT_SECONDS,
            )
        )
        self.batch_limit = resolve_limit("batch_limit", batch_limit, settings.AUDIT_QUEUE_BATCH_LIMIT)
        self.last_report: Optional[DrainReport] = None

    async def process_audit_queue(self) -> int:
        """
        回放兜底队列

        Returns:
            本次成功迁移到 audit_logs 的条目数
        """
        token = generate_uuid()
        report = DrainReport()
        self.last_report = report
        log = logger.bind(claim_token=token)
        log.info("audit_queue_drain_start", max_attempts=self.max_attempts)

        try:
            entries = await self._claim_entries(token)
        except SINK_ERRORS as exc:
            log.error("audit_queue_claim_failed", error=str(exc))
            return 0

        report.claimed = len(entries)

        for entry in entries:
            try:
                await self._migrate_entry(entry, token)
            except _ClaimLost:
                log.warning("audit_queue_claim_lost", entry_id=entry.id)
                continue
            except SINK_ERRORS as exc:
                report.failed += 1
                report.failed_ids.append(entry.id)
                log.warning(
                    "audit_queue_entry_failed",
                    entry_id=entry.id,
                    attempts=entry.attempts + 1,
                    error=str(exc),
                )
                await self._record_failure(entry, token)
                continue

            report.processed += 1

        try:
            report.dead_lettered = await self._dead_letter_exhausted()
        except SINK_ERRORS as exc:
            log.error("audit_queue_dead_letter_failed", error=str(exc))

        log.info(
            "audit_queue_drain_complete",
            claimed=report.claimed,
            processed=report.processed,
            failed=report.failed,
            dead_lettered=report.dead_lettered,
        )
        return report.processed

    async def _claim_entries(self, token: str) -> List[AuditQueueEntry]:
        now = utcnow()
        expired_before = now - self.claim_timeout
        claimable = or_(
            AuditQueueEntry.claim_token.is_(None),
            AuditQueueEntry.claimed_at < expired_before,
        )

        async with self.session_factory() as session:
            async with session.begin():
                candidate_ids = (
                    await session.execute(
                        select(AuditQueueEntry.id)
                        .where(AuditQueueEntry.attempts < self.max_attempts, claimable)
                        .order_by(AuditQueueEntry.created_at.asc(), AuditQueueEntry.id.asc())
                        .limit(self.batch_limit)
                        .with_for_update(skip_locked=True)
                    )
                ).scalars().all()

                if not candidate_ids:
                    return []

                # 条件更新：仅认领仍处于可认领状态的条目
                await session.execute(
                    update(AuditQueueEntry)
                    .where(AuditQueueEntry.id.in_(candidate_ids), claimable)
                    .values(claim_token=token, claimed_at=now)
                    .execution_options(synchronize_session=False)
                )

            result = await session.execute(
                select(AuditQueueEntry)
                .where(AuditQueueEntry.claim_token == token)
                .order_by(AuditQueueEntry.created_at.asc(), AuditQueueEntry.id.asc())
            )
            return list(result.scalars().all())

    async def _migrate_entry(self, entry: AuditQueueEntry, token: str) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                deleted = await session.execute(
                    delete(AuditQueueEntry).where(
                        AuditQueueEntry.id == entry.id,
                        AuditQueueEntry.claim_token == token,
                    )
                )
                if deleted.rowcount != 1:
                    raise _ClaimLost(entry.id)

                session.add(
                    AuditLog(
                        id=generate_uuid(),
                        actor_id=entry.actor_id,
                        action=entry.action,
                        target_type=entry.target_type,
                        target_id=entry.target_id,
                        reason=entry.reason,
                        metadata_=entry.metadata_,
                        created_at=entry.created_at,
                    )
                )

    async def _record_failure(self, entry: AuditQueueEntry, token: str) -> None:
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    await session.execute(
                        update(AuditQueueEntry)
                        .where(
                            AuditQueueEntry.id == entry.id,
                            AuditQueueEntry.claim_token == token,
                        )
                        .values(
                            attempts=AuditQueueEntry.attempts + 1,
                            last_attempt=utcnow(),
                            claim_token=None,
                            claimed_at=None,
                        )
                        .execution_options(synchronize_session=False)
                    )
        except SINK_ERRORS as exc:
            # 认领超时后条目会被重新认领
            logger.error("audit_queue_record_failure_failed", entry_id=entry.id, error=str(exc))

    async def _dead_letter_exhausted(self) -> int:
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(AuditQueueEntry)
                    .where(AuditQueueEntry.attempts >= self.max_attempts)
                    .with_for_update(skip_locked=True)
                )
                exhausted = list(result.scalars().all())
                now = utcnow()

                for entry in exhausted:
                    session.add(
                        AuditDeadLetter(
                            id=generate_uuid(),
                            queue_entry_id=entry.id,
                            actor_id=entry.actor_id,
                            action=entry.action,
                            target_type=entry.target_type,
                            target_id=entry.target_id,
                            reason=entry.reason,
                            metadata_=entry.metadata_,
                            attempts=entry.attempts,
                            last_attempt=entry.last_attempt,
                            queued_at=entry.created_at,
                            failed_at=now,
                        )
                    )
                    await session.delete(entry)

        if exhausted:
            logger.warning(
                "audit_queue_dead_lettered",
                count=len(exhausted),
                entry_ids=[entry.id for entry in exhausted],
            )
        return len(exhausted)


# ============================================================
# 查询辅助函数
# ============================================================

async def get_audit_logs_by_actor(
    db: AsyncSession,
    actor_id: str,
    limit: int = 100,
) -> Sequence[AuditLog]:
    """获取指定操作者的审计日志（按时间倒序）"""
    return await search_audit_logs(db, AuditLogFilters(actor_id=actor_id), limit)


async def get_audit_logs_by_target(
    db: AsyncSession,
    target_type: str,
    target_id: str,
    limit: int = 100,
) -> Sequence[AuditLog]:
    """获取指定目标的审计日志（按时间倒序）"""
    return await search_audit_logs(
        db, AuditLogFilters(target_type=target_type, target_id=target_id), limit
    )


async def get_audit_logs_by_action(
    db: AsyncSession,
    action: str,
    limit: int = 100,
) -> Sequence[AuditLog]:
    """获取指定操作类型的审计日志（按时间倒序）"""
    return await search_audit_logs(db, AuditLogFilters(action=action), limit)


async def search_audit_logs(
    db: AsyncSession,
    filters: AuditLogFilters,
    limit: int = 100,
) -> Sequence[AuditLog]:
    """多条件检索审计日志"""
    conditions = []
    if filters.actor_id:
        conditions.append(AuditLog.actor_id == filters.actor_id)
    if filters.action:
        conditions.append(AuditLog.action == filters.action)
    if filters.target_type:
        conditions.append(AuditLog.target_type == filters.target_type)
    if filters.target_id:
        conditions.append(AuditLog.target_id == filters.target_id)
    if filters.start_date:
        conditions.append(AuditLog.created_at >= filters.start_date)
    if filters.end_date:
        conditions.append(AuditLog.created_at <= filters.end_date)

    query = select(AuditLog).where(*conditions).order_by(AuditLog.created_at.desc()).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


async def get_audit_queue_entries(db: AsyncSession) -> Sequence[AuditQueueEntry]:
    """获取兜底队列中的全部条目（按入队时间升序）"""
    result = await db.execute(
        select(AuditQueueEntry).order_by(AuditQueueEntry.created_at.asc(), AuditQueueEntry.id.asc())
    )
    return result.scalars().all()
