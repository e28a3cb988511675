"""
内容软删除 / 恢复服务

内容类型通过注册表分发（article / blog_post / place / product），
新增内容类型只需 register 一次，无需修改删除 / 恢复逻辑

软删除在单个事务中完成：
1. 实体 deleted_at = now
2. 新增一条 SoftDeleteAudit
3. 新增一条 ModerationActionLog(action=delete)
事务提交后再通过 AuditWriter 写入审计日志（审计失败不回滚软删除）

同一内容同一时刻最多只有一条未恢复的 SoftDeleteAudit
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Type

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.core.audit import AuditAction, AuditWriter
from backoffice.core.errors import ErrorCode, UnsupportedOperationError
from backoffice.database.base import Base
from backoffice.database.engine import async_session_maker
from backoffice.database.mixins import generate_uuid, utcnow
from backoffice.database.models.content import Article, BlogPost, Place, Product
from backoffice.database.models.moderation import (
    ModerationAction,
    ModerationActionLog,
    SoftDeleteAudit,
)

logger = structlog.get_logger(__name__)

PROTECTED_COLUMNS = {"id", "created_at", "updated_at", "deleted_at"}


class ContentTypeHandler:
    """单个内容类型的软删除操作"""

    def __init__(self, content_type: str, model: Type[Base]):
        self.content_type = content_type
        self.model = model

    async def load(self, session: AsyncSession, content_id: str, for_update: bool = False):
        query = select(self.model).where(self.model.id == content_id)
        if for_update:
            query = query.with_for_update()
        result = await session.execute(query)
        return result.scalar_one_or_none()

    async def exists(self, session: AsyncSession, content_id: str) -> bool:
        return await self.load(session, content_id) is not None

    async def is_deleted(self, session: AsyncSession, content_id: str) -> bool:
        entity = await self.load(session, content_id)
        return entity is not None and entity.deleted_at is not None

    async def apply_changes(
        self,
        session: AsyncSession,
        content_id: str,
        changes: Dict[str, Any],
    ) -> bool:
        """
        将编辑请求的修改写入实体

        只接受实体的普通列，主键、时间戳与删除标记不可修改；
        实体不存在或已软删除返回 False
        """
        entity = await self.load(session, content_id, for_update=True)
        if entity is None or entity.deleted_at is not None:
            return False

        editable = set(self.model.__table__.columns.keys()) - PROTECTED_COLUMNS
        for key, value in (changes or {}).items():
            if key in editable:
                setattr(entity, key, value)
        return True

    async def soft_delete(self, session: AsyncSession, content_id: str, now: datetime) -> bool:
        """设置 deleted_at，实体不存在返回 False"""
        result = await session.execute(
            update(self.model)
            .where(self.model.id == content_id)
            .values(deleted_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def restore(self, session: AsyncSession, content_id: str) -> bool:
        """清除 deleted_at，返回实体此前是否处于删除状态"""
        result = await session.execute(
            update(self.model)
            .where(self.model.id == content_id, self.model.deleted_at.is_not(None))
            .values(deleted_at=None)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class ContentTypeRegistry:
    """内容类型注册表（封闭集合）"""

    def __init__(self):
        self._handlers: Dict[str, ContentTypeHandler] = {}

    def register(self, content_type: str, model: Type[Base]) -> ContentTypeHandler:
        handler = ContentTypeHandler(content_type, model)
        self._handlers[content_type] = handler
        return handler

    def get(self, content_type: str) -> ContentTypeHandler:
        handler = self._handlers.get(content_type)
        if handler is None:
            raise UnsupportedOperationError(
                f"Unsupported content type: {content_type}",
                details={"supportedTypes": self.supported_types()},
            )
        return handler

    def supported_types(self) -> List[str]:
        return sorted(self._handlers)

    def __contains__(self, content_type: str) -> bool:
        return content_type in self._handlers


def build_default_registry() -> ContentTypeRegistry:
    registry = ContentTypeRegistry()
    registry.register("article", Article)
    registry.register("blog_post", BlogPost)
    registry.register("place", Place)
    registry.register("product", Product)
    return registry


default_registry = build_default_registry()


@dataclass
class SoftDeleteResult:
    """软删除 / 恢复结果"""
    success: bool
    audit_id: Optional[str] = None
    restored_count: int = 0
    error: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": self.success}
        if self.audit_id is not None:
            body["auditId"] = self.audit_id
        if self.error is not None:
            body["error"] = self.error
            body["code"] = self.code
        return body


class SoftDeleteManager:
    """内容软删除管理"""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
        audit_writer: Optional[AuditWriter] = None,
        registry: Optional[ContentTypeRegistry] = None,
    ):
        self.session_factory = session_factory or async_session_maker
        self.audit_writer = audit_writer or AuditWriter(self.session_factory)
        self.registry = registry or default_registry

    async def soft_delete_content(
        self,
        content_type: str,
        content_id: str,
        deleted_by: str,
        reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SoftDeleteResult:
        """
        软删除内容

        不支持的内容类型直接失败，不产生任何写入
        """
        log = logger.bind(content_type=content_type, content_id=content_id, deleted_by=deleted_by)

        try:
            handler = self.registry.get(content_type)
        except UnsupportedOperationError as exc:
            log.warning("soft_delete_unsupported_type")
            return SoftDeleteResult(success=False, error=exc.message, code=exc.code)

        now = utcnow()
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    entity = await handler.load(session, content_id, for_update=True)
                    if entity is None:
                        return SoftDeleteResult(
                            success=False,
                            error=f"{content_type} {content_id} not found",
                            code=ErrorCode.NOT_FOUND,
                        )

                    if entity.deleted_at is not None or await self._has_outstanding(
                        session, content_type, content_id
                    ):
                        return SoftDeleteResult(
                            success=False,
                            error=f"{content_type} {content_id} is already deleted",
                            code=ErrorCode.PRECONDITION_FAILED,
                        )

                    await handler.soft_delete(session, content_id, now)

                    audit = SoftDeleteAudit(
                        id=generate_uuid(),
                        content_type=content_type,
                        content_id=content_id,
                        deleted_by=deleted_by,
                        reason=reason,
                        metadata_=metadata,
                        deleted_at=now,
                    )
                    session.add(audit)
                    session.add(
                        ModerationActionLog(
                            id=generate_uuid(),
                            action=ModerationAction.DELETE,
                            content_type=content_type,
                            content_id=content_id,
                            performed_by=deleted_by,
                            reason=reason,
                            metadata_=metadata,
                            created_at=now,
                        )
                    )
        except SQLAlchemyError as exc:
            log.error("soft_delete_failed", error=str(exc))
            return SoftDeleteResult(success=False, error=str(exc), code=ErrorCode.INTERNAL_ERROR)

        log.info("content_soft_deleted", audit_id=audit.id)

        await self.audit_writer.write_audit(
            actor_id=deleted_by,
            action=AuditAction.DELETE,
            target_type=content_type,
            target_id=content_id,
            reason=reason,
            metadata={"softDeleteAuditId": audit.id},
        )

        return SoftDeleteResult(success=True, audit_id=audit.id)

    async def restore_content(
        self,
        content_type: str,
        content_id: str,
        restored_by: str,
    ) -> SoftDeleteResult:
        """
        恢复内容

        无未恢复的删除记录时为空操作，仍返回 success=True（幂等）
        """
        log = logger.bind(content_type=content_type, content_id=content_id, restored_by=restored_by)

        try:
            handler = self.registry.get(content_type)
        except UnsupportedOperationError as exc:
            log.warning("soft_delete_unsupported_type")
            return SoftDeleteResult(success=False, error=exc.message, code=exc.code)

        now = utcnow()
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    if not await handler.exists(session, content_id):
                        return SoftDeleteResult(
                            success=False,
                            error=f"{content_type} {content_id} not found",
                            code=ErrorCode.NOT_FOUND,
                        )

                    entity_restored = await handler.restore(session, content_id)

                    result = await session.execute(
                        update(SoftDeleteAudit)
                        .where(
                            SoftDeleteAudit.content_type == content_type,
                            SoftDeleteAudit.content_id == content_id,
                            SoftDeleteAudit.restored_at.is_(None),
                        )
                        .values(restored_at=now, restored_by=restored_by)
                        .execution_options(synchronize_session=False)
                    )
                    restored_count = result.rowcount

                    if not entity_restored and restored_count == 0:
                        log.info("content_restore_noop")
                        return SoftDeleteResult(success=True, restored_count=0)

                    session.add(
                        ModerationActionLog(
                            id=generate_uuid(),
                            action=ModerationAction.RESTORE,
                            content_type=content_type,
                            content_id=content_id,
                            performed_by=restored_by,
                            metadata_={"restoredAudits": restored_count},
                            created_at=now,
                        )
                    )
        except SQLAlchemyError as exc:
            log.error("restore_failed", error=str(exc))
            return SoftDeleteResult(success=False, error=str(exc), code=ErrorCode.INTERNAL_ERROR)

        log.info("content_restored", restored_audits=restored_count)

        await self.audit_writer.write_audit(
            actor_id=restored_by,
            action=AuditAction.RESTORE,
            target_type=content_type,
            target_id=content_id,
            metadata={"restoredAudits": restored_count},
        )

        return SoftDeleteResult(success=True, restored_count=restored_count)

    async def is_content_deleted(self, content_type: str, content_id: str) -> bool:
        """内容是否处于软删除状态（只读）"""
        handler = self.registry.get(content_type)
        async with self.session_factory() as session:
            return await handler.is_deleted(session, content_id)

    async def get_soft_delete_audit(
        self,
        content_type: str,
        content_id: str,
    ) -> Sequence[SoftDeleteAudit]:
        """获取内容的软删除记录（按删除时间倒序，只读）"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(SoftDeleteAudit)
                .where(
                    SoftDeleteAudit.content_type == content_type,
                    SoftDeleteAudit.content_id == content_id,
                )
                .order_by(SoftDeleteAudit.deleted_at.desc())
            )
            return result.scalars().all()

    async def _has_outstanding(
        self,
        session: AsyncSession,
        content_type: str,
        content_id: str,
    ) -> bool:
        result = await session.execute(
            select(func.count(SoftDeleteAudit.id)).where(
                SoftDeleteAudit.content_type == content_type,
                SoftDeleteAudit.content_id == content_id,
                SoftDeleteAudit.restored_at.is_(None),
            )
        )
        return result.scalar_one() > 0
