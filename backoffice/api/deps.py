"""
API 依赖注入

提供审计写入器、批量执行器、软删除管理器、审核决策服务等实例
测试中通过覆盖 get_session_factory 切换数据库
"""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.core.audit import AuditQueueProcessor, AuditWriter
from backoffice.database.engine import get_db, get_session_factory
from backoffice.services.bulk_operations import BulkOperationExecutor
from backoffice.services.moderation_actions import ModerationActionService
from backoffice.services.soft_delete import SoftDeleteManager

SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


def get_audit_writer(session_factory: SessionFactory) -> AuditWriter:
    return AuditWriter(session_factory)


def get_bulk_executor(
    session_factory: SessionFactory,
    audit_writer: Annotated[AuditWriter, Depends(get_audit_writer)],
) -> BulkOperationExecutor:
    return BulkOperationExecutor(session_factory=session_factory, audit_writer=audit_writer)


def get_soft_delete_manager(
    session_factory: SessionFactory,
    audit_writer: Annotated[AuditWriter, Depends(get_audit_writer)],
) -> SoftDeleteManager:
    return SoftDeleteManager(session_factory=session_factory, audit_writer=audit_writer)


def get_moderation_action_service(
    session_factory: SessionFactory,
    audit_writer: Annotated[AuditWriter, Depends(get_audit_writer)],
) -> ModerationActionService:
    return ModerationActionService(session_factory=session_factory, audit_writer=audit_writer)


def get_audit_queue_processor(session_factory: SessionFactory) -> AuditQueueProcessor:
    return AuditQueueProcessor(session_factory=session_factory)


# 类型别名
DB = Annotated[AsyncSession, Depends(get_db)]
BulkExecutor = Annotated[BulkOperationExecutor, Depends(get_bulk_executor)]
SoftDeletes = Annotated[SoftDeleteManager, Depends(get_soft_delete_manager)]
QueueProcessor = Annotated[AuditQueueProcessor, Depends(get_audit_queue_processor)]
ModerationActions = Annotated[ModerationActionService, Depends(get_moderation_action_service)]
