"""
审核相关模型

- ModerationActionLog: 每次审核决策一条（批量操作中每个条目各一条）
- SoftDeleteAudit: 软删除 / 恢复记录，restored_at 为空表示尚未恢复
- ModerationQueueItem: 待审核队列
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.database.base import Base, JSONType, TimestampMixin
from backoffice.database.mixins import generate_uuid, utcnow


class ModerationAction:
    """审核操作类型常量"""
    APPROVE = "approve"
    REJECT = "reject"
    DELETE = "delete"
    RESTORE = "restore"
    BULK_REVERT = "bulk_revert"
    BULK_RANGE_BLOCK = "bulk_range_block"

    ALL = (APPROVE, REJECT, DELETE, RESTORE, BULK_REVERT, BULK_RANGE_BLOCK)


class ModerationActionLog(Base):
    """审核操作日志（只追加）"""

    __tablename__ = "moderation_action_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content_id: Mapped[str] = mapped_column(String(255), nullable=False)
    performed_by: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("ix_moderation_action_logs_content", "content_type", "content_id"),
    )

    def __repr__(self):
        return f"<ModerationActionLog {self.action} {self.content_type}:{self.content_id}>"


class SoftDeleteAudit(Base):
    """软删除审计"""

    __tablename__ = "soft_delete_audits"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content_id: Mapped[str] = mapped_column(String(255), nullable=False)
    deleted_by: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSONType, nullable=True)
    deleted_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, nullable=False)
    restored_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    restored_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        Index("ix_soft_delete_audits_content", "content_type", "content_id"),
    )

    @property
    def is_outstanding(self) -> bool:
        return self.restored_at is None


class QueuePriority:
    """待审核优先级"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    ALL = (LOW, NORMAL, HIGH, URGENT)


class QueueStatus:
    """待审核状态"""
    PENDING = "pending"
    IN_REVIEW = "in_review"
    RESOLVED = "resolved"


class ModerationQueueItem(Base, TimestampMixin):
    """待审核队列条目"""

    __tablename__ = "moderation_queue"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    content_id: Mapped[str] = mapped_column(String(255), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), default=QueuePriority.NORMAL, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default=QueueStatus.PENDING, nullable=False, index=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reported_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    assigned_to: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    justification: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

    def __repr__(self):
        return f"<ModerationQueueItem {self.content_type}:{self.content_id} {self.status}>"
