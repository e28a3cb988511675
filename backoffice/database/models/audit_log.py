"""
审计日志模型

- AuditLog: 高权限操作审计日志，只追加，写入后不可变
- AuditQueueEntry: 审计日志直写失败时的兜底队列，由定时任务回放
- AuditDeadLetter: 超过最大重试次数的队列条目（终态，仅供追溯）
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.database.base import Base, JSONType
from backoffice.database.mixins import generate_uuid, utcnow


class AuditLog(Base):
    """审计日志"""

    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True, comment="操作者 ID")
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True, comment="操作类型")
    target_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True, comment="目标类型")
    target_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True, comment="目标 ID")
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # metadata 为 DeclarativeBase 保留属性名
    metadata_: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog {self.id}: {self.actor_id} {self.action} {self.target_type}>"


class AuditQueueEntry(Base):
    """
    审计兜底队列

    claim_token / claimed_at 用于回放任务认领，避免并发回放重复写入
    """

    __tablename__ = "audit_queue"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    target_type: Mapped[str] = mapped_column(String(100), nullable=False)
    target_id: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSONType, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, nullable=False, index=True)

    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False, index=True)
    last_attempt: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

    claim_token: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)

    def __repr__(self):
        return f"<AuditQueueEntry {self.id}: {self.action} attempts={self.attempts}>"


class AuditDeadLetter(Base):
    """超过最大重试次数、已放弃回放的审计条目"""

    __tablename__ = "audit_dead_letters"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    queue_entry_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    target_type: Mapped[str] = mapped_column(String(100), nullable=False)
    target_id: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    metadata_: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSONType, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False)
    last_attempt: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    queued_at: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    failed_at: Mapped[datetime] = mapped_column(DateTime(), default=utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditDeadLetter {self.queue_entry_id}: {self.action}>"
