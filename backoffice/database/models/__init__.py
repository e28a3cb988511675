"""
数据库模型

所有 SQLAlchemy 模型的统一导出
"""

from backoffice.database.models.audit_log import AuditDeadLetter, AuditLog, AuditQueueEntry
from backoffice.database.models.content import Article, BlogPost, Place, Product
from backoffice.database.models.edit_request import EditRequest, EditRequestStatus
from backoffice.database.models.moderation import (
    ModerationAction,
    ModerationActionLog,
    ModerationQueueItem,
    QueuePriority,
    QueueStatus,
    SoftDeleteAudit,
)
from backoffice.database.models.user import User, UserRole, UserSession

__all__ = [
    # Audit
    "AuditLog",
    "AuditQueueEntry",
    "AuditDeadLetter",
    # Moderation
    "ModerationAction",
    "ModerationActionLog",
    "ModerationQueueItem",
    "QueuePriority",
    "QueueStatus",
    "SoftDeleteAudit",
    "EditRequest",
    "EditRequestStatus",
    # Users
    "User",
    "UserRole",
    "UserSession",
    # Content
    "Article",
    "BlogPost",
    "Place",
    "Product",
]
