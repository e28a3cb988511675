"""
编辑请求模型

用户对内容提交的修改，需审核后生效
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backoffice.database.base import Base, JSONType, TimestampMixin
from backoffice.database.mixins import generate_uuid


class EditRequestStatus:
    """编辑请求状态"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class EditRequest(Base, TimestampMixin):
    """编辑请求"""

    __tablename__ = "edit_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    content_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    content_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    status: Mapped[str] = mapped_column(
        String(20), default=EditRequestStatus.PENDING, nullable=False, index=True
    )
    priority: Mapped[str] = mapped_column(String(20), default="normal", nullable=False)
    changes: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)

    def __repr__(self):
        return f"<EditRequest {self.id}: {self.content_type}:{self.content_id} {self.status}>"
