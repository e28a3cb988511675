"""
用户与会话模型
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backoffice.database.base import Base, SoftDeleteMixin, TimestampMixin
from backoffice.database.mixins import generate_uuid, utcnow


class UserRole:
    """用户角色常量"""
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class User(Base, TimestampMixin, SoftDeleteMixin):
    """
    用户实体

    session_invalidated_at / deletion_scheduled_at 由封禁操作写入
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    username: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(200), unique=True, nullable=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    role: Mapped[str] = mapped_column(String(50), default=UserRole.USER, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # 封禁
    session_invalidated_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    deletion_scheduled_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    deletion_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    sessions: Mapped[List["UserSession"]] = relationship(
        "UserSession",
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<User {self.username} ({self.role})>"


class UserSession(Base):
    """用户登录会话"""

    __tablename__ = "user_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    user: Mapped["User"] = relationship("User", back_populates="sessions")
