"""
数据库模块
"""

from backoffice.database.base import Base, SoftDeleteMixin, TimestampMixin
from backoffice.database.engine import async_session_maker, engine, get_db, get_session_factory

__all__ = [
    "Base",
    "TimestampMixin",
    "SoftDeleteMixin",
    "engine",
    "async_session_maker",
    "get_db",
    "get_session_factory",
]
