"""
数据库引擎与会话管理

使用 SQLAlchemy 2.0 异步引擎 + asyncpg（测试使用 aiosqlite）

连接池配置说明：
- pool_size: 连接池中保持的连接数（默认 5）
- max_overflow: 超出 pool_size 后允许的额外连接数（默认 10）
- pool_timeout: 获取连接的超时时间（秒）
- pool_recycle: 连接回收时间（秒），防止数据库断开空闲连接
- pool_pre_ping: 每次获取连接前检测连接是否有效

批量操作与审计写入需要独立事务，因此除 get_db 外还暴露会话工厂依赖
"""

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from backoffice.core.config import settings


def _get_pool_config() -> dict:
    """
    获取连接池配置

    - test / sqlite: 使用 NullPool（无连接池），每次请求创建新连接
    - 其他环境: 使用配置的连接池参数
    """
    if settings.ENV == "test" or settings.DATABASE_URL.startswith("sqlite"):
        return {"poolclass": NullPool}

    return {
        "poolclass": AsyncAdaptedQueuePool,
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
    }


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """基于引擎创建异步会话工厂"""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


# 创建异步引擎（带连接池）
engine: AsyncEngine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG and settings.ENV != "test",
    pool_pre_ping=True,
    **_get_pool_config(),
)

# 创建异步会话工厂
async_session_maker = build_session_maker(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    获取数据库会话依赖

    用于 FastAPI 路由的依赖注入
    """
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    获取会话工厂依赖

    批量操作每个条目、审计写入均在独立事务中执行
    """
    return async_session_maker


async def close_db() -> None:
    """
    关闭数据库连接

    在应用关闭时调用
    """
    await engine.dispose()
