"""
测试配置和 fixtures

每个测试使用 tmp_path 下独立的 SQLite 文件库（aiosqlite），
通过覆盖 get_db / get_session_factory 让 API 与服务共享同一测试库
"""

import os

# 必须在导入 backoffice 之前设置，Settings 在导入时读取环境变量
os.environ["ENV"] = "test"
os.environ["DEBUG"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["AUDIT_QUEUE_WORKER_ENABLED"] = "false"
os.environ["JWT_SECRET_KEY"] = "test-secret-key"

from typing import AsyncGenerator, Callable, Dict, Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from backoffice.core.audit import AuditQueueProcessor, AuditWriter  # noqa: E402
from backoffice.core.security import create_access_token  # noqa: E402
from backoffice.database.base import Base  # noqa: E402
from backoffice.database.engine import build_session_maker, get_db, get_session_factory  # noqa: E402
from backoffice.database.mixins import generate_uuid, utcnow  # noqa: E402
from backoffice.database.models import User, UserRole  # noqa: E402
from backoffice.main import app  # noqa: E402
from backoffice.services.bulk_operations import BulkOperationExecutor  # noqa: E402
from backoffice.services.soft_delete import SoftDeleteManager  # noqa: E402


@pytest_asyncio.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """创建测试数据库引擎"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_maker(test_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """创建测试数据库会话（用于准备数据与断言）"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def audit_writer(session_factory) -> AuditWriter:
    return AuditWriter(session_factory)


@pytest.fixture
def queue_processor(session_factory) -> AuditQueueProcessor:
    return AuditQueueProcessor(session_factory=session_factory, max_attempts=5)


@pytest.fixture
def bulk_executor(session_factory, audit_writer) -> BulkOperationExecutor:
    return BulkOperationExecutor(session_factory=session_factory, audit_writer=audit_writer)


@pytest.fixture
def soft_delete_manager(session_factory, audit_writer) -> SoftDeleteManager:
    return SoftDeleteManager(session_factory=session_factory, audit_writer=audit_writer)


@pytest.fixture
def make_user(session_factory) -> Callable:
    """创建用户的工厂 fixture"""

    async def _make_user(
        role: str = UserRole.USER,
        username: Optional[str] = None,
        is_active: bool = True,
    ) -> User:
        user_id = generate_uuid()
        user = User(
            id=user_id,
            username=username or f"user-{user_id[:8]}",
            role=role,
            is_active=is_active,
            created_at=utcnow(),
            updated_at=utcnow(),
        )
        async with session_factory() as session:
            async with session.begin():
                session.add(user)
        return user

    return _make_user


@pytest_asyncio.fixture
async def moderator(make_user) -> User:
    return await make_user(UserRole.MODERATOR, username="moderator")


@pytest_asyncio.fixture
async def admin(make_user) -> User:
    return await make_user(UserRole.ADMIN, username="admin")


@pytest_asyncio.fixture
async def regular_user(make_user) -> User:
    return await make_user(UserRole.USER, username="regular")


@pytest.fixture
def auth_headers() -> Callable[[User], Dict[str, str]]:
    def _auth_headers(user: User) -> Dict[str, str]:
        token = create_access_token(subject=user.id, extra_claims={"role": user.role})
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """创建测试客户端"""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
