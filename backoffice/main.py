"""
内容审核后台 主入口

职责:
- 批量审核操作（驳回编辑请求 / 批量封禁账号）
- 内容软删除与恢复
- 审计日志写入与兜底队列回放
- 待审核队列统计
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backoffice import __version__
from backoffice.api import router as api_router
from backoffice.core.config import settings
from backoffice.core.errors import register_exception_handlers
from backoffice.core.logging import setup_logging
from backoffice.database.engine import close_db
from backoffice.workers.scheduler import shutdown_scheduler, start_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期管理"""
    setup_logging()
    start_scheduler()
    yield
    shutdown_scheduler()
    await close_db()


def create_app() -> FastAPI:
    """创建 FastAPI 应用实例"""
    app = FastAPI(
        title="内容审核后台",
        description="审核操作、软删除与审计日志",
        version=__version__,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    app.include_router(api_router, prefix="/api")

    @app.get("/health")
    async def health_check() -> dict:
        """健康检查端点"""
        return {"status": "healthy", "service": "backoffice", "version": __version__}

    return app


app = create_app()
