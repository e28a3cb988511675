"""
健康检查 API
"""

import time

import structlog
from fastapi import APIRouter
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from backoffice import __version__
from backoffice.api.deps import SessionFactory
from backoffice.database.models import AuditQueueEntry

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get("")
async def health_check(session_factory: SessionFactory):
    """
    健康检查

    返回服务、数据库状态以及审计兜底队列积压量
    """
    start = time.perf_counter()
    database = {"healthy": True, "error": None}
    queue_depth = None

    try:
        async with session_factory() as session:
            await session.execute(text("SELECT 1"))
            queue_depth = await session.scalar(
                select(func.count()).select_from(AuditQueueEntry)
            )
    except SQLAlchemyError as exc:
        logger.warning("health_check_db_failed", error=str(exc))
        database = {"healthy": False, "error": str(exc)}

    database["latency_ms"] = round((time.perf_counter() - start) * 1000, 2)

    return {
        "status": "healthy" if database["healthy"] else "unhealthy",
        "service": "backoffice",
        "version": __version__,
        "database": database,
        "auditQueueDepth": queue_depth,
    }


@router.get("/live")
async def liveness_check():
    """存活检查"""
    return {"alive": True}
