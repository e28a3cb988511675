"""
审计兜底队列定时回放

进程内单飞（max_instances=1, coalesce=True），跨进程并发由队列认领步骤保证
"""

from typing import Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from backoffice.core.audit import AuditQueueProcessor
from backoffice.core.config import get_settings

logger = structlog.get_logger(__name__)

AUDIT_QUEUE_JOB_ID = "audit_queue_drain"

_scheduler: Optional[AsyncIOScheduler] = None


async def drain_audit_queue_job() -> None:
    """定时任务：回放一次审计兜底队列"""
    processor = AuditQueueProcessor()
    processed = await processor.process_audit_queue()
    report = processor.last_report
    logger.info(
        "audit_queue_job_finished",
        processed=processed,
        failed=report.failed if report else 0,
        dead_lettered=report.dead_lettered if report else 0,
    )


def get_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = AsyncIOScheduler(timezone="UTC")
    return _scheduler


def start_scheduler() -> None:
    settings = get_settings()
    if not settings.AUDIT_QUEUE_WORKER_ENABLED:
        logger.info("audit_queue_worker_disabled")
        return

    scheduler = get_scheduler()
    if scheduler.get_job(AUDIT_QUEUE_JOB_ID) is None:
        scheduler.add_job(
            drain_audit_queue_job,
            IntervalTrigger(seconds=settings.AUDIT_QUEUE_INTERVAL_SECONDS),
            id=AUDIT_QUEUE_JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=settings.AUDIT_QUEUE_INTERVAL_SECONDS,
        )

    if not scheduler.running:
        scheduler.start()
        logger.info(
            "audit_queue_worker_started",
            interval_seconds=settings.AUDIT_QUEUE_INTERVAL_SECONDS,
        )


def shutdown_scheduler() -> None:
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("audit_queue_worker_stopped")
