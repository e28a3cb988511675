#!/usr/bin/env python3
"""
审计兜底队列回放脚本

用于 cron/k8s CronJob 定时调用，或以 --loop 常驻运行。

功能：
1. 认领队列中未被其他任务认领的条目
2. 逐条迁移到 audit_logs（保留原始 created_at）
3. 失败条目 attempts + 1，超过上限转入 audit_dead_letters

使用方式：
    # 执行一次
    python scripts/process_audit_queue.py

    # 指定最大重试次数
    python scripts/process_audit_queue.py --max-attempts 3

    # 常驻运行，每 60 秒回放一次
    python scripts/process_audit_queue.py --loop --interval 60

    # crontab 示例（每 5 分钟）
    */5 * * * * cd /app && python scripts/process_audit_queue.py >> /var/log/audit_queue.log 2>&1

环境变量：
    DATABASE_URL: 数据库连接（默认见 backoffice.core.config）
    AUDIT_QUEUE_MAX_ATTEMPTS: 默认最大重试次数
"""

import argparse
import asyncio
import sys

import structlog

from backoffice.core.audit import AuditQueueProcessor
from backoffice.core.config import settings
from backoffice.core.logging import setup_logging
from backoffice.database.engine import close_db

logger = structlog.get_logger("scripts.process_audit_queue")


async def drain_once(processor: AuditQueueProcessor) -> int:
    processed = await processor.process_audit_queue()
    report = processor.last_report
    logger.info(
        "audit_queue_cron_complete",
        processed=processed,
        failed=report.failed if report else 0,
        dead_lettered=report.dead_lettered if report else 0,
    )
    return processed


async def main() -> int:
    parser = argparse.ArgumentParser(description="审计兜底队列回放脚本")
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=settings.AUDIT_QUEUE_MAX_ATTEMPTS,
        help=f"最大重试次数（默认: {settings.AUDIT_QUEUE_MAX_ATTEMPTS}）",
    )
    parser.add_argument(
        "--loop",
        action="store_true",
        help="常驻运行，按 --interval 间隔循环回放",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=settings.AUDIT_QUEUE_INTERVAL_SECONDS,
        help=f"循环间隔秒数（默认: {settings.AUDIT_QUEUE_INTERVAL_SECONDS}）",
    )

    args = parser.parse_args()
    if args.max_attempts < 1:
        parser.error("--max-attempts must be >= 1")

    setup_logging()
    processor = AuditQueueProcessor(max_attempts=args.max_attempts)
    logger.info(
        "audit_queue_cron_start",
        max_attempts=args.max_attempts,
        loop=args.loop,
        interval=args.interval,
    )

    try:
        await drain_once(processor)
        while args.loop:
            await asyncio.sleep(args.interval)
            await drain_once(processor)
        return 0
    except asyncio.CancelledError:
        logger.info("audit_queue_cron_cancelled")
        return 0
    except Exception as e:
        logger.exception("audit_queue_cron_error", error=str(e))
        return 1
    finally:
        await close_db()


if __name__ == "__main__":
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        exit_code = 0
    sys.exit(exit_code)
