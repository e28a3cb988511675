"""
待审核队列统计

只读聚合（group by 计数），不加锁，结果为某一时刻的快照
"""

from dataclasses import dataclass, field
from typing import Any, Dict

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.database.models.moderation import ModerationQueueItem, QueuePriority, QueueStatus

logger = structlog.get_logger(__name__)


@dataclass
class ModerationStats:
    total_pending: int = 0
    total_in_review: int = 0
    total_resolved: int = 0
    pending_by_priority: Dict[str, int] = field(default_factory=dict)
    queue_by_content_type: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalPending": self.total_pending,
            "totalInReview": self.total_in_review,
            "totalResolved": self.total_resolved,
            "pendingByPriority": self.pending_by_priority,
            "queueByContentType": self.queue_by_content_type,
        }


async def get_moderation_stats(db: AsyncSession) -> ModerationStats:
    """
    待审核队列统计

    pending_by_priority 与 queue_by_content_type 均基于同一 pending 集合分组，
    两者各自求和均等于 total_pending
    """
    status_result = await db.execute(
        select(ModerationQueueItem.status, func.count(ModerationQueueItem.id))
        .group_by(ModerationQueueItem.status)
    )
    by_status = {row[0]: row[1] for row in status_result.all()}

    priority_result = await db.execute(
        select(ModerationQueueItem.priority, func.count(ModerationQueueItem.id))
        .where(ModerationQueueItem.status == QueueStatus.PENDING)
        .group_by(ModerationQueueItem.priority)
    )
    pending_by_priority = {priority: 0 for priority in QueuePriority.ALL}
    for priority, count in priority_result.all():
        pending_by_priority[priority] = count

    type_result = await db.execute(
        select(ModerationQueueItem.content_type, func.count(ModerationQueueItem.id))
        .where(ModerationQueueItem.status == QueueStatus.PENDING)
        .group_by(ModerationQueueItem.content_type)
    )
    queue_by_content_type = {row[0]: row[1] for row in type_result.all()}

    stats = ModerationStats(
        total_pending=by_status.get(QueueStatus.PENDING, 0),
        total_in_review=by_status.get(QueueStatus.IN_REVIEW, 0),
        total_resolved=by_status.get(QueueStatus.RESOLVED, 0),
        pending_by_priority=pending_by_priority,
        queue_by_content_type=queue_by_content_type,
    )

    logger.debug("moderation_stats_computed", total_pending=stats.total_pending)
    return stats
