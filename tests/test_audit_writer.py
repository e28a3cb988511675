"""
审计日志写入测试
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from backoffice.core.audit import (
    AuditLogFilters,
    get_audit_logs_by_action,
    get_audit_logs_by_actor,
    get_audit_logs_by_target,
    search_audit_logs,
)
from backoffice.database.models import AuditLog, AuditQueueEntry


def _sink_down(*args, **kwargs):
    raise OperationalError("INSERT", {}, Exception("connection refused"))


async def _failing_insert(payload):
    _sink_down()


@pytest.mark.asyncio
async def test_write_audit_direct(audit_writer, db_session):
    """测试直写审计日志"""
    result = await audit_writer.write_audit(
        actor_id="mod-1",
        action="delete",
        target_type="blog_post",
        target_id="post-1",
        reason="spam",
        metadata={"softDeleteAuditId": "sda-1"},
    )

    assert result.success is True
    assert result.queued is False
    assert result.log_id

    log = await db_session.get(AuditLog, result.log_id)
    assert log is not None
    assert log.actor_id == "mod-1"
    assert log.reason == "spam"
    assert log.metadata_ == {"softDeleteAuditId": "sda-1"}

    queued = (await db_session.execute(select(AuditQueueEntry))).scalars().all()
    assert queued == []


@pytest.mark.asyncio
async def test_write_audit_empty_reason_stored_as_null(audit_writer, db_session):
    result = await audit_writer.write_audit("mod-1", "restore", "article", "a-1", reason="")

    log = await db_session.get(AuditLog, result.log_id)
    assert log.reason is None
    assert log.metadata_ is None


@pytest.mark.asyncio
async def test_write_audit_falls_back_to_queue(audit_writer, db_session):
    """测试直写失败时落入兜底队列"""
    audit_writer._insert_audit_log = _failing_insert

    result = await audit_writer.write_audit(
        actor_id="mod-1",
        action="bulk_revert",
        target_type="bulk_operation",
        target_id="bulk_1",
        reason="cleanup",
        metadata={"totalItems": 2},
    )

    assert result.success is True
    assert result.queued is True

    entry = await db_session.get(AuditQueueEntry, result.log_id)
    assert entry is not None
    assert entry.attempts == 0
    assert entry.last_attempt is None
    assert entry.action == "bulk_revert"
    assert entry.metadata_ == {"totalItems": 2}

    logs = (await db_session.execute(select(AuditLog))).scalars().all()
    assert logs == []


@pytest.mark.asyncio
async def test_write_audit_both_sinks_fail(audit_writer):
    """测试审计日志与队列均失败时返回失败结果而不是抛出异常"""
    audit_writer._insert_audit_log = _failing_insert
    audit_writer._insert_queue_entry = _failing_insert

    result = await audit_writer.write_audit("mod-1", "delete", "place", "p-1")

    assert result.success is False
    assert result.queued is False
    assert result.error.startswith("Both audit log and queue failed")
    assert result.to_dict() == {"success": False, "queued": False, "error": result.error}


@pytest.mark.asyncio
async def test_audit_log_queries(audit_writer, db_session):
    """测试审计日志查询辅助函数"""
    await audit_writer.write_audit("mod-1", "delete", "blog_post", "post-1")
    await audit_writer.write_audit("mod-1", "restore", "blog_post", "post-1")
    await audit_writer.write_audit("mod-2", "delete", "article", "a-1")

    by_actor = await get_audit_logs_by_actor(db_session, "mod-1")
    assert len(by_actor) == 2
    assert all(log.actor_id == "mod-1" for log in by_actor)

    by_target = await get_audit_logs_by_target(db_session, "blog_post", "post-1")
    assert {log.action for log in by_target} == {"delete", "restore"}

    by_action = await get_audit_logs_by_action(db_session, "delete", limit=1)
    assert len(by_action) == 1

    combined = await search_audit_logs(
        db_session, AuditLogFilters(actor_id="mod-2", action="delete")
    )
    assert [log.target_id for log in combined] == ["a-1"]
