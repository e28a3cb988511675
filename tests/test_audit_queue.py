"""
审计兜底队列回放测试
"""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from backoffice.core.audit import AuditQueueProcessor
from backoffice.database.mixins import generate_uuid, utcnow
from backoffice.database.models import AuditDeadLetter, AuditLog, AuditQueueEntry


async def _enqueue(session_factory, count=1, **overrides):
    ids = []
    base_time = utcnow() - timedelta(minutes=10)
    async with session_factory() as session:
        async with session.begin():
            for index in range(count):
                entry = AuditQueueEntry(
                    id=generate_uuid(),
                    actor_id="mod-1",
                    action="delete",
                    target_type="blog_post",
                    target_id=f"post-{index}",
                    reason="spam",
                    metadata_={"index": index},
                    created_at=base_time + timedelta(seconds=index),
                    attempts=0,
                )
                for key, value in overrides.items():
                    setattr(entry, key, value)
                session.add(entry)
                ids.append(entry.id)
    return ids


async def _all(session_factory, model):
    async with session_factory() as session:
        return (await session.execute(select(model))).scalars().all()


async def _failing_migrate(entry, token):
    raise OperationalError("INSERT", {}, Exception("audit_logs unavailable"))


@pytest.mark.asyncio
async def test_drain_moves_entries_to_audit_logs(session_factory, queue_processor):
    """测试回放成功后条目迁移到 audit_logs 并保留原始时间"""
    ids = await _enqueue(session_factory, count=3)
    async with session_factory() as session:
        original = {e.id: e.created_at for e in (await session.execute(select(AuditQueueEntry))).scalars()}

    processed = await queue_processor.process_audit_queue()

    assert processed == 3
    assert await _all(session_factory, AuditQueueEntry) == []

    logs = await _all(session_factory, AuditLog)
    assert len(logs) == 3
    assert sorted(log.created_at for log in logs) == sorted(original[i] for i in ids)
    assert {log.target_id for log in logs} == {"post-0", "post-1", "post-2"}
    assert queue_processor.last_report.failed == 0


@pytest.mark.asyncio
async def test_drain_empty_queue(queue_processor):
    assert await queue_processor.process_audit_queue() == 0
    assert queue_processor.last_report.claimed == 0


@pytest.mark.asyncio
async def test_failed_entry_increments_attempts(session_factory, queue_processor):
    """测试回放失败时 attempts + 1 并释放认领"""
    [entry_id] = await _enqueue(session_factory)
    queue_processor._migrate_entry = _failing_migrate

    processed = await queue_processor.process_audit_queue()

    assert processed == 0
    assert queue_processor.last_report.failed == 1
    [entry] = await _all(session_factory, AuditQueueEntry)
    assert entry.id == entry_id
    assert entry.attempts == 1
    assert entry.last_attempt is not None
    assert entry.claim_token is None


@pytest.mark.asyncio
async def test_entry_dead_lettered_after_max_attempts(session_factory):
    """测试连续失败达到上限后转入死信，且不会进入 audit_logs"""
    [entry_id] = await _enqueue(session_factory)
    processor = AuditQueueProcessor(session_factory=session_factory, max_attempts=5)
    processor._migrate_entry = _failing_migrate

    for _ in range(4):
        await processor.process_audit_queue()
        [entry] = await _all(session_factory, AuditQueueEntry)
        assert entry.attempts < 5

    await processor.process_audit_queue()

    assert processor.last_report.dead_lettered == 1
    assert await _all(session_factory, AuditQueueEntry) == []
    assert await _all(session_factory, AuditLog) == []

    [dead] = await _all(session_factory, AuditDeadLetter)
    assert dead.queue_entry_id == entry_id
    assert dead.attempts == 5
    assert dead.metadata_ == {"index": 0}

    # 后续回放不再处理该条目
    assert await processor.process_audit_queue() == 0
    assert len(await _all(session_factory, AuditDeadLetter)) == 1


@pytest.mark.asyncio
async def test_partial_failure_keeps_other_entries_flowing(session_factory, queue_processor):
    ids = await _enqueue(session_factory, count=3)
    original_migrate = queue_processor._migrate_entry

    async def flaky_migrate(entry, token):
        if entry.id == ids[1]:
            await _failing_migrate(entry, token)
        await original_migrate(entry, token)

    queue_processor._migrate_entry = flaky_migrate

    processed = await queue_processor.process_audit_queue()

    assert processed == 2
    assert queue_processor.last_report.failed_ids == [ids[1]]
    [remaining] = await _all(session_factory, AuditQueueEntry)
    assert remaining.id == ids[1]
    assert remaining.attempts == 1


@pytest.mark.asyncio
async def test_claimed_entries_skipped_by_concurrent_drain(session_factory):
    """测试已被其他回放任务认领的条目不会被重复处理"""
    await _enqueue(session_factory, count=2, claim_token="other-worker", claimed_at=utcnow())
    processor = AuditQueueProcessor(session_factory=session_factory, claim_timeout_seconds=300)

    assert await processor.process_audit_queue() == 0
    assert len(await _all(session_factory, AuditQueueEntry)) == 2
    assert await _all(session_factory, AuditLog) == []


@pytest.mark.asyncio
async def test_expired_claim_is_reclaimed(session_factory):
    stale = utcnow() - timedelta(minutes=30)
    await _enqueue(session_factory, claim_token="crashed-worker", claimed_at=stale)
    processor = AuditQueueProcessor(session_factory=session_factory, claim_timeout_seconds=300)

    assert await processor.process_audit_queue() == 1
    assert len(await _all(session_factory, AuditLog)) == 1


@pytest.mark.asyncio
async def test_lost_claim_does_not_double_write(session_factory, queue_processor):
    """测试认领在回放前被抢走时不写入 audit_logs"""
    [entry_id] = await _enqueue(session_factory)
    original_migrate = queue_processor._migrate_entry

    async def stolen_migrate(entry, token):
        async with session_factory() as session:
            async with session.begin():
                row = await session.get(AuditQueueEntry, entry_id)
                row.claim_token = "other-worker"
        await original_migrate(entry, token)

    queue_processor._migrate_entry = stolen_migrate

    assert await queue_processor.process_audit_queue() == 0
    assert queue_processor.last_report.failed == 0
    assert await _all(session_factory, AuditLog) == []
    [entry] = await _all(session_factory, AuditQueueEntry)
    assert entry.attempts == 0


@pytest.mark.asyncio
async def test_writer_then_drain_round_trip(session_factory, audit_writer, queue_processor):
    async def failing_insert(payload):
        raise OperationalError("INSERT", {}, Exception("db down"))

    audit_writer._insert_audit_log = failing_insert
    result = await audit_writer.write_audit("mod-1", "delete", "product", "prod-1", reason="fake")
    assert result.queued is True

    assert await queue_processor.process_audit_queue() == 1
    [log] = await _all(session_factory, AuditLog)
    assert (log.actor_id, log.action, log.target_type, log.target_id, log.reason) == (
        "mod-1",
        "delete",
        "product",
        "prod-1",
        "fake",
    )


@pytest.mark.parametrize("option", ["max_attempts", "claim_timeout_seconds", "batch_limit"])
def test_explicit_zero_options_rejected(option):
    """显式传入 0 不会被替换为默认值"""
    with pytest.raises(ValueError, match=f"{option} must be >= 1"):
        AuditQueueProcessor(**{option: 0})


@pytest.mark.asyncio
async def test_explicit_max_attempts_honored(session_factory):
    [entry_id] = await _enqueue(session_factory)
    processor = AuditQueueProcessor(session_factory=session_factory, max_attempts=1)
    processor._migrate_entry = _failing_migrate

    assert processor.max_attempts == 1
    await processor.process_audit_queue()

    assert processor.last_report.dead_lettered == 1
    [dead] = await _all(session_factory, AuditDeadLetter)
    assert dead.queue_entry_id == entry_id
    assert dead.attempts == 1
