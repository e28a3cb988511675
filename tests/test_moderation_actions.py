"""
单条审核决策测试（编辑请求 approve / reject、队列决策与分配）
"""

import pytest
from sqlalchemy import select

from backoffice.core.errors import (
    NotFoundError,
    PreconditionError,
    UnsupportedOperationError,
    ValidationError,
)
from backoffice.database.mixins import generate_uuid, utcnow
from backoffice.database.models import (
    AuditLog,
    EditRequest,
    EditRequestStatus,
    ModerationAction,
    ModerationActionLog,
    ModerationQueueItem,
    Place,
    QueuePriority,
    QueueStatus,
)
from backoffice.services.moderation_actions import ModerationActionService


@pytest.fixture
def action_service(session_factory, audit_writer) -> ModerationActionService:
    return ModerationActionService(session_factory=session_factory, audit_writer=audit_writer)


async def _make_place(session_factory, deleted=False) -> str:
    place_id = generate_uuid()
    async with session_factory() as session:
        async with session.begin():
            session.add(
                Place(
                    id=place_id,
                    name="Old name",
                    address="1 Main St",
                    created_at=utcnow(),
                    updated_at=utcnow(),
                    deleted_at=utcnow() if deleted else None,
                )
            )
    return place_id


async def _make_edit_request(
    session_factory,
    content_id,
    content_type="place",
    status=EditRequestStatus.PENDING,
    changes=None,
) -> str:
    request_id = generate_uuid()
    async with session_factory() as session:
        async with session.begin():
            session.add(
                EditRequest(
                    id=request_id,
                    content_type=content_type,
                    content_id=content_id,
                    user_id="author-1",
                    status=status,
                    changes=changes if changes is not None else {"name": "New name"},
                    created_at=utcnow(),
                    updated_at=utcnow(),
                )
            )
    return request_id


async def _make_queue_item(session_factory, content_id, content_type="place", status=QueueStatus.PENDING) -> str:
    item_id = generate_uuid()
    async with session_factory() as session:
        async with session.begin():
            session.add(
                ModerationQueueItem(
                    id=item_id,
                    content_type=content_type,
                    content_id=content_id,
                    priority=QueuePriority.HIGH,
                    status=status,
                    reason="reported",
                    created_at=utcnow(),
                    updated_at=utcnow(),
                )
            )
    return item_id


async def _all(session_factory, model):
    async with session_factory() as session:
        return (await session.execute(select(model))).scalars().all()


# ============================================================
# 编辑请求
# ============================================================

@pytest.mark.asyncio
async def test_approve_edit_request_applies_changes(session_factory, action_service):
    """测试通过编辑请求：修改写入内容，并记录操作日志与审计日志"""
    place_id = await _make_place(session_factory)
    request_id = await _make_edit_request(
        session_factory, place_id, changes={"name": "New name", "id": "hijacked", "unknown": 1}
    )

    result = await action_service.approve_edit_request(request_id, reviewed_by="mod-1", note="looks good")

    assert result.action == ModerationAction.APPROVE
    assert result.target_id == request_id
    assert result.audit.success is True

    async with session_factory() as session:
        place = await session.get(Place, place_id)
        assert place.name == "New name"
        assert place.address == "1 Main St"

        request = await session.get(EditRequest, request_id)
        assert request.status == EditRequestStatus.APPROVED
        assert request.reviewed_by == "mod-1"
        assert request.reviewed_at is not None

    [log] = await _all(session_factory, ModerationActionLog)
    assert log.id == result.action_log_id
    assert log.action == ModerationAction.APPROVE
    assert log.content_type == "edit_request"
    assert log.content_id == request_id
    assert log.metadata_ == {"contentType": "place", "contentId": place_id, "userId": "author-1"}

    [audit] = await _all(session_factory, AuditLog)
    assert audit.action == "approve"
    assert audit.target_type == "edit_request"
    assert audit.target_id == request_id
    assert audit.actor_id == "mod-1"


@pytest.mark.asyncio
async def test_approve_fails_when_content_deleted(session_factory, action_service):
    """测试内容已删除时通过失败，且不产生任何写入"""
    place_id = await _make_place(session_factory, deleted=True)
    request_id = await _make_edit_request(session_factory, place_id)

    with pytest.raises(PreconditionError, match="Failed to apply edits to content"):
        await action_service.approve_edit_request(request_id, reviewed_by="mod-1")

    async with session_factory() as session:
        assert (await session.get(EditRequest, request_id)).status == EditRequestStatus.PENDING
    assert await _all(session_factory, ModerationActionLog) == []
    assert await _all(session_factory, AuditLog) == []


@pytest.mark.asyncio
async def test_approve_fails_for_unregistered_content_type(session_factory, action_service):
    request_id = await _make_edit_request(session_factory, "c-1", content_type="comment")

    with pytest.raises(PreconditionError, match="Failed to apply edits to content"):
        await action_service.approve_edit_request(request_id, reviewed_by="mod-1")


@pytest.mark.asyncio
async def test_approve_requires_pending(session_factory, action_service):
    place_id = await _make_place(session_factory)
    request_id = await _make_edit_request(session_factory, place_id, status=EditRequestStatus.REJECTED)

    with pytest.raises(PreconditionError, match="is not pending \\(status: rejected\\)"):
        await action_service.approve_edit_request(request_id, reviewed_by="mod-1")

    with pytest.raises(NotFoundError, match="Edit request missing not found"):
        await action_service.approve_edit_request("missing", reviewed_by="mod-1")


@pytest.mark.asyncio
async def test_reject_edit_request(session_factory, action_service):
    """测试驳回编辑请求：内容不变"""
    place_id = await _make_place(session_factory)
    request_id = await _make_edit_request(session_factory, place_id)

    result = await action_service.reject_edit_request(request_id, reviewed_by="mod-2", reason="off-topic")

    assert result.action == ModerationAction.REJECT

    async with session_factory() as session:
        assert (await session.get(Place, place_id)).name == "Old name"
        request = await session.get(EditRequest, request_id)
        assert request.status == EditRequestStatus.REJECTED
        assert request.reason == "off-topic"
        assert request.reviewed_by == "mod-2"

    [log] = await _all(session_factory, ModerationActionLog)
    assert log.action == ModerationAction.REJECT
    assert log.reason == "off-topic"

    [audit] = await _all(session_factory, AuditLog)
    assert audit.action == "reject"
    assert audit.reason == "off-topic"

    # 已处理的请求不能再次决策
    with pytest.raises(PreconditionError):
        await action_service.reject_edit_request(request_id, reviewed_by="mod-2", reason="again")


@pytest.mark.asyncio
async def test_reject_requires_reason(session_factory, action_service):
    place_id = await _make_place(session_factory)
    request_id = await _make_edit_request(session_factory, place_id)

    with pytest.raises(ValidationError):
        await action_service.reject_edit_request(request_id, reviewed_by="mod-1", reason="  ")

    async with session_factory() as session:
        assert (await session.get(EditRequest, request_id)).status == EditRequestStatus.PENDING


@pytest.mark.asyncio
async def test_decision_audit_queued_when_sink_down(session_factory, audit_writer):
    """测试审计写入失败时决策仍然生效，审计进入队列"""
    from sqlalchemy.exc import OperationalError

    from backoffice.database.models import AuditQueueEntry

    async def failing_insert(payload):
        raise OperationalError("INSERT", {}, Exception("db down"))

    audit_writer._insert_audit_log = failing_insert
    service = ModerationActionService(session_factory=session_factory, audit_writer=audit_writer)
    place_id = await _make_place(session_factory)
    request_id = await _make_edit_request(session_factory, place_id)

    result = await service.approve_edit_request(request_id, reviewed_by="mod-1")

    assert result.audit.queued is True
    async with session_factory() as session:
        assert (await session.get(EditRequest, request_id)).status == EditRequestStatus.APPROVED
    [entry] = await _all(session_factory, AuditQueueEntry)
    assert entry.action == "approve"


# ============================================================
# 待审核队列
# ============================================================

@pytest.mark.asyncio
async def test_process_queue_item_resolves(session_factory, action_service):
    place_id = await _make_place(session_factory)
    item_id = await _make_queue_item(session_factory, place_id)

    result = await action_service.process_queue_item(
        item_id, action="reject", performed_by="mod-1", justification="spam"
    )

    assert result.target_id == item_id

    async with session_factory() as session:
        item = await session.get(ModerationQueueItem, item_id)
        assert item.status == QueueStatus.RESOLVED
        assert item.justification == "spam"
        assert item.reviewed_by == "mod-1"
        assert item.reviewed_at is not None

    [log] = await _all(session_factory, ModerationActionLog)
    assert log.action == ModerationAction.REJECT
    assert log.content_type == "place"
    assert log.content_id == place_id
    assert log.metadata_ == {"queueItemId": item_id, "priority": "high"}

    [audit] = await _all(session_factory, AuditLog)
    assert audit.action == "reject"
    assert audit.target_id == place_id
    assert audit.metadata_["queueItemId"] == item_id

    with pytest.raises(PreconditionError, match="already resolved"):
        await action_service.process_queue_item(
            item_id, action="approve", performed_by="mod-1", justification="again"
        )


@pytest.mark.asyncio
async def test_process_queue_item_missing_content(session_factory, action_service):
    item_id = await _make_queue_item(session_factory, "ghost-place")

    with pytest.raises(NotFoundError, match="place ghost-place not found"):
        await action_service.process_queue_item(
            item_id, action="approve", performed_by="mod-1", justification="ok"
        )

    async with session_factory() as session:
        assert (await session.get(ModerationQueueItem, item_id)).status == QueueStatus.PENDING


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "action, justification, error",
    [
        ("delete", "reason", UnsupportedOperationError),
        ("approve", "", ValidationError),
        ("approve", "   ", ValidationError),
    ],
)
async def test_process_queue_item_invalid_input(session_factory, action_service, action, justification, error):
    place_id = await _make_place(session_factory)
    item_id = await _make_queue_item(session_factory, place_id)

    with pytest.raises(error):
        await action_service.process_queue_item(
            item_id, action=action, performed_by="mod-1", justification=justification
        )

    assert await _all(session_factory, ModerationActionLog) == []


@pytest.mark.asyncio
async def test_process_queue_item_not_found(action_service):
    with pytest.raises(NotFoundError, match="Queue item nope not found"):
        await action_service.process_queue_item(
            "nope", action="approve", performed_by="mod-1", justification="ok"
        )


@pytest.mark.asyncio
async def test_assign_queue_item(session_factory, action_service):
    item_id = await _make_queue_item(session_factory, "c-1", content_type="comment")

    item = await action_service.assign_queue_item(item_id, "mod-7")

    assert item.assigned_to == "mod-7"
    assert item.status == QueueStatus.IN_REVIEW

    async with session_factory() as session:
        stored = await session.get(ModerationQueueItem, item_id)
        assert stored.assigned_to == "mod-7"
        assert stored.status == QueueStatus.IN_REVIEW

    # 未注册的内容类型不校验内容是否存在
    await action_service.process_queue_item(
        item_id, action="approve", performed_by="mod-7", justification="fine"
    )
    with pytest.raises(PreconditionError):
        await action_service.assign_queue_item(item_id, "mod-8")
