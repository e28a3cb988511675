"""
RBAC 与令牌测试
"""

from datetime import datetime, timedelta, timezone

import pytest

from backoffice.core.errors import AuthError, ForbiddenError
from backoffice.core.rbac import (
    MODERATOR_ROLES,
    actor_has_moderator_role,
    is_token_revoked,
    require_admin,
    require_moderator,
    require_roles,
    resolve_current_actor,
)
from backoffice.core.security import create_access_token, decode_token
from backoffice.database.mixins import utcnow
from backoffice.database.models import User, UserRole


def test_decode_token_round_trip():
    token = create_access_token("user-1", extra_claims={"role": "admin"})
    payload = decode_token(token)
    assert payload["sub"] == "user-1"
    assert payload["role"] == "admin"


def test_decode_expired_token_returns_none():
    token = create_access_token("user-1", expires_delta=timedelta(seconds=-1))
    assert decode_token(token) is None


@pytest.mark.parametrize(
    "role, expected",
    [(UserRole.ADMIN, True), (UserRole.MODERATOR, True), (UserRole.USER, False)],
)
def test_actor_has_moderator_role(role, expected):
    assert actor_has_moderator_role(User(id="u", username="u", role=role)) is expected


def test_actor_has_moderator_role_anonymous():
    assert actor_has_moderator_role(None) is False


@pytest.mark.asyncio
async def test_resolve_current_actor(db_session, moderator):
    token = create_access_token(moderator.id)

    actor = await resolve_current_actor(token, db_session)

    assert actor is not None
    assert actor.id == moderator.id
    assert await resolve_current_actor(None, db_session) is None
    assert await resolve_current_actor("garbage", db_session) is None


@pytest.mark.asyncio
async def test_require_roles_checker():
    checker = require_roles(MODERATOR_ROLES)

    with pytest.raises(AuthError):
        await checker(None)

    with pytest.raises(ForbiddenError) as exc_info:
        await checker(User(id="u", username="u", role=UserRole.USER))
    assert exc_info.value.status_code == 403

    admin = User(id="a", username="a", role=UserRole.ADMIN)
    assert await checker(admin) is admin


@pytest.mark.asyncio
async def test_require_moderator_and_admin_guards():
    moderator = User(id="m", username="m", role=UserRole.MODERATOR)

    with pytest.raises(AuthError):
        await require_moderator(None)
    with pytest.raises(ForbiddenError, match="Moderator access required"):
        await require_moderator(User(id="u", username="u", role=UserRole.USER))
    assert await require_moderator(moderator) is moderator

    with pytest.raises(ForbiddenError, match="Admin access required") as exc_info:
        await require_admin(moderator)
    assert exc_info.value.details["requiredRoles"] == "admin"


def _iat(moment):
    return int(moment.replace(tzinfo=timezone.utc).timestamp())


def test_is_token_revoked():
    now = utcnow()
    user = User(id="u", username="u", role=UserRole.MODERATOR)
    assert is_token_revoked(user, {"iat": _iat(now)}) is False

    user.session_invalidated_at = now
    assert is_token_revoked(user, {"iat": _iat(now - timedelta(minutes=5))}) is True
    assert is_token_revoked(user, {"iat": _iat(now + timedelta(minutes=5))}) is False
    assert is_token_revoked(user, {}) is True

    # 计划删除时间到期后所有令牌失效
    user.deletion_scheduled_at = now - timedelta(seconds=1)
    assert is_token_revoked(user, {"iat": _iat(now + timedelta(minutes=5))}) is True

    user.deletion_scheduled_at = now + timedelta(days=7)
    assert is_token_revoked(user, {"iat": _iat(now + timedelta(minutes=5))}) is False


@pytest.mark.asyncio
async def test_resolve_current_actor_rejects_token_issued_before_block(db_session, moderator):
    token = create_access_token(moderator.id)
    user = await db_session.get(User, moderator.id)
    user.session_invalidated_at = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(seconds=5)
    await db_session.commit()

    assert await resolve_current_actor(token, db_session) is None
