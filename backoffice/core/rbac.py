"""
RBAC 权限控制模块

提供当前操作者解析与审核权限检查依赖

角色：
- admin: 管理员，全部权限
- moderator: 审核员，可执行审核与批量操作
- user: 普通用户，不允许访问审核后台
"""

from datetime import datetime, timezone
from typing import Annotated, Any, Callable, Dict, List, Optional

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core.errors import AuthError, ForbiddenError
from backoffice.core.security import decode_token, oauth2_scheme
from backoffice.database.engine import get_db
from backoffice.database.mixins import utcnow
from backoffice.database.models.user import User, UserRole

# 审核角色（可执行审核操作）
MODERATOR_ROLES = [UserRole.MODERATOR, UserRole.ADMIN]

# 管理员角色（可执行高权限操作）
ADMIN_ROLES = [UserRole.ADMIN]


def _issued_at(payload: Dict[str, Any]) -> Optional[datetime]:
    iat = payload.get("iat")
    if iat is None:
        return None
    return datetime.fromtimestamp(iat, timezone.utc).replace(tzinfo=None)


def is_token_revoked(user: User, payload: Dict[str, Any]) -> bool:
    """
    令牌是否已被封禁操作吊销

    - deletion_scheduled_at 已到期：账号所有令牌失效
    - session_invalidated_at 之前签发（或无 iat）的令牌失效
    """
    if user.deletion_scheduled_at is not None and user.deletion_scheduled_at <= utcnow():
        return True

    if user.session_invalidated_at is not None:
        issued_at = _issued_at(payload)
        if issued_at is None or issued_at < user.session_invalidated_at:
            return True

    return False


async def resolve_current_actor(
    token: Annotated[Optional[str], Depends(oauth2_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Optional[User]:
    """
    从 Bearer JWT 解析当前操作者

    token 缺失、无效、已被封禁吊销，或用户不存在 / 已停用 / 已删除时返回 None
    """
    if not token:
        return None

    payload = decode_token(token)
    if not payload:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None

    result = await db.execute(
        select(User).where(
            User.id == user_id,
            User.is_active.is_(True),
            User.deleted_at.is_(None),
        )
    )
    user = result.scalar_one_or_none()
    if user is None or is_token_revoked(user, payload):
        return None
    return user


def actor_has_role(actor: Optional[User], allowed_roles: List[str]) -> bool:
    return actor is not None and actor.role in allowed_roles


def actor_has_moderator_role(actor: Optional[User]) -> bool:
    """是否具备审核员或管理员角色"""
    return actor_has_role(actor, MODERATOR_ROLES)


def actor_has_admin_role(actor: Optional[User]) -> bool:
    return actor_has_role(actor, ADMIN_ROLES)


def _role_guard(check: Callable[[Optional[User]], bool], allowed_roles: List[str], message: str):
    async def role_checker(
        actor: Annotated[Optional[User], Depends(resolve_current_actor)],
    ) -> User:
        if actor is None:
            raise AuthError("Unauthorized. Authentication required.")

        if not check(actor):
            raise ForbiddenError(
                message,
                details={"role": actor.role, "requiredRoles": ", ".join(allowed_roles)},
            )
        return actor

    return role_checker


def require_roles(allowed_roles: List[str]):
    """
    角色权限检查依赖工厂

    用法：
        @router.post("/bulk")
        async def bulk(actor: Annotated[User, Depends(require_roles(MODERATOR_ROLES))]):
            ...

    Raises:
        AuthError 401: 未登录
        ForbiddenError 403: 角色不在允许列表中
    """
    return _role_guard(
        lambda actor: actor_has_role(actor, allowed_roles),
        allowed_roles,
        "Forbidden. Moderator access required.",
    )


# ============================================================
# 类型别名（用于路由参数类型注解）
# ============================================================

require_moderator = _role_guard(
    actor_has_moderator_role, MODERATOR_ROLES, "Forbidden. Moderator access required."
)
require_admin = _role_guard(actor_has_admin_role, ADMIN_ROLES, "Forbidden. Admin access required.")

# 审核员及以上（moderator + admin）
ModeratorOrAbove = Annotated[User, Depends(require_moderator)]

# 仅管理员
AdminOnly = Annotated[User, Depends(require_admin)]
