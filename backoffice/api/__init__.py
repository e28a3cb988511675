"""
API 路由模块

统一注册所有 API 路由
"""

from fastapi import APIRouter

from backoffice.api.v1 import audit, health, moderation

router = APIRouter()

# 健康检查
router.include_router(health.router, prefix="/health", tags=["健康检查"])

# 审核后台
router.include_router(moderation.router, tags=["内容审核"])

# 审计日志
router.include_router(audit.router, tags=["审计日志"])
