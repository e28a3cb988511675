"""
审核管线错误类型

所有错误对外统一渲染为 {"error", "code", "details"?}

- ValidationError: 请求格式错误 → 400
- AuthError / ForbiddenError: 未登录 / 权限不足 → 401 / 403
- PreconditionError: 单条目标缺失或状态不符（仅在批量条目内部使用）
- SinkUnavailableError: 审计存储写入失败（由队列兜底吸收）
- UnsupportedOperationError: 未知内容类型 / 未知批量操作 → 400
"""

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class ErrorCode:
    """错误码常量"""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    AUDIT_SINK_UNAVAILABLE = "AUDIT_SINK_UNAVAILABLE"
    UNSUPPORTED_OPERATION = "UNSUPPORTED_OPERATION"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ModerationError(Exception):
    """审核管线错误基类"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Any] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(ModerationError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.VALIDATION_ERROR


class AuthError(ModerationError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = ErrorCode.UNAUTHORIZED


class ForbiddenError(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    code = ErrorCode.FORBIDDEN


class PreconditionError(ModerationError):
    """单条目标前置条件不满足（目标不存在 / 状态不符）"""

    status_code = status.HTTP_409_CONFLICT
    code = ErrorCode.PRECONDITION_FAILED


class NotFoundError(PreconditionError):
    status_code = status.HTTP_404_NOT_FOUND
    code = ErrorCode.NOT_FOUND


class SinkUnavailableError(ModerationError):
    """审计存储不可用"""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = ErrorCode.AUDIT_SINK_UNAVAILABLE


class UnsupportedOperationError(ModerationError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = ErrorCode.UNSUPPORTED_OPERATION


async def moderation_error_handler(request: Request, exc: ModerationError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """pydantic 校验失败统一映射为 400 VALIDATION_ERROR"""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "Invalid request data",
            "code": ErrorCode.VALIDATION_ERROR,
            "details": jsonable_encoder(exc.errors()),
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "code": ErrorCode.INTERNAL_ERROR,
            "message": str(exc) or exc.__class__.__name__,
        },
    )


def register_exception_handlers(app: FastAPI) -> None:
    """注册全局异常处理器"""
    app.add_exception_handler(ModerationError, moderation_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
