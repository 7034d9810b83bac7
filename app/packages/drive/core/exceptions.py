"""异常处理模块：定义统一的业务异常层级与响应格式。

每个异常都携带 ``msg``/``code``/``data``，全局处理器将其渲染为统一响应体。
部分失败类异常在 ``data`` 中给出到达的阶段以及受影响的 key / 记录 ID，
调用方据此决定重试或人工对账。
"""

from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from .logger import logger


class AppException(HTTPException):
    """携带统一响应结构的业务异常，方便在全局处理中转换响应体。"""

    def __init__(self, msg: str, code: int = status.HTTP_400_BAD_REQUEST, data: Any = None) -> None:
        super().__init__(status_code=code, detail=msg)
        self.data = data


class UnauthenticatedError(AppException):
    def __init__(self, msg: str = "缺少认证信息", data: Any = None) -> None:
        super().__init__(msg, status.HTTP_401_UNAUTHORIZED, data)


class ForbiddenError(AppException):
    def __init__(self, msg: str = "无权操作其他用户的数据", data: Any = None) -> None:
        super().__init__(msg, status.HTTP_403_FORBIDDEN, data)


class ValidationError(AppException):
    def __init__(self, msg: str, data: Any = None) -> None:
        super().__init__(msg, status.HTTP_400_BAD_REQUEST, data)


class NotFoundError(AppException):
    def __init__(self, msg: str, data: Any = None) -> None:
        super().__init__(msg, status.HTTP_404_NOT_FOUND, data)


class DuplicateEntryError(AppException):
    def __init__(self, msg: str, data: Any = None) -> None:
        super().__init__(msg, status.HTTP_409_CONFLICT, data)


class MigrationPartialFailure(AppException):
    """对象存储迁移阶段部分失败：元数据未被修改。"""

    def __init__(self, msg: str, data: Any = None) -> None:
        super().__init__(msg, status.HTTP_500_INTERNAL_SERVER_ERROR, data)


class MetadataPartialFailure(AppException):
    """对象已迁移完成，但元数据级联更新存在失败。"""

    def __init__(self, msg: str, data: Any = None) -> None:
        super().__init__(msg, status.HTTP_500_INTERNAL_SERVER_ERROR, data)


class ObjectStoreError(Exception):
    """对象存储单次调用失败。"""

    def __init__(self, message: str, *, key: Optional[str] = None) -> None:
        super().__init__(message)
        self.key = key


class ObjectNotFoundError(ObjectStoreError):
    pass


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 ``HTTPException`` 转换为统一响应格式。"""
    payload = {"msg": exc.detail, "data": getattr(exc, "data", None), "code": exc.status_code}
    return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常转换为标准的 500 响应结构。"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    payload = {"msg": "服务器内部错误", "data": None, "code": status.HTTP_500_INTERNAL_SERVER_ERROR}
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
