"""异常处理模块：定义统一的业务异常与错误响应格式。"""

from typing import Any, Optional

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse

from cloudvault.packages.storage.core.enums import ErrorKindEnum
from cloudvault.packages.storage.core.logger import logger
from cloudvault.packages.storage.core.responses import create_error

_KIND_BY_STATUS = {
    status.HTTP_400_BAD_REQUEST: ErrorKindEnum.VALIDATION,
    status.HTTP_401_UNAUTHORIZED: ErrorKindEnum.UNAUTHORIZED,
    status.HTTP_404_NOT_FOUND: ErrorKindEnum.NOT_FOUND,
    status.HTTP_409_CONFLICT: ErrorKindEnum.CONFLICT,
    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: ErrorKindEnum.PAYLOAD_TOO_LARGE,
    status.HTTP_422_UNPROCESSABLE_ENTITY: ErrorKindEnum.VALIDATION,
}


def kind_for_status(code: int) -> ErrorKindEnum:
    return _KIND_BY_STATUS.get(code, ErrorKindEnum.INTERNAL)


class AppException(HTTPException):
    """携带错误类型与附加数据的业务异常，方便在全局处理中转换响应体。"""

    def __init__(
        self,
        msg: str,
        code: int = status.HTTP_400_BAD_REQUEST,
        data: Any = None,
        *,
        kind: Optional[ErrorKindEnum] = None,
    ) -> None:
        super().__init__(status_code=code, detail=msg)
        self.data = data
        self.kind = kind or kind_for_status(code)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:  # pragma: no cover - framework glue
    """将 ``HTTPException`` 转换为统一的错误响应格式。"""
    kind = getattr(exc, "kind", None) or kind_for_status(exc.status_code)
    payload = create_error(str(exc.detail), kind, exc.status_code, getattr(exc, "data", None))
    return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:  # pragma: no cover - framework glue
    """兜底处理：将未捕获异常记录后转换为标准的 500 响应结构。"""
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    payload = create_error(
        "服务器内部错误",
        ErrorKindEnum.INTERNAL,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload)
