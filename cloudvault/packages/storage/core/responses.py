"""响应封装：构建系统统一的确认与错误返回结构。"""

from enum import Enum
from typing import Any

from cloudvault.packages.storage.core.constants import HTTP_STATUS_OK


def create_response(msg: str, data: Any = None, code: int = HTTP_STATUS_OK) -> dict[str, Any]:
    """按照 ``success``、``msg``、``data``、``code`` 组合出变更类操作的确认响应体。"""
    payload: dict[str, Any] = {"success": True, "msg": msg, "code": code}
    if data is not None:
        payload["data"] = data
    return payload


def create_error(msg: str, kind: Any, code: int, data: Any = None) -> dict[str, Any]:
    """组合错误响应体：``kind`` 供程序判断，``msg`` 供人阅读。"""
    kind_value = kind.value if isinstance(kind, Enum) else str(kind)
    return {"msg": msg, "kind": kind_value, "code": code, "data": data}
