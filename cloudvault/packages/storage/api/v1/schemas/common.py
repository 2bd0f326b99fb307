"""通用响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel


class AckResponse(BaseModel):
    """变更类操作的确认结构。"""

    success: bool
    msg: Optional[str] = None
    code: Optional[int] = None
    data: Optional[Any] = None


class ErrorResponse(BaseModel):
    msg: str
    kind: str
    code: int
    data: Optional[Any] = None
