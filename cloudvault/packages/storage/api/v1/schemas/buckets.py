"""存储桶请求/响应模型。

名称与访问级别在模型层保持宽松，由存储引擎统一校验并返回 400。
"""

from typing import Optional

from pydantic import BaseModel


class BucketCreate(BaseModel):
    name: Optional[str] = None
    access: Optional[str] = "PRIVATE"


class BucketResponseData(BaseModel):
    id: str
    name: str
    access: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
