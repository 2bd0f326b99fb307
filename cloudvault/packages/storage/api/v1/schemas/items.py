"""存储条目请求/响应模型。"""

from typing import Literal, Optional

from pydantic import BaseModel


class FolderCreate(BaseModel):
    name: Optional[str] = None
    path: Optional[str] = ""


class ItemResponseData(BaseModel):
    id: str
    bucket_id: str
    name: str
    type: Literal["file", "folder"]
    path: str
    storage_path: Optional[str] = None
    mime_type: Optional[str] = None
    size: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ReconcileResponseData(BaseModel):
    bucket_id: str
    orphan_blobs: list[str]
    missing_blobs: list[str]
    repaired: bool
