"""文件直链读取路由：公开桶允许匿名访问，私有桶需要 Basic 认证。"""

from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from cloudvault.packages.storage.core.dependencies import get_db, get_storage_engine, is_authenticated
from cloudvault.packages.storage.services.storage_engine import StorageEngine

router = APIRouter(prefix="/files", tags=["files"])


@router.get("/{bucket_name}/{file_path:path}")
def read_file(
    bucket_name: str,
    file_path: str,
    authenticated: bool = Depends(is_authenticated),
    db: Session = Depends(get_db),
    engine: StorageEngine = Depends(get_storage_engine),
):
    stream = engine.open_file(db, bucket_name=bucket_name, file_path=file_path, authenticated=authenticated)
    headers = {"Content-Disposition": f"inline; filename*=UTF-8''{quote(stream.file_name)}"}
    return StreamingResponse(stream.chunks, media_type=stream.mime_type, headers=headers)
