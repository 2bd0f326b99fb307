"""存储桶及其条目相关路由。"""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.orm import Session

from cloudvault.packages.storage.api.v1.schemas.buckets import BucketCreate, BucketResponseData
from cloudvault.packages.storage.api.v1.schemas.common import AckResponse, ErrorResponse
from cloudvault.packages.storage.api.v1.schemas.items import (
    FolderCreate,
    ItemResponseData,
    ReconcileResponseData,
)
from cloudvault.packages.storage.core.constants import HTTP_STATUS_BAD_REQUEST, HTTP_STATUS_OK
from cloudvault.packages.storage.core.dependencies import get_db, get_storage_engine, require_credentials
from cloudvault.packages.storage.core.exceptions import AppException
from cloudvault.packages.storage.core.responses import create_response
from cloudvault.packages.storage.services.storage_engine import (
    StorageEngine,
    serialize_bucket,
    serialize_item,
)

router = APIRouter(
    prefix="/buckets",
    tags=["buckets"],
    dependencies=[Depends(require_credentials)],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)


@router.get("", response_model=list[BucketResponseData])
def list_buckets(db: Session = Depends(get_db), engine: StorageEngine = Depends(get_storage_engine)):
    return [serialize_bucket(bucket) for bucket in engine.list_buckets(db)]


@router.post("", response_model=BucketResponseData, status_code=status.HTTP_201_CREATED)
def create_bucket(
    payload: BucketCreate,
    db: Session = Depends(get_db),
    engine: StorageEngine = Depends(get_storage_engine),
):
    bucket = engine.create_bucket(db, name=payload.name, access=payload.access)
    return serialize_bucket(bucket)


@router.delete("/{bucket_id}", response_model=AckResponse)
def delete_bucket(
    bucket_id: str,
    db: Session = Depends(get_db),
    engine: StorageEngine = Depends(get_storage_engine),
):
    removed = engine.delete_bucket(db, bucket_id)
    return create_response("删除存储桶成功", {"removed_items": removed}, HTTP_STATUS_OK)


@router.get("/{bucket_id}/items", response_model=list[ItemResponseData])
def list_items(
    bucket_id: str,
    path: Optional[str] = Query(""),
    db: Session = Depends(get_db),
    engine: StorageEngine = Depends(get_storage_engine),
):
    return [serialize_item(item) for item in engine.list_items(db, bucket_id=bucket_id, path=path)]


@router.post("/{bucket_id}/folders", response_model=ItemResponseData, status_code=status.HTTP_201_CREATED)
def create_folder(
    bucket_id: str,
    payload: FolderCreate,
    response: Response,
    db: Session = Depends(get_db),
    engine: StorageEngine = Depends(get_storage_engine),
):
    """新建文件夹；同名文件夹已存在时返回 200 与已有记录，便于客户端安全重试。"""
    folder, created = engine.create_folder(db, bucket_id=bucket_id, name=payload.name, path=payload.path)
    if not created:
        response.status_code = status.HTTP_200_OK
    return serialize_item(folder)


@router.post("/{bucket_id}/upload", response_model=ItemResponseData, status_code=status.HTTP_201_CREATED)
def upload_file(
    bucket_id: str,
    response: Response,
    file: Optional[UploadFile] = File(None),
    path: Optional[str] = Form(""),
    db: Session = Depends(get_db),
    engine: StorageEngine = Depends(get_storage_engine),
):
    """以分块方式把上传内容写入内容存储，写入完成后才登记元数据。"""
    if file is None or not file.filename:
        raise AppException("未提供上传文件", HTTP_STATUS_BAD_REQUEST)
    try:
        item, created = engine.upload_file(
            db,
            bucket_id=bucket_id,
            file_name=file.filename,
            source=file.file,
            path=path,
            mime_type=file.content_type,
        )
    finally:
        file.file.close()
    if not created:
        response.status_code = status.HTTP_200_OK
    return serialize_item(item)


@router.post("/{bucket_id}/reconcile", response_model=ReconcileResponseData)
def reconcile_bucket(
    bucket_id: str,
    repair: bool = Query(False),
    db: Session = Depends(get_db),
    engine: StorageEngine = Depends(get_storage_engine),
):
    """核对元数据与内容存储；``repair=true`` 时删除孤儿字节与悬空的文件记录。"""
    report = engine.reconcile(db, bucket_id=bucket_id, repair=repair)
    return {
        "bucket_id": report.bucket_id,
        "orphan_blobs": report.orphan_blobs,
        "missing_blobs": report.missing_blobs,
        "repaired": report.repaired,
    }
