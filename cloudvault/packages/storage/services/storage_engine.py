"""存储引擎：协调元数据索引与内容存储，保证每个对外操作结束后两者保持一致。

两个存储之间没有分布式事务，一致性靠操作顺序保证：
- 创建：先写内容存储，再提交元数据，索引永远不会引用未写成功的字节；
- 删除：先提交元数据（含级联），再清理内容存储；清理失败按“不一致”上报，不回滚。
"""

from __future__ import annotations

import mimetypes
import posixpath
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cloudvault.packages.storage.core.constants import (
    DEFAULT_MIME_TYPE,
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_INTERNAL_SERVER_ERROR,
    HTTP_STATUS_NOT_FOUND,
)
from cloudvault.packages.storage.core.enums import BucketAccessEnum, ErrorKindEnum, ItemTypeEnum
from cloudvault.packages.storage.core.exceptions import AppException
from cloudvault.packages.storage.core.guards import ensure_bucket_readable
from cloudvault.packages.storage.core.logger import logger
from cloudvault.packages.storage.core.timezone import format_iso, utcnow
from cloudvault.packages.storage.crud.bucket import bucket_crud
from cloudvault.packages.storage.crud.item import item_crud
from cloudvault.packages.storage.models.bucket import Bucket
from cloudvault.packages.storage.models.item import StorageItem
from cloudvault.packages.storage.services.content_store import (
    DEFAULT_CHUNK_SIZE,
    ContentStore,
    ProgressCallback,
    Source,
)
from cloudvault.packages.storage.utils.path_utils import join_logical, norm_logical_path, validate_name


@dataclass
class FileStream:
    """文件读取结果：字节块迭代器与响应所需的元信息。"""

    chunks: Iterator[bytes]
    mime_type: str
    file_name: str
    size: Optional[int] = None


@dataclass
class ReconcileReport:
    bucket_id: str
    orphan_blobs: List[str] = field(default_factory=list)
    missing_blobs: List[str] = field(default_factory=list)
    repaired: bool = False


def serialize_bucket(bucket: Bucket) -> dict[str, Any]:
    return {
        "id": bucket.id,
        "name": bucket.name,
        "access": bucket.access,
        "created_at": format_iso(bucket.created_at),
        "updated_at": format_iso(bucket.updated_at),
    }


def serialize_item(item: StorageItem) -> dict[str, Any]:
    return {
        "id": item.id,
        "bucket_id": item.bucket_id,
        "name": item.name,
        "type": item.type,
        "path": item.path,
        "storage_path": item.storage_path,
        "mime_type": item.mime_type,
        "size": int(item.size or 0),
        "created_at": format_iso(item.created_at),
        "updated_at": format_iso(item.updated_at),
    }


def guess_mime_type(file_name: str, declared: Optional[str] = None) -> str:
    """优先使用上传时声明的类型，其次按扩展名推断，最后回退为二进制流。"""
    declared_norm = (declared or "").strip()
    if declared_norm and declared_norm != DEFAULT_MIME_TYPE:
        return declared_norm
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or DEFAULT_MIME_TYPE


class StorageEngine:
    def __init__(
        self,
        content_store: ContentStore,
        *,
        max_upload_size: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        self.content_store = content_store
        self.max_upload_size = max_upload_size
        self.chunk_size = chunk_size

    # ----------------------------
    # 存储桶
    # ----------------------------
    def list_buckets(self, db: Session) -> List[Bucket]:
        return bucket_crud.list_all(db)

    def get_bucket(self, db: Session, bucket_id: str) -> Bucket:
        bucket = bucket_crud.get(db, bucket_id)
        if bucket is None:
            raise AppException("存储桶不存在", HTTP_STATUS_NOT_FOUND)
        return bucket

    def create_bucket(self, db: Session, *, name: Optional[str], access: Optional[str] = None) -> Bucket:
        """先建物理命名空间再提交元数据；元数据写入失败时撤销本次新建的命名空间。"""
        bucket_name = validate_name(name, label="存储桶名称")
        access_value = self._normalize_access(access)
        if bucket_crud.get_by_name(db, bucket_name) is not None:
            raise AppException("存储桶名称已存在", HTTP_STATUS_BAD_REQUEST, kind=ErrorKindEnum.CONFLICT)

        existed = self.content_store.namespace_exists(bucket_name)
        self.content_store.ensure_bucket_namespace(bucket_name)
        try:
            bucket = bucket_crud.create_bucket(db, name=bucket_name, access=access_value)
        except Exception:
            if not existed:
                try:
                    self.content_store.delete_bucket_namespace(bucket_name)
                except Exception:
                    logger.warning("Failed to roll back namespace for bucket %s", bucket_name, exc_info=True)
            raise
        logger.info("Created bucket id=%s name=%s access=%s", bucket.id, bucket.name, bucket.access)
        return bucket

    def delete_bucket(self, db: Session, bucket_id: str) -> int:
        """删除桶：先级联删除元数据，再递归删除物理命名空间，返回删除的条目数。"""
        bucket = self.get_bucket(db, bucket_id)
        bucket_name = bucket.name
        removed = bucket_crud.delete_bucket(db, bucket_id)
        self._cleanup("delete_bucket", bucket_name, self.content_store.delete_bucket_namespace, bucket_name)
        logger.info("Deleted bucket id=%s name=%s items=%s", bucket_id, bucket_name, removed)
        return removed

    # ----------------------------
    # 条目
    # ----------------------------
    def list_items(self, db: Session, *, bucket_id: str, path: Optional[str] = "") -> List[StorageItem]:
        self.get_bucket(db, bucket_id)
        return item_crud.list_children(db, bucket_id=bucket_id, path=norm_logical_path(path))

    def get_item(self, db: Session, item_id: str) -> StorageItem:
        item = item_crud.get(db, item_id)
        if item is None:
            raise AppException("条目不存在", HTTP_STATUS_NOT_FOUND)
        return item

    def create_folder(
        self, db: Session, *, bucket_id: str, name: Optional[str], path: Optional[str] = ""
    ) -> Tuple[StorageItem, bool]:
        """新建文件夹，返回 ``(条目, 是否新建)``；同名文件夹已存在时直接返回已有记录。"""
        folder_name = validate_name(name, label="文件夹名称")
        parent = norm_logical_path(path)
        bucket = self.get_bucket(db, bucket_id)
        bucket_name = bucket.name
        self._ensure_parent_not_file(db, bucket_id, parent)

        existing = item_crud.get_by_location(db, bucket_id=bucket_id, path=parent, name=folder_name)
        if existing is not None:
            return self._existing_folder(existing)
        try:
            folder = item_crud.create_item(
                db, bucket_id=bucket_id, name=folder_name, type=ItemTypeEnum.FOLDER.value, path=parent
            )
        except IntegrityError:
            # 并发创建了同名条目
            existing = item_crud.get_by_location(db, bucket_id=bucket_id, path=parent, name=folder_name)
            if existing is None:
                raise
            return self._existing_folder(existing)

        # 物理目录只是便利，列表完全依赖元数据
        location = join_logical(parent, folder_name)
        try:
            self.content_store.ensure_path(bucket_name, location)
        except Exception:
            logger.warning("Folder %s/%s indexed but physical directory not created", bucket_name, location, exc_info=True)
        logger.info("Created folder bucket=%s location=%s", bucket_name, location)
        return folder, True

    def upload_file(
        self,
        db: Session,
        *,
        bucket_id: str,
        file_name: Optional[str],
        source: Source,
        path: Optional[str] = "",
        mime_type: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> Tuple[StorageItem, bool]:
        """上传文件，返回 ``(条目, 是否新建)``。

        字节写入成功后才写元数据；同名文件会被覆盖并更新原记录，与同名文件夹冲突时报 409。
        """
        leaf = validate_name(posixpath.basename((file_name or "").replace("\\", "/")), label="文件名")
        parent = norm_logical_path(path)
        bucket = self.get_bucket(db, bucket_id)
        bucket_name = bucket.name
        self._ensure_parent_not_file(db, bucket_id, parent)

        existing = item_crud.get_by_location(db, bucket_id=bucket_id, path=parent, name=leaf)
        if existing is not None and existing.type == ItemTypeEnum.FOLDER.value:
            raise AppException("同名文件夹已存在", HTTP_STATUS_CONFLICT)

        storage_path = join_logical(parent, leaf)
        size = self.content_store.write(
            bucket_name,
            parent,
            leaf,
            source,
            on_progress=on_progress,
            max_bytes=self.max_upload_size,
            chunk_size=self.chunk_size,
        )
        attrs = {
            "storage_path": storage_path,
            "mime_type": guess_mime_type(leaf, mime_type),
            "size": size,
        }

        created = existing is None
        try:
            if existing is None:
                try:
                    item = item_crud.create_item(
                        db, bucket_id=bucket_id, name=leaf, type=ItemTypeEnum.FILE.value, path=parent, **attrs
                    )
                except IntegrityError:
                    # 并发上传了同名文件：字节已是最后写入者的版本，更新对方的记录即可
                    existing = item_crud.get_by_location(db, bucket_id=bucket_id, path=parent, name=leaf)
                    if existing is None or existing.type != ItemTypeEnum.FILE.value:
                        raise AppException("同名条目已存在", HTTP_STATUS_CONFLICT)
                    created = False
            if existing is not None:
                for key, value in attrs.items():
                    setattr(existing, key, value)
                existing.updated_at = utcnow()
                item = item_crud.save(db, existing)
        except Exception:
            if created:
                with suppress(Exception):
                    self.content_store.delete_one(bucket_name, parent, leaf)
            raise

        logger.info(
            "Uploaded file bucket=%s storage_path=%s size=%s replaced=%s",
            bucket_name, storage_path, size, not created,
        )
        return item, created

    def delete_item(self, db: Session, item_id: str) -> int:
        """删除文件或文件夹（递归），返回删除的元数据条数。"""
        item = self.get_item(db, item_id)
        bucket_name = item.bucket.name
        bucket_id = item.bucket_id
        item_type = item.type
        parent, name = item.path, item.name
        storage_path = item.storage_path

        if item_type == ItemTypeEnum.FOLDER.value:
            location = join_logical(parent, name)
            try:
                removed = item_crud.delete_matching(db, bucket_id=bucket_id, location=location, auto_commit=False)
                removed += item_crud.delete_item(db, item_id, auto_commit=False)
                db.commit()
            except Exception:
                db.rollback()
                raise
            self._cleanup("delete_folder", bucket_name, self.content_store.delete_subtree, bucket_name, parent, name)
            logger.info("Deleted folder bucket=%s location=%s rows=%s", bucket_name, location, removed)
            return removed

        removed = item_crud.delete_item(db, item_id)
        blob_parent, blob_name = posixpath.split(storage_path) if storage_path else (parent, name)
        self._cleanup("delete_file", bucket_name, self.content_store.delete_one, bucket_name, blob_parent, blob_name)
        logger.info("Deleted file bucket=%s storage_path=%s", bucket_name, storage_path)
        return removed

    # ----------------------------
    # 文件读取
    # ----------------------------
    def open_file(self, db: Session, *, bucket_name: str, file_path: str, authenticated: bool) -> FileStream:
        bucket = bucket_crud.get_by_name(db, bucket_name)
        if bucket is None:
            raise AppException("存储桶不存在", HTTP_STATUS_NOT_FOUND)
        ensure_bucket_readable(bucket, authenticated=authenticated)

        rel = norm_logical_path(file_path)
        if not rel:
            raise AppException("文件不存在", HTTP_STATUS_NOT_FOUND)
        record = item_crud.get_by_storage_path(db, bucket_id=bucket.id, storage_path=rel)
        if not self.content_store.exists(bucket.name, rel):
            if record is not None:
                logger.warning(
                    "Inconsistency: item %s references missing blob %s/%s", record.id, bucket.name, rel
                )
            raise AppException("文件不存在", HTTP_STATUS_NOT_FOUND)

        file_name = posixpath.basename(rel)
        mime_type = record.mime_type if record is not None and record.mime_type else guess_mime_type(file_name)
        chunks = self.content_store.read_stream(bucket.name, rel, chunk_size=self.chunk_size)
        return FileStream(
            chunks=chunks,
            mime_type=mime_type,
            file_name=file_name,
            size=int(record.size) if record is not None else None,
        )

    # ----------------------------
    # 一致性核对
    # ----------------------------
    def reconcile(self, db: Session, *, bucket_id: str, repair: bool = False) -> ReconcileReport:
        """对比元数据与内容存储：找出无记录的孤儿字节与缺失字节的文件记录，可选修复。"""
        bucket = self.get_bucket(db, bucket_id)
        bucket_name = bucket.name
        referenced: Dict[str, StorageItem] = {
            (item.storage_path or join_logical(item.path, item.name)): item
            for item in item_crud.list_files(db, bucket_id=bucket_id)
        }
        physical = set(self.content_store.walk(bucket_name))

        report = ReconcileReport(
            bucket_id=bucket_id,
            orphan_blobs=sorted(physical - referenced.keys()),
            missing_blobs=sorted(key for key in referenced if key not in physical),
        )
        if report.orphan_blobs or report.missing_blobs:
            logger.warning(
                "Reconcile bucket=%s orphan_blobs=%s missing_blobs=%s",
                bucket_name, len(report.orphan_blobs), len(report.missing_blobs),
            )
        if not repair:
            return report

        for rel in report.orphan_blobs:
            blob_parent, blob_name = posixpath.split(rel)
            self.content_store.delete_one(bucket_name, blob_parent, blob_name)
        try:
            for rel in report.missing_blobs:
                item_crud.delete_item(db, referenced[rel].id, auto_commit=False)
            db.commit()
        except Exception:
            db.rollback()
            raise
        report.repaired = True
        logger.info("Reconcile repaired bucket=%s", bucket_name)
        return report

    # ----------------------------
    # 工具方法
    # ----------------------------
    @staticmethod
    def _normalize_access(access: Optional[str]) -> str:
        value = (access or BucketAccessEnum.PRIVATE.value).strip().upper()
        if value not in {member.value for member in BucketAccessEnum}:
            raise AppException("访问级别仅支持 PRIVATE 或 PUBLIC", HTTP_STATUS_BAD_REQUEST)
        return value

    @staticmethod
    def _ensure_parent_not_file(db: Session, bucket_id: str, parent: str) -> None:
        blocker = item_crud.find_file_on_path(db, bucket_id=bucket_id, path=parent)
        if blocker is not None:
            raise AppException(
                f"路径中的“{join_logical(blocker.path, blocker.name)}”是文件，不能作为文件夹使用",
                HTTP_STATUS_CONFLICT,
            )

    @staticmethod
    def _existing_folder(existing: StorageItem) -> Tuple[StorageItem, bool]:
        if existing.type != ItemTypeEnum.FOLDER.value:
            raise AppException("同名文件已存在", HTTP_STATUS_CONFLICT)
        return existing, False

    @staticmethod
    def _cleanup(operation: str, bucket_name: str, action: Callable[..., Any], *args: Any) -> None:
        """执行元数据提交后的物理清理；失败时记录不一致并上报，不回滚已提交的元数据。"""
        try:
            action(*args)
        except Exception as exc:
            logger.warning(
                "Inconsistency: %s committed in metadata but content store cleanup failed for bucket %s",
                operation, bucket_name, exc_info=True,
            )
            raise AppException(
                "元数据已删除，但内容存储清理失败",
                HTTP_STATUS_INTERNAL_SERVER_ERROR,
                {"operation": operation, "bucket": bucket_name},
                kind=ErrorKindEnum.INCONSISTENCY,
            ) from exc
