"""存储条目 CRUD：扁平表 + 路径字符串匹配实现虚拟目录层级。"""

from __future__ import annotations

from typing import Any, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from cloudvault.packages.storage.core.constants import HTTP_STATUS_NOT_FOUND, PATH_SEPARATOR
from cloudvault.packages.storage.core.enums import ItemTypeEnum
from cloudvault.packages.storage.core.exceptions import AppException
from cloudvault.packages.storage.crud.base import CRUDBase
from cloudvault.packages.storage.models.bucket import Bucket
from cloudvault.packages.storage.models.item import StorageItem
from cloudvault.packages.storage.utils.path_utils import subtree_prefix


def _listing_key(item: StorageItem) -> tuple[int, str]:
    # 文件夹在前，其后按名称做区分大小写的逐字符比较
    return (0 if item.type == ItemTypeEnum.FOLDER.value else 1, item.name)


class CRUDStorageItem(CRUDBase[StorageItem]):
    def list_children(self, db: Session, *, bucket_id: str, path: str) -> List[StorageItem]:
        """仅返回直接子条目：对 ``path`` 做相等匹配，而非前缀匹配。"""
        rows = (
            self.query(db)
            .filter(StorageItem.bucket_id == bucket_id)
            .filter(StorageItem.path == path)
            .all()
        )
        return sorted(rows, key=_listing_key)

    def list_files(self, db: Session, *, bucket_id: str) -> List[StorageItem]:
        return (
            self.query(db)
            .filter(StorageItem.bucket_id == bucket_id)
            .filter(StorageItem.type == ItemTypeEnum.FILE.value)
            .all()
        )

    def get_by_location(self, db: Session, *, bucket_id: str, path: str, name: str) -> Optional[StorageItem]:
        return (
            self.query(db)
            .filter(StorageItem.bucket_id == bucket_id)
            .filter(StorageItem.path == path)
            .filter(StorageItem.name == name)
            .first()
        )

    def find_file_on_path(self, db: Session, *, bucket_id: str, path: str) -> Optional[StorageItem]:
        """返回 ``path`` 的任一层级上与之同名的文件记录；路径完全由文件夹构成时返回 None。"""
        if not path:
            return None
        segments = path.split(PATH_SEPARATOR)
        conditions = [
            and_(StorageItem.path == PATH_SEPARATOR.join(segments[:depth]), StorageItem.name == segment)
            for depth, segment in enumerate(segments)
        ]
        return (
            self.query(db)
            .filter(StorageItem.bucket_id == bucket_id)
            .filter(StorageItem.type == ItemTypeEnum.FILE.value)
            .filter(or_(*conditions))
            .first()
        )

    def get_by_storage_path(self, db: Session, *, bucket_id: str, storage_path: str) -> Optional[StorageItem]:
        return (
            self.query(db)
            .filter(StorageItem.bucket_id == bucket_id)
            .filter(StorageItem.storage_path == storage_path)
            .first()
        )

    def create_item(
        self,
        db: Session,
        *,
        bucket_id: str,
        name: str,
        type: str,
        path: str,
        auto_commit: bool = True,
        **file_attrs: Any,
    ) -> StorageItem:
        """插入条目记录；不做同级重名检查，重名由唯一约束兜底。"""
        if db.get(Bucket, bucket_id) is None:
            raise AppException("存储桶不存在", HTTP_STATUS_NOT_FOUND)
        payload = {"bucket_id": bucket_id, "name": name, "type": type, "path": path, **file_attrs}
        return self.create(db, payload, auto_commit=auto_commit)

    def delete_matching(self, db: Session, *, bucket_id: str, location: str, auto_commit: bool = True) -> int:
        """删除 ``path`` 等于 ``location`` 或以 ``location/`` 开头的全部条目，返回删除条数。"""
        prefix = subtree_prefix(location)
        query = (
            db.query(StorageItem)
            .filter(StorageItem.bucket_id == bucket_id)
            .filter(
                or_(
                    StorageItem.path == location,
                    StorageItem.path.startswith(prefix, autoescape=True),
                )
            )
        )
        removed = query.delete(synchronize_session=False)
        if auto_commit:
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
        return int(removed or 0)

    def delete_item(self, db: Session, item_id: str, *, auto_commit: bool = True) -> int:
        removed = db.query(StorageItem).filter(StorageItem.id == item_id).delete(synchronize_session=False)
        if auto_commit:
            try:
                db.commit()
            except Exception:
                db.rollback()
                raise
        return int(removed or 0)


item_crud = CRUDStorageItem(StorageItem)
