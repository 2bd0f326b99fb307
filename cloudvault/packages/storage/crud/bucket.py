"""存储桶 CRUD 封装：元数据索引中与桶相关的读写。"""

from __future__ import annotations

from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cloudvault.packages.storage.core.constants import HTTP_STATUS_BAD_REQUEST, HTTP_STATUS_NOT_FOUND
from cloudvault.packages.storage.core.enums import ErrorKindEnum
from cloudvault.packages.storage.core.exceptions import AppException
from cloudvault.packages.storage.crud.base import CRUDBase
from cloudvault.packages.storage.models.bucket import Bucket
from cloudvault.packages.storage.models.item import StorageItem


class CRUDBucket(CRUDBase[Bucket]):
    def get_by_name(self, db: Session, name: str) -> Optional[Bucket]:
        return self.query(db).filter(self.model.name == name).first()

    def list_all(self, db: Session) -> List[Bucket]:
        # 按创建时间倒序，最近的在前
        return self.query(db).order_by(self.model.created_at.desc(), self.model.id).all()

    def count(self, db: Session) -> int:
        return int(self.query(db).with_entities(func.count(self.model.id)).scalar() or 0)

    def create_bucket(self, db: Session, *, name: str, access: str) -> Bucket:
        """插入桶记录；名称唯一性由唯一约束保证，冲突时转换为业务异常。"""
        if not name:
            raise AppException("存储桶名称不能为空", HTTP_STATUS_BAD_REQUEST)
        try:
            return self.create(db, {"name": name, "access": access})
        except IntegrityError as exc:
            raise AppException(
                "存储桶名称已存在", HTTP_STATUS_BAD_REQUEST, kind=ErrorKindEnum.CONFLICT
            ) from exc

    def delete_bucket(self, db: Session, bucket_id: str) -> int:
        """在同一事务中删除桶下全部条目与桶本身，返回删除的条目数。

        即便数据库未启用外键级联（例如 SQLite 未打开 pragma），也不会留下孤儿条目。
        """
        bucket = self.get(db, bucket_id)
        if bucket is None:
            raise AppException("存储桶不存在", HTTP_STATUS_NOT_FOUND)
        try:
            removed = (
                db.query(StorageItem)
                .filter(StorageItem.bucket_id == bucket_id)
                .delete(synchronize_session=False)
            )
            db.query(Bucket).filter(Bucket.id == bucket_id).delete(synchronize_session=False)
            db.commit()
        except Exception:
            db.rollback()
            raise
        db.expire_all()
        return int(removed or 0)


bucket_crud = CRUDBucket(Bucket)
