"""存储桶模型。"""

import uuid
from typing import TYPE_CHECKING, List

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cloudvault.packages.storage.core.enums import BucketAccessEnum
from cloudvault.packages.storage.models.base import Base, TimestampMixin

if TYPE_CHECKING:  # pragma: no cover
    from cloudvault.packages.storage.models.item import StorageItem


class Bucket(TimestampMixin, Base):
    """顶层命名容器。

    说明：
    - ``name`` 全局唯一（区分大小写），同时作为内容存储中的根目录名；
    - ``access`` 仅允许取值 "PRIVATE" 与 "PUBLIC"；
    - 删除时级联删除全部条目（数据库外键 + ORM 双重保证）。
    """

    __tablename__ = "buckets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    access: Mapped[str] = mapped_column(
        String(16), nullable=False, default=BucketAccessEnum.PRIVATE.value
    )

    items: Mapped[List["StorageItem"]] = relationship(
        back_populates="bucket",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
