"""存储条目模型：文件与文件夹共用一张扁平表。"""

import uuid
from typing import TYPE_CHECKING, Optional

from sqlalchemy import BigInteger, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cloudvault.packages.storage.models.base import Base, TimestampMixin

if TYPE_CHECKING:  # pragma: no cover
    from cloudvault.packages.storage.models.bucket import Bucket


class StorageItem(TimestampMixin, Base):
    """文件或文件夹记录。

    ``path`` 保存的是父目录的逻辑路径（根目录为空字符串），条目的完整位置为
    ``path/name``。文件夹是虚拟的：子条目只通过自身 ``path`` 与之匹配，表中没有
    父级 ID 回指。``storage_path``、``mime_type`` 与 ``size`` 仅对文件有意义。
    """

    __tablename__ = "items"
    __table_args__ = (
        UniqueConstraint("bucket_id", "path", "name", name="uq_items_bucket_id_path_name"),
        Index("ix_items_bucket_id_path", "bucket_id", "path"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    bucket_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("buckets.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # "file" or "folder"
    path: Mapped[str] = mapped_column(String(1024), nullable=False, default="")

    # file only
    storage_path: Mapped[Optional[str]] = mapped_column(String(1280), nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    bucket: Mapped["Bucket"] = relationship(back_populates="items")
