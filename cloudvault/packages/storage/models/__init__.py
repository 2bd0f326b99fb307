"""模型包初始化，便于统一导入 ORM 实体并触发模型注册。"""

from cloudvault.packages.storage.models.bucket import Bucket
from cloudvault.packages.storage.models.item import StorageItem

__all__ = ["Bucket", "StorageItem"]
