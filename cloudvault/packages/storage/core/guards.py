"""访问闸门：根据存储桶访问级别与调用方认证状态给出读取许可。

公开桶内的文件允许匿名读取；私有桶必须携带有效凭证。
"""

from __future__ import annotations

from cloudvault.packages.storage.core.constants import HTTP_STATUS_UNAUTHORIZED
from cloudvault.packages.storage.core.enums import BucketAccessEnum
from cloudvault.packages.storage.core.exceptions import AppException


def is_public_bucket(bucket: object) -> bool:
    access = getattr(bucket, "access", None)
    return str(access or "").upper() == BucketAccessEnum.PUBLIC.value


def can_read_bucket(bucket: object, *, authenticated: bool) -> bool:
    return authenticated or is_public_bucket(bucket)


def ensure_bucket_readable(bucket: object, *, authenticated: bool) -> None:
    if not can_read_bucket(bucket, authenticated=authenticated):
        raise AppException("访问私有存储桶需要有效凭证", HTTP_STATUS_UNAUTHORIZED)
