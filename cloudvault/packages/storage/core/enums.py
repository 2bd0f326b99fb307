"""枚举定义：约束存储桶访问级别、条目类型与错误分类的可选值。"""

from enum import Enum


class BucketAccessEnum(str, Enum):
    """存储桶访问级别：公开桶允许匿名读取其中的文件。"""

    PRIVATE = "PRIVATE"
    PUBLIC = "PUBLIC"


class ItemTypeEnum(str, Enum):
    FILE = "file"
    FOLDER = "folder"


class ErrorKindEnum(str, Enum):
    """返回给调用方的机器可读错误类型。"""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    PAYLOAD_TOO_LARGE = "payload_too_large"
    INCONSISTENCY = "inconsistency"
    INTERNAL = "internal"
