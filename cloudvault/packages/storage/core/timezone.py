"""时区工具方法：统一时间戳的生成与 ISO-8601 序列化。"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from zoneinfo import ZoneInfo

from cloudvault.packages.storage.core.config import get_settings


def get_timezone() -> ZoneInfo:
    """返回配置指定的时区信息。"""
    return get_settings().timezone_info


def utcnow() -> datetime:
    """返回带时区信息的当前 UTC 时间，用于持久化字段。"""
    return datetime.now(timezone.utc)


def to_local(value: Optional[datetime]) -> Optional[datetime]:
    """将 ``datetime`` 转换为配置时区。

    SQLite 不保存时区信息，读回的无时区对象一律按 UTC 解释。
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(get_timezone())


def format_iso(value: Optional[datetime]) -> Optional[str]:
    """将时间格式化为 ISO-8601 字符串（毫秒精度）。"""
    localized = to_local(value)
    if localized is None:
        return None
    return localized.isoformat(timespec="milliseconds")
