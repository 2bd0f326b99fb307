"""Path utilities: normalize logical paths and validate leaf names.

These helpers centralize the rules shared by the metadata index and the content stores:
- A logical path never starts or ends with '/', the bucket root is the empty string '';
- Duplicate separators are collapsed, '.' and '..' segments are rejected;
- A leaf name is a single segment, never empty, never containing a separator.
"""

from __future__ import annotations

from cloudvault.packages.storage.core.constants import HTTP_STATUS_BAD_REQUEST, PATH_SEPARATOR
from cloudvault.packages.storage.core.exceptions import AppException

_FORBIDDEN_CHARS = ("\\", "\x00")
_RESERVED_SEGMENTS = {".", ".."}


def norm_logical_path(p: str | None) -> str:
    raw = (p or "").strip()
    if any(ch in raw for ch in _FORBIDDEN_CHARS):
        raise AppException("路径包含非法字符", HTTP_STATUS_BAD_REQUEST)
    segments = [seg for seg in raw.split(PATH_SEPARATOR) if seg]
    if any(seg in _RESERVED_SEGMENTS for seg in segments):
        raise AppException("路径不能包含 . 或 .. 段", HTTP_STATUS_BAD_REQUEST)
    return PATH_SEPARATOR.join(segments)


def validate_name(name: str | None, *, label: str = "名称") -> str:
    value = (name or "").strip()
    if not value:
        raise AppException(f"{label}不能为空", HTTP_STATUS_BAD_REQUEST)
    if PATH_SEPARATOR in value or any(ch in value for ch in _FORBIDDEN_CHARS):
        raise AppException(f"{label}不能包含路径分隔符", HTTP_STATUS_BAD_REQUEST)
    if value in _RESERVED_SEGMENTS:
        raise AppException(f"{label}不能为 . 或 ..", HTTP_STATUS_BAD_REQUEST)
    return value


def join_logical(path: str, name: str) -> str:
    """拼接父路径与名称：根目录下直接返回名称。"""
    return f"{path}{PATH_SEPARATOR}{name}" if path else name


def subtree_prefix(location: str) -> str:
    """返回子树匹配前缀，带尾部分隔符以避免 ``docs`` 误匹配 ``docs2``。"""
    return location + PATH_SEPARATOR
