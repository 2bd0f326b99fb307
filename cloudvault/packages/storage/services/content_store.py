"""内容存储抽象与实现：统一封装本地文件系统与 S3 的字节读写。

内容存储只认识 ``(桶名, 相对路径)``，不感知任何元数据；
所有操作都是幂等的副作用 I/O，删除不存在的目标视为成功。
"""

from __future__ import annotations

import os
import shutil
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, Iterator, Optional, Union

import boto3
from botocore.exceptions import ClientError

from cloudvault.packages.storage.core.config import Settings
from cloudvault.packages.storage.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_CONFLICT,
    HTTP_STATUS_INTERNAL_SERVER_ERROR,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_PAYLOAD_TOO_LARGE,
    PARTIAL_UPLOAD_PREFIX,
    PARTIAL_UPLOAD_SUFFIX,
    PATH_SEPARATOR,
    S3_DELETE_BATCH_SIZE,
)
from cloudvault.packages.storage.core.exceptions import AppException
from cloudvault.packages.storage.core.logger import logger
from cloudvault.packages.storage.utils.path_utils import join_logical, norm_logical_path, validate_name

DEFAULT_CHUNK_SIZE = 1024 * 1024

Source = Union[bytes, bytearray, BinaryIO, Iterable[bytes]]
ProgressCallback = Callable[[int], None]


def iter_chunks(source: Source, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """将字节串、类文件对象或字节块迭代器统一转换为定长分块。"""
    if isinstance(source, (bytes, bytearray)):
        for start in range(0, len(source), chunk_size):
            yield bytes(source[start : start + chunk_size])
        return
    read = getattr(source, "read", None)
    if callable(read):
        while True:
            chunk = read(chunk_size)
            if not chunk:
                break
            yield chunk
        return
    for chunk in source:
        if chunk:
            yield chunk


def _too_large(limit: int) -> AppException:
    return AppException(f"文件大小超过上限（{limit} 字节）", HTTP_STATUS_PAYLOAD_TOO_LARGE)


def _path_blocked(location: str) -> AppException:
    return AppException(f"内容存储中的路径“{location}”已被占用", HTTP_STATUS_CONFLICT)


class ContentStore:
    """内容存储接口。"""

    def ensure_bucket_namespace(self, bucket_name: str) -> None:
        raise NotImplementedError

    def namespace_exists(self, bucket_name: str) -> bool:
        raise NotImplementedError

    def ensure_path(self, bucket_name: str, logical_path: str) -> None:
        raise NotImplementedError

    def write(
        self,
        bucket_name: str,
        logical_path: str,
        file_name: str,
        source: Source,
        *,
        on_progress: Optional[ProgressCallback] = None,
        max_bytes: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> int:
        raise NotImplementedError

    def read_stream(self, bucket_name: str, physical_path: str, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        raise NotImplementedError

    def exists(self, bucket_name: str, physical_path: str) -> bool:
        raise NotImplementedError

    def delete_one(self, bucket_name: str, logical_path: str, file_name: str) -> bool:
        raise NotImplementedError

    def delete_subtree(self, bucket_name: str, logical_path: str, name: str) -> bool:
        raise NotImplementedError

    def delete_bucket_namespace(self, bucket_name: str) -> bool:
        raise NotImplementedError

    def walk(self, bucket_name: str) -> Iterator[str]:
        """遍历桶命名空间下的全部文件，返回相对桶根的路径。"""
        raise NotImplementedError

    def describe(self) -> str:
        return self.__class__.__name__


# ------------------------------------------
# 本地文件系统实现
# ------------------------------------------


class LocalContentStore(ContentStore):
    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()
        if not self.root.exists():
            try:
                self.root.mkdir(parents=True, exist_ok=True)
            except OSError as exc:  # pragma: no cover - 极端情况下可能失败
                raise AppException(
                    f"无法创建本地存储根目录: {exc}", HTTP_STATUS_INTERNAL_SERVER_ERROR
                ) from exc

    def describe(self) -> str:
        return f"local:{self.root}"

    def _bucket_root(self, bucket_name: str) -> Path:
        safe_bucket = validate_name(bucket_name, label="存储桶名称")
        return self.root / safe_bucket

    # 统一的安全路径拼接，防止路径遍历
    def _resolve(self, bucket_name: str, rel: str = "") -> Path:
        base = self._bucket_root(bucket_name)
        rel_norm = norm_logical_path(rel)
        candidate = (base / rel_norm).resolve() if rel_norm else base.resolve()
        try:
            candidate.relative_to(base.resolve())
        except ValueError as exc:
            raise AppException("非法路径: 越权访问", HTTP_STATUS_BAD_REQUEST) from exc
        return candidate

    def ensure_bucket_namespace(self, bucket_name: str) -> None:
        self._bucket_root(bucket_name).mkdir(parents=True, exist_ok=True)

    def namespace_exists(self, bucket_name: str) -> bool:
        return self._bucket_root(bucket_name).is_dir()

    def ensure_path(self, bucket_name: str, logical_path: str) -> None:
        self._resolve(bucket_name, logical_path).mkdir(parents=True, exist_ok=True)

    def write(
        self,
        bucket_name: str,
        logical_path: str,
        file_name: str,
        source: Source,
        *,
        on_progress: Optional[ProgressCallback] = None,
        max_bytes: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> int:
        """分块写入临时文件，完成后原子替换目标文件；中途失败不会留下可见的半截文件。"""
        target = self._resolve(bucket_name, join_logical(norm_logical_path(logical_path), file_name))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except (FileExistsError, NotADirectoryError) as exc:
            raise _path_blocked(logical_path) from exc
        if target.is_dir():
            raise _path_blocked(join_logical(norm_logical_path(logical_path), file_name))
        fd, tmp_name = tempfile.mkstemp(
            dir=str(target.parent), prefix=PARTIAL_UPLOAD_PREFIX, suffix=PARTIAL_UPLOAD_SUFFIX
        )
        written = 0
        try:
            with os.fdopen(fd, "wb") as fh:
                for chunk in iter_chunks(source, chunk_size):
                    written += len(chunk)
                    if max_bytes is not None and written > max_bytes:
                        raise _too_large(max_bytes)
                    fh.write(chunk)
                    if on_progress is not None:
                        on_progress(written)
            os.replace(tmp_name, target)
        except BaseException:
            with suppress(FileNotFoundError):
                os.unlink(tmp_name)
            raise
        return written

    def read_stream(self, bucket_name: str, physical_path: str, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        target = self._resolve(bucket_name, physical_path)
        if not target.is_file():
            raise AppException("文件不存在", HTTP_STATUS_NOT_FOUND)
        return self._iter_file(target, chunk_size)

    @staticmethod
    def _iter_file(target: Path, chunk_size: int) -> Iterator[bytes]:
        with open(target, "rb") as fh:
            while True:
                chunk = fh.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    def exists(self, bucket_name: str, physical_path: str) -> bool:
        return self._resolve(bucket_name, physical_path).is_file()

    def delete_one(self, bucket_name: str, logical_path: str, file_name: str) -> bool:
        target = self._resolve(bucket_name, join_logical(norm_logical_path(logical_path), file_name))
        if not target.is_file():
            return False
        # 允许并发删除：文件已被他人删除时视为成功
        with suppress(FileNotFoundError):
            target.unlink()
        return True

    def delete_subtree(self, bucket_name: str, logical_path: str, name: str) -> bool:
        target = self._resolve(bucket_name, join_logical(norm_logical_path(logical_path), name))
        if not target.exists():
            return False
        if target.is_dir():
            shutil.rmtree(target)
        else:
            target.unlink()
        return True

    def delete_bucket_namespace(self, bucket_name: str) -> bool:
        base = self._bucket_root(bucket_name)
        if not base.exists():
            return False
        shutil.rmtree(base)
        return True

    def walk(self, bucket_name: str) -> Iterator[str]:
        base = self._bucket_root(bucket_name)
        if not base.is_dir():
            return
        for entry in sorted(base.rglob("*")):
            if not entry.is_file():
                continue
            if entry.name.startswith(PARTIAL_UPLOAD_PREFIX) and entry.name.endswith(PARTIAL_UPLOAD_SUFFIX):
                continue
            yield entry.relative_to(base).as_posix()


# ------------------------------------------
# S3 实现（boto3）
# ------------------------------------------


class _CountingReader:
    """包装上传源，在 boto3 逐块读取时累计字节数并执行大小上限校验。"""

    def __init__(self, source: Source, *, chunk_size: int, on_progress: Optional[ProgressCallback], max_bytes: Optional[int]):
        self._chunks = iter_chunks(source, chunk_size)
        self._buffer = b""
        self._on_progress = on_progress
        self._max_bytes = max_bytes
        self.total = 0

    def read(self, size: int = -1) -> bytes:
        while size < 0 or len(self._buffer) < size:
            chunk = next(self._chunks, None)
            if chunk is None:
                break
            self._buffer += chunk
        if size < 0:
            data, self._buffer = self._buffer, b""
        else:
            data, self._buffer = self._buffer[:size], self._buffer[size:]
        if data:
            self.total += len(data)
            if self._max_bytes is not None and self.total > self._max_bytes:
                raise _too_large(self._max_bytes)
            if self._on_progress is not None:
                self._on_progress(self.total)
        return data


class S3ContentStore(ContentStore):
    """对象键布局：``<prefix>/<桶名>/<逻辑路径>``；目录以 ``/`` 结尾的占位对象表示。"""

    def __init__(
        self,
        *,
        bucket: str,
        region: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        prefix: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client=None,
    ):
        self.bucket = bucket
        self.prefix = (prefix or "").strip(PATH_SEPARATOR)
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    def describe(self) -> str:
        return f"s3://{self.bucket}/{self.prefix}"

    # 拼接基于 prefix 的对象 key
    def _key(self, bucket_name: str, rel: str = "") -> str:
        parts = [self.prefix, validate_name(bucket_name, label="存储桶名称"), norm_logical_path(rel)]
        return PATH_SEPARATOR.join(part for part in parts if part)

    def _namespace_prefix(self, bucket_name: str) -> str:
        return self._key(bucket_name) + PATH_SEPARATOR

    @staticmethod
    def _is_missing(exc: ClientError) -> bool:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        return code in {"404", "NoSuchKey", "NotFound"}

    def ensure_bucket_namespace(self, bucket_name: str) -> None:
        self._client.put_object(Bucket=self.bucket, Key=self._namespace_prefix(bucket_name), Body=b"")

    def namespace_exists(self, bucket_name: str) -> bool:
        resp = self._client.list_objects_v2(
            Bucket=self.bucket, Prefix=self._namespace_prefix(bucket_name), MaxKeys=1
        )
        return int(resp.get("KeyCount") or 0) > 0

    def ensure_path(self, bucket_name: str, logical_path: str) -> None:
        rel = norm_logical_path(logical_path)
        if not rel:
            self.ensure_bucket_namespace(bucket_name)
            return
        self._client.put_object(Bucket=self.bucket, Key=self._key(bucket_name, rel) + PATH_SEPARATOR, Body=b"")

    def write(
        self,
        bucket_name: str,
        logical_path: str,
        file_name: str,
        source: Source,
        *,
        on_progress: Optional[ProgressCallback] = None,
        max_bytes: Optional[int] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> int:
        """流式上传；S3 仅在上传完成后才让对象可见，中途失败不会留下半截对象。"""
        key = self._key(bucket_name, join_logical(norm_logical_path(logical_path), file_name))
        reader = _CountingReader(source, chunk_size=chunk_size, on_progress=on_progress, max_bytes=max_bytes)
        self._client.upload_fileobj(reader, self.bucket, key)
        return reader.total

    def read_stream(self, bucket_name: str, physical_path: str, *, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
        key = self._key(bucket_name, physical_path)
        try:
            resp = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if self._is_missing(exc):
                raise AppException("文件不存在", HTTP_STATUS_NOT_FOUND) from exc
            raise
        return resp["Body"].iter_chunks(chunk_size)

    def exists(self, bucket_name: str, physical_path: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=self._key(bucket_name, physical_path))
        except ClientError as exc:
            if self._is_missing(exc):
                return False
            raise
        return True

    def delete_one(self, bucket_name: str, logical_path: str, file_name: str) -> bool:
        rel = join_logical(norm_logical_path(logical_path), file_name)
        if not self.exists(bucket_name, rel):
            return False
        self._client.delete_object(Bucket=self.bucket, Key=self._key(bucket_name, rel))
        return True

    def delete_subtree(self, bucket_name: str, logical_path: str, name: str) -> bool:
        rel = join_logical(norm_logical_path(logical_path), name)
        return self._delete_prefix(self._key(bucket_name, rel) + PATH_SEPARATOR) > 0

    def delete_bucket_namespace(self, bucket_name: str) -> bool:
        return self._delete_prefix(self._namespace_prefix(bucket_name)) > 0

    def walk(self, bucket_name: str) -> Iterator[str]:
        prefix = self._namespace_prefix(bucket_name)
        for key in self._iter_keys(prefix):
            if key.endswith(PATH_SEPARATOR):
                continue
            yield key[len(prefix) :]

    def _iter_keys(self, prefix: str) -> Iterator[str]:
        paginator = self._client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                yield obj["Key"]

    def _delete_prefix(self, prefix: str) -> int:
        keys = [{"Key": key} for key in self._iter_keys(prefix)]
        # 批量删除（分批防止一次过多）
        for i in range(0, len(keys), S3_DELETE_BATCH_SIZE):
            batch = keys[i : i + S3_DELETE_BATCH_SIZE]
            self._client.delete_objects(Bucket=self.bucket, Delete={"Objects": batch, "Quiet": True})
        return len(keys)


def build_content_store(settings: Settings) -> ContentStore:
    t = (settings.storage_backend or "").upper()
    if t == "LOCAL":
        return LocalContentStore(settings.storage_root)
    if t == "S3":
        if not settings.s3_bucket:
            raise AppException("S3 配置不完整：缺少 S3_BUCKET", HTTP_STATUS_BAD_REQUEST)
        logger.info("Using S3 content store bucket=%s prefix=%s", settings.s3_bucket, settings.s3_prefix)
        return S3ContentStore(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            access_key_id=settings.s3_access_key_id,
            secret_access_key=settings.s3_secret_access_key,
            prefix=settings.s3_prefix,
            endpoint_url=settings.s3_endpoint_url,
        )
    raise AppException("不支持的存储类型", HTTP_STATUS_BAD_REQUEST)
