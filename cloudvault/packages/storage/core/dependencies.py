"""依赖注入模块：封装 FastAPI 中复用度高的依赖函数。"""

from collections.abc import Generator
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from cloudvault.packages.storage.core.config import get_settings
from cloudvault.packages.storage.core.constants import HTTP_STATUS_UNAUTHORIZED
from cloudvault.packages.storage.core.exceptions import AppException
from cloudvault.packages.storage.core.security import verify_credentials
from cloudvault.packages.storage.db import session as db_session
from cloudvault.packages.storage.services.content_store import ContentStore, build_content_store
from cloudvault.packages.storage.services.storage_engine import StorageEngine

security_scheme = HTTPBasic(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """生成一个数据库会话，并在请求结束后自动关闭。"""
    db = db_session.SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def _shared_content_store() -> ContentStore:
    return build_content_store(get_settings())


def get_content_store() -> ContentStore:
    """返回进程级共享的内容存储实例，首次调用时按配置构建。"""
    return _shared_content_store()


def get_storage_engine(content_store: ContentStore = Depends(get_content_store)) -> StorageEngine:
    settings = get_settings()
    return StorageEngine(
        content_store,
        max_upload_size=settings.max_upload_size,
        chunk_size=settings.upload_chunk_size,
    )


async def is_authenticated(request: Request) -> bool:
    """解析 ``Authorization: Basic`` 头部并返回凭证是否有效，不抛出异常。

    头部缺失、格式错误或凭证不匹配一律视为匿名访问，是否放行交由访问闸门决定。
    """
    try:
        credentials = await security_scheme(request)
    except HTTPException:
        return False
    if credentials is None:
        return False
    return await run_in_threadpool(verify_credentials, credentials.username, credentials.password)


def require_credentials(credentials: Optional[HTTPBasicCredentials] = Depends(security_scheme)) -> str:
    """受保护接口使用：缺少或错误凭证时抛出 401，成功时返回用户名。"""
    if credentials is None:
        raise AppException("缺少认证信息", HTTP_STATUS_UNAUTHORIZED)
    if not verify_credentials(credentials.username, credentials.password):
        raise AppException("用户名或密码错误", HTTP_STATUS_UNAUTHORIZED)
    return credentials.username
