"""安全模块：校验单一共享凭证，支持明文配置与 bcrypt 哈希两种方式。"""

import secrets
from typing import Optional

import bcrypt

from .config import get_settings
from .logger import logger


def get_password_hash(password: str) -> str:
    """对输入密码执行 bcrypt 哈希，生成可写入 ``AUTH_PASSWORD_HASH`` 的字符串。"""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """校验明文密码与已存储哈希值是否匹配，哈希格式非法时视为不匹配。"""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        logger.warning("AUTH_PASSWORD_HASH is not a valid bcrypt hash")
        return False


def verify_credentials(username: Optional[str], password: Optional[str]) -> bool:
    """按字节比较用户名与密码；配置了哈希时密码改用 bcrypt 校验。"""
    if username is None or password is None:
        return False
    settings = get_settings()
    username_ok = secrets.compare_digest(username.encode("utf-8"), settings.auth_username.encode("utf-8"))
    if settings.auth_password_hash:
        password_ok = verify_password(password, settings.auth_password_hash)
    else:
        password_ok = secrets.compare_digest(password.encode("utf-8"), settings.auth_password.encode("utf-8"))
    return username_ok and password_ok
