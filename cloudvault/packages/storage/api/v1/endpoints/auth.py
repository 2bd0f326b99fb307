"""认证相关路由定义：校验单一共享凭证，服务端不保存会话。"""

from fastapi import APIRouter

from cloudvault.packages.storage.api.v1.schemas.auth import LoginRequest
from cloudvault.packages.storage.api.v1.schemas.common import AckResponse
from cloudvault.packages.storage.core.constants import HTTP_STATUS_OK, HTTP_STATUS_UNAUTHORIZED
from cloudvault.packages.storage.core.exceptions import AppException
from cloudvault.packages.storage.core.logger import logger
from cloudvault.packages.storage.core.responses import create_response
from cloudvault.packages.storage.core.security import verify_credentials

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=AckResponse)
def login(payload: LoginRequest) -> dict:
    """校验凭证；客户端此后在每个受保护请求中携带 Basic 认证头。"""
    if not verify_credentials(payload.username, payload.password):
        logger.info("Rejected login for username=%s", payload.username)
        raise AppException("用户名或密码错误", HTTP_STATUS_UNAUTHORIZED)
    return create_response("登录成功", None, HTTP_STATUS_OK)
