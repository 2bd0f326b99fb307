"""对象存储业务包：存储桶、条目、内容存储与文件直链。"""

from cloudvault.packages.types import AppPackage

from .api.v1 import api_router
from .core.config import get_settings
from .core.dependencies import get_content_store
from .core.exceptions import generic_exception_handler, http_exception_handler
from .core.logger import logger, setup_logging
from .core.responses import create_error, create_response
from .db.init_db import init_db


def prepare_storage() -> str:
    """构建内容存储实例并返回其描述，供启动日志使用。"""
    return get_content_store().describe()


package = AppPackage(
    name="storage",
    api_router=api_router,
    get_settings=get_settings,
    setup_logging=setup_logging,
    logger=logger,
    init_db=init_db,
    prepare_storage=prepare_storage,
    create_response=create_response,
    create_error=create_error,
    http_exception_handler=http_exception_handler,
    generic_exception_handler=generic_exception_handler,
)

__all__ = ["package", "api_router", "get_settings"]
