"""日志配置模块：控制台、滚动文件与请求 ID 的统一装配。

控制台只给级别名着色，文件始终输出无颜色文本或 JSON；
每条记录都带上当前请求的 ``request_id``，便于把引擎日志与 HTTP 请求对应起来。
"""

import json
import logging
import logging.config
import sys
from contextvars import ContextVar
from datetime import datetime
from typing import Any, Dict, Optional

from .config import Settings, get_settings

LOGGER_NAME = "cloudvault"
_NO_REQUEST = "-"

# 由本模块接管输出的第三方日志器；sqlalchemy 的 SQL 回显由 DATABASE_ECHO 控制
_MANAGED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", LOGGER_NAME)

# LogRecord 的内置属性，JSON 输出时用于分离 ``extra`` 字段
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "request_id"}

_request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        record.request_id = _request_id_ctx.get() or _NO_REQUEST
        return True


class ZonedFormatter(logging.Formatter):
    """按配置时区渲染时间戳，未指定 datefmt 时输出毫秒精度的 ISO-8601。"""

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:  # noqa: N802
        stamp = datetime.fromtimestamp(record.created, get_settings().timezone_info)
        return stamp.strftime(datefmt) if datefmt else stamp.isoformat(sep=" ", timespec="milliseconds")


class LevelColorFormatter(ZonedFormatter):
    """仅为级别名着色，消息正文保持原样，方便复制。"""

    RESET = "\033[0m"
    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;41m",
    }

    def __init__(self, fmt: str, datefmt: Optional[str] = None, use_colors: Optional[bool] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_colors = sys.stderr.isatty() if use_colors is None else use_colors

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname) if self.use_colors else None
        if not color:
            return super().format(record)
        original = record.levelname
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class JsonFormatter(ZonedFormatter):
    """每行一个 JSON 对象；通过 ``extra=`` 传入的字段原样附加。"""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", _NO_REQUEST),
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def build_logging_config(settings: Settings) -> Dict[str, Any]:
    """根据配置生成 ``dictConfig`` 所需的字典。"""
    text_format = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"
    module = __name__
    file_formatter = "json" if settings.log_json else "text"
    handler_common = {"level": settings.log_level, "filters": ["request_id"]}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_id": {"()": f"{module}.RequestIdFilter"}},
        "formatters": {
            "console": {"()": f"{module}.LevelColorFormatter", "fmt": text_format},
            "text": {"()": f"{module}.ZonedFormatter", "fmt": text_format},
            "json": {"()": f"{module}.JsonFormatter"},
        },
        "handlers": {
            "console": {
                **handler_common,
                "class": "logging.StreamHandler",
                "formatter": "json" if settings.log_json else "console",
            },
            "file": {
                **handler_common,
                "class": "logging.handlers.TimedRotatingFileHandler",
                "formatter": file_formatter,
                "filename": str(settings.log_file_path),
                "when": "midnight",
                "backupCount": settings.log_backup_count,
                "encoding": "utf-8",
                "delay": True,
            },
        },
        "loggers": {
            name: {"handlers": ["console", "file"], "level": settings.log_level, "propagate": False}
            for name in _MANAGED_LOGGERS
        },
        "root": {"handlers": ["console", "file"], "level": settings.log_level},
    }


def setup_logging() -> None:
    """初始化日志系统；日志目录不存在时自动创建。"""
    settings = get_settings()
    settings.log_directory.mkdir(parents=True, exist_ok=True)
    logging.config.dictConfig(build_logging_config(settings))


logger = logging.getLogger(LOGGER_NAME)
