"""
结构化日志配置

- 非开发环境输出单行 JSON，便于日志平台检索
- 开发环境输出带颜色的可读格式
- 请求 ID / 租户 ID / 用户 ID 通过 contextvars 绑定到当前请求，所有日志自动附带

使用示例：
    from radar.infra.logging import setup_logging, get_logger, bind_log_context

    setup_logging()
    bind_log_context(request_id="abc", tenant_id="t-1")
    logger = get_logger(__name__)
    logger.info("日记已创建", extra={"entry_id": "xxx"})
"""

import json
import logging
import sys
import time
from contextvars import ContextVar
from datetime import datetime, timezone

from radar.config import get_settings

LOG_CONTEXT_KEYS = ("request_id", "tenant_id", "user_id")

_context: dict[str, ContextVar[str | None]] = {
    key: ContextVar(f"radar_{key}", default=None) for key in LOG_CONTEXT_KEYS
}

# 这些 LogRecord 属性不作为 extra 输出
_RECORD_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}

_NOISY_LOGGERS = ("uvicorn.access", "uvicorn.error", "httpx", "httpcore", "openai", "stripe", "sqlalchemy.engine")


def bind_log_context(**values: str | None) -> None:
    """绑定当前请求的上下文字段，传 None 表示清空"""
    for key, value in values.items():
        if key not in _context:
            raise KeyError(f"Unknown log context field: {key}")
        _context[key].set(value)


def clear_log_context() -> None:
    for var in _context.values():
        var.set(None)


def get_log_context() -> dict[str, str]:
    """当前请求已绑定的上下文字段（忽略空值）"""
    return {key: var.get() for key, var in _context.items() if var.get()}


def get_request_id() -> str | None:
    return _context["request_id"].get()


def _record_extra(record: logging.LogRecord) -> dict:
    return {
        key: value for key, value in vars(record).items()
        if key not in _RECORD_FIELDS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """单行 JSON：time / level / logger / message + 请求上下文 + extra"""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **get_log_context(),
        }
        extra = _record_extra(record)
        if extra:
            payload["extra"] = extra
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """开发环境格式：`12:00:00 INFO     [a1b2c3d4] radar.services.journal: 日记已创建`"""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        request_id = get_request_id()
        trace = f" [{request_id[:8]}]" if request_id else ""

        line = f"{clock} {color}{record.levelname:<8}\033[0m{trace} {record.name}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(level: str | None = None, json_format: bool | None = None) -> None:
    """
    配置根日志器

    Args:
        level: 日志级别，默认读取 LOG_LEVEL
        json_format: 是否输出 JSON；未指定时读取 LOG_JSON，仍未配置则开发/测试环境用彩色输出
    """
    settings = get_settings()
    log_level = logging.getLevelName((level or settings.log_level).upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    if json_format is None:
        json_format = settings.log_json
    if json_format is None:
        json_format = settings.environment not in ("dev", "development", "test")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_format else ConsoleFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


class RequestTimer:
    """单调时钟计时，毫秒精度"""

    def __init__(self):
        self._started = time.perf_counter()

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self._started) * 1000)
