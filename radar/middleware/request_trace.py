"""
请求追踪中间件

- 沿用调用方的 X-Request-ID，没有则生成
- 响应头返回 X-Request-ID 和 X-Response-Time
- 按状态码决定日志级别，健康检查不记 info
"""

import logging
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from radar.infra.logging import RequestTimer, bind_log_context, clear_log_context, get_logger

logger = get_logger(__name__)

QUIET_PATHS = ("/healthz", "/favicon.ico")


def _level_for(status_code: int, path: str) -> int | None:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    if path in QUIET_PATHS:
        return None
    return logging.INFO


class RequestTraceMiddleware(BaseHTTPMiddleware):

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        clear_log_context()
        bind_log_context(request_id=request_id)

        timer = RequestTimer()
        path = request.url.path
        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                f"{request.method} {path} failed after {timer.elapsed_ms()}ms",
                extra={"method": request.method, "path": path, "error": str(e)},
            )
            raise

        elapsed = timer.elapsed_ms()
        level = _level_for(response.status_code, path)
        if level is not None:
            logger.log(
                level,
                f"{request.method} {path} {response.status_code} {elapsed}ms",
                extra={
                    "method": request.method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": elapsed,
                },
            )

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed}ms"
        return response
