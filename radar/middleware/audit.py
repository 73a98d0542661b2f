"""
审计日志中间件

记录平台管理（/admin）和租户管理台（/v1/admin）的每次调用。
写入在后台任务中完成，不影响响应时间；写入失败只记日志。
"""

import asyncio
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from radar.db.session import SessionLocal
from radar.infra.logging import get_logger, get_request_id
from radar.services.audit import record_audit_log

logger = get_logger(__name__)

# 前缀 → 操作名前缀，按顺序匹配
AUDIT_PREFIXES = (
    ("/v1/admin/", "admin"),
    ("/admin/", "platform"),
)

_METHOD_VERBS = {
    "GET": "read",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}

# 以动作结尾的路径（POST /admin/tenants/{id}/disable → platform_tenant_disable）
_ACTION_SEGMENTS = {"disable", "enable", "revoke", "resolve", "graph", "revert", "features"}


def _singular(segment: str) -> str:
    segment = segment.replace("-", "_")
    if segment.endswith("ies"):
        return segment[:-3] + "y"
    if segment.endswith("s") and not segment.endswith("ss"):
        return segment[:-1]
    return segment


def _parse_path(method: str, path: str) -> tuple[str, str | None, str | None] | None:
    """
    解析管理路径

    Returns:
        (action, resource_type, resource_id)，不需要审计的路径返回 None
    """
    for prefix, action_prefix in AUDIT_PREFIXES:
        if not (path + "/").startswith(prefix):
            continue

        segments = [s for s in path[len(prefix):].split("/") if s]
        if not segments:
            return f"{action_prefix}_{_METHOD_VERBS.get(method, method.lower())}", None, None

        resource_type = _singular(segments[0])
        resource_id = segments[1] if len(segments) > 1 else None

        verb = _METHOD_VERBS.get(method, method.lower())
        last = segments[-1]
        if len(segments) > 2 and last in _ACTION_SEGMENTS and method != "GET":
            verb = last
        elif len(segments) > 2 and method != "DELETE":
            # 子资源：/v1/admin/ai-flows/{id}/versions → admin_ai_flow_version_read
            resource_type = f"{resource_type}_{_singular(segments[2])}"

        return f"{action_prefix}_{resource_type}_{verb}", resource_type, resource_id

    return None


def _get_action_from_path(method: str, path: str) -> str | None:
    parsed = _parse_path(method, path)
    return parsed[0] if parsed else None


class AuditLogMiddleware(BaseHTTPMiddleware):
    """管理接口审计中间件"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        parsed = _parse_path(request.method, request.url.path)
        if parsed is None:
            return await call_next(request)

        action, resource_type, resource_id = parsed
        request_id = get_request_id() or "unknown"
        start_time = time.time()

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000

        # 认证依赖把操作人信息写在 request.state 上
        tenant_id = getattr(request.state, "tenant_id", None)
        user_id = getattr(request.state, "user_id", None)

        asyncio.create_task(
            self._record_audit(
                request_id=request_id,
                tenant_id=tenant_id,
                user_id=user_id,
                action=action,
                resource_type=resource_type,
                resource_id=resource_id,
                method=request.method,
                path=request.url.path,
                query_params=dict(request.query_params) or None,
                status_code=response.status_code,
                duration_ms=duration_ms,
                ip_address=request.client.host if request.client else None,
                user_agent=request.headers.get("user-agent"),
            )
        )

        return response

    async def _record_audit(self, **fields) -> None:
        try:
            async with SessionLocal() as session:
                await record_audit_log(session, **fields)
                await session.commit()
        except Exception as e:
            logger.warning(f"审计日志写入失败: {e}")
