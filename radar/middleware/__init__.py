"""
中间件模块

- RequestTraceMiddleware: 请求追踪和日志记录
- AuditLogMiddleware: 管理接口审计
"""

from radar.middleware.audit import AuditLogMiddleware
from radar.middleware.request_trace import RequestTraceMiddleware

__all__ = ["AuditLogMiddleware", "RequestTraceMiddleware"]
