"""
管理操作审计

AuditLogMiddleware 在后台任务中调用 record_audit_log 写入；
租户管理台 /v1/admin/audit-logs 通过 query_audit_logs / get_audit_stats 查询。
"""

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.infra.logging import get_logger
from radar.models import AuditLog

logger = get_logger(__name__)

REDACTED = "***"
SENSITIVE_FIELDS = frozenset({"password", "api_key", "token", "secret", "authorization", "key"})
MAX_PARAM_LENGTH = 200
MAX_USER_AGENT_LENGTH = 500


def sanitize_params(params: dict | None, max_length: int = MAX_PARAM_LENGTH) -> dict | None:
    """隐藏敏感字段，截断过长的值；空参数返回 None"""
    if not params:
        return None

    def clean(key: str, value):
        if key.lower() in SENSITIVE_FIELDS:
            return REDACTED
        if isinstance(value, str) and len(value) > max_length:
            return f"{value[:max_length]}..."
        return value

    return {key: clean(key, value) for key, value in params.items()}


async def record_audit_log(
    session: AsyncSession,
    *,
    request_id: str,
    action: str,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    query_params: dict | None = None,
    user_agent: str | None = None,
    **fields,
) -> AuditLog:
    """加入会话但不提交；fields 透传 tenant_id、user_id、resource_*、ip_address 等列"""
    log = AuditLog(
        id=str(uuid.uuid4()),
        request_id=request_id,
        action=action,
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
        query_params=sanitize_params(query_params),
        user_agent=user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None,
        **fields,
    )
    session.add(log)
    logger.debug(f"audit {action} {method} {path} {status_code}")
    return log


def _filters(
    tenant_id: str | None,
    *,
    user_id: str | None = None,
    action: str | None = None,
    resource_type: str | None = None,
    status_code: int | None = None,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
) -> list:
    equals = {
        AuditLog.tenant_id: tenant_id,
        AuditLog.user_id: user_id,
        AuditLog.action: action,
        AuditLog.resource_type: resource_type,
        AuditLog.status_code: status_code,
    }
    conditions = [column == value for column, value in equals.items() if value is not None]
    if start_time is not None:
        conditions.append(AuditLog.created_at >= start_time)
    if end_time is not None:
        conditions.append(AuditLog.created_at <= end_time)
    return conditions


async def query_audit_logs(
    session: AsyncSession,
    *,
    tenant_id: str | None = None,
    limit: int = 100,
    offset: int = 0,
    **filters,
) -> list[AuditLog]:
    """按租户和可选条件（user_id / action / resource_type / status_code / 时间范围）倒序查询"""
    query = (
        select(AuditLog)
        .where(*_filters(tenant_id, **filters))
        .order_by(AuditLog.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    result = await session.execute(query)
    return list(result.scalars().all())


async def get_audit_stats(session: AsyncSession, *, tenant_id: str | None = None, hours: int = 24) -> dict:
    since = datetime.now(timezone.utc) - timedelta(hours=hours)
    conditions = _filters(tenant_id, start_time=since)

    totals = await session.execute(
        select(
            func.count(AuditLog.id),
            func.coalesce(func.sum(case((AuditLog.status_code >= 400, 1), else_=0)), 0),
            func.avg(AuditLog.duration_ms),
        ).where(*conditions)
    )
    total, errors, avg_duration = totals.one()

    per_action = await session.execute(
        select(AuditLog.action, func.count(AuditLog.id)).where(*conditions).group_by(AuditLog.action)
    )

    return {
        "period_hours": hours,
        "total_requests": total,
        "error_requests": int(errors),
        "error_rate": errors / total if total else 0.0,
        "avg_duration_ms": round(float(avg_duration or 0), 2),
        "by_action": dict(per_action.all()),
    }
