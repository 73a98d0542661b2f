"""
AI 用量统计

基于 AIUsageLog 汇总最近 N 天的调用次数、失败次数、token 和平均延迟，
按提供商和按功能两个维度分组，供租户管理台查看成本。
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.models import AIUsageLog


async def _group_by(session: AsyncSession, column, conditions: list) -> list[dict[str, Any]]:
    result = await session.execute(
        select(
            column.label("key"),
            func.count(AIUsageLog.id).label("calls"),
            func.sum(case((AIUsageLog.success.is_(False), 1), else_=0)).label("failures"),
            func.coalesce(func.sum(AIUsageLog.tokens_input), 0).label("tokens_input"),
            func.coalesce(func.sum(AIUsageLog.tokens_output), 0).label("tokens_output"),
            func.avg(AIUsageLog.latency_ms).label("avg_latency_ms"),
        )
        .where(*conditions)
        .group_by(column)
        .order_by(func.count(AIUsageLog.id).desc())
    )
    return [
        {
            "key": row.key,
            "calls": row.calls,
            "failures": int(row.failures or 0),
            "tokens_input": int(row.tokens_input),
            "tokens_output": int(row.tokens_output),
            "avg_latency_ms": round(float(row.avg_latency_ms or 0), 2),
        }
        for row in result.all()
    ]


async def summarize_usage(session: AsyncSession, tenant_id: str, *, days: int = 30) -> dict[str, Any]:
    since = datetime.now(timezone.utc) - timedelta(days=days)
    conditions = [AIUsageLog.tenant_id == tenant_id, AIUsageLog.created_at >= since]

    by_provider = await _group_by(session, AIUsageLog.provider, conditions)
    by_feature = await _group_by(session, AIUsageLog.feature_key, conditions)

    return {
        "days": days,
        "total_calls": sum(b["calls"] for b in by_provider),
        "total_failures": sum(b["failures"] for b in by_provider),
        "total_tokens": sum(b["tokens_input"] + b["tokens_output"] for b in by_provider),
        "by_provider": by_provider,
        "by_feature": by_feature,
    }
