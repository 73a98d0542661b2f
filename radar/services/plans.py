"""
套餐与功能额度服务

负责回答两个问题：
1. 这个用户能不能用某个功能？额度是多少？（effective limits）
2. 这次调用是否超额？未超额则记录一次用量（check_and_record）

额度来源优先级：
    用户覆盖 (FeatureOverride) > 有效订阅的套餐 > 租户默认套餐 > free

用量统计周期：
- 日：当天 00:00 (UTC) 起
- 周：本周日 00:00 起
- 月：本月 1 日 00:00 起

套餐额度用完时，自动尝试消耗对应功能的加购包额度。
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.exceptions import FeatureDisabledError, PlanLimitError
from radar.infra.logging import get_logger
from radar.models import (
    AddonPurchase,
    FeatureOverride,
    FeatureUsage,
    Plan,
    PlanFeature,
    Subscription,
    Tenant,
    User,
)
from radar.models.subscription import LIVE_SUBSCRIPTION_STATUSES
from radar.services import addons as addon_service

logger = get_logger(__name__)

DEFAULT_PLAN_SLUG = "free"


@dataclass
class FeatureLimits:
    """一个功能的有效额度，None 表示该周期不限制"""
    daily: int | None = None
    weekly: int | None = None
    monthly: int | None = None
    source: str = "plan"  # plan / override / revoked

    @property
    def revoked(self) -> bool:
        return self.source == "revoked"

    @property
    def unlimited(self) -> bool:
        if self.revoked:
            return False
        return self.daily is None and self.weekly is None and self.monthly is None


@dataclass
class UsageCounts:
    today: int = 0
    week: int = 0
    month: int = 0


@dataclass
class LimitCheck:
    """额度检查结果"""
    allowed: bool
    remaining: int | None = None  # None 表示不限制
    limit: int | None = None
    period: str | None = None     # 超额的周期：daily / weekly / monthly
    reset_at: datetime | None = None
    message: str | None = None
    revoked: bool = False


# ==================== 时间周期 ====================


def period_starts(now: datetime) -> tuple[datetime, datetime, datetime]:
    """返回 (今日开始, 本周开始[周日], 本月开始)"""
    day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    # weekday(): 周一=0 ... 周日=6
    days_since_sunday = (day.weekday() + 1) % 7
    week = day - timedelta(days=days_since_sunday)
    month = day.replace(day=1)
    return day, week, month


def next_reset(period: str, now: datetime) -> datetime:
    day, week, month = period_starts(now)
    if period == "daily":
        return day + timedelta(days=1)
    if period == "weekly":
        return week + timedelta(days=7)
    if month.month == 12:
        return month.replace(year=month.year + 1, month=1)
    return month.replace(month=month.month + 1)


# ==================== 额度判定（纯函数） ====================

_PERIOD_MESSAGES = {
    "daily": "Limite diário atingido ({limit}). Tente novamente amanhã.",
    "weekly": "Limite semanal atingido ({limit}). Tente novamente na próxima semana.",
    "monthly": "Limite mensal atingido ({limit}). Tente novamente no próximo mês.",
}


def evaluate_limit(limits: FeatureLimits, usage: UsageCounts, now: datetime) -> LimitCheck:
    """
    按 日 → 周 → 月 的顺序检查额度

    第一个超额的周期决定拒绝原因；都未超额时 remaining 取各周期剩余量的最小值。
    """
    for period, limit, used in (
        ("daily", limits.daily, usage.today),
        ("weekly", limits.weekly, usage.week),
        ("monthly", limits.monthly, usage.month),
    ):
        if limit is not None and used >= limit:
            return LimitCheck(
                allowed=False,
                remaining=0,
                limit=limit,
                period=period,
                reset_at=next_reset(period, now),
                message=_PERIOD_MESSAGES[period].format(limit=limit),
            )

    remainings = [
        limit - used
        for limit, used in (
            (limits.daily, usage.today),
            (limits.weekly, usage.week),
            (limits.monthly, usage.month),
        )
        if limit is not None
    ]
    return LimitCheck(
        allowed=True,
        remaining=min(remainings) if remainings else None,
        limit=limits.daily if limits.daily is not None else (limits.weekly if limits.weekly is not None else limits.monthly),
        reset_at=next_reset("daily", now),
    )


# ==================== 数据库查询 ====================


async def get_active_subscription(session: AsyncSession, user_id: str) -> Subscription | None:
    result = await session.execute(
        select(Subscription)
        .where(
            Subscription.user_id == user_id,
            Subscription.status.in_(LIVE_SUBSCRIPTION_STATUSES),
        )
        .order_by(Subscription.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_user_plan_slug(session: AsyncSession, user: User, tenant: Tenant | None = None) -> str:
    """用户当前生效的套餐：有效订阅 > 租户默认套餐 > free"""
    subscription = await get_active_subscription(session, user.id)
    if subscription:
        return subscription.plan_slug
    if tenant is None:
        tenant = await session.get(Tenant, user.tenant_id)
    if tenant and tenant.plan_slug:
        return tenant.plan_slug
    return DEFAULT_PLAN_SLUG


async def get_active_override(
    session: AsyncSession, user_id: str, feature_key: str, now: datetime
) -> FeatureOverride | None:
    result = await session.execute(
        select(FeatureOverride)
        .where(
            FeatureOverride.user_id == user_id,
            FeatureOverride.feature_key == feature_key,
            FeatureOverride.is_active.is_(True),
            or_(FeatureOverride.valid_until.is_(None), FeatureOverride.valid_until > now),
        )
        .order_by(FeatureOverride.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def resolve_plan_slug(session: AsyncSession, plan_slug: str) -> str:
    """目录中不存在的套餐按 free 处理"""
    if plan_slug == DEFAULT_PLAN_SLUG:
        return plan_slug
    exists = await session.scalar(select(func.count(Plan.id)).where(Plan.slug == plan_slug))
    return plan_slug if exists else DEFAULT_PLAN_SLUG


async def get_plan_feature(session: AsyncSession, plan_slug: str, feature_key: str) -> PlanFeature | None:
    result = await session.execute(
        select(PlanFeature).where(
            PlanFeature.plan_slug == plan_slug,
            PlanFeature.feature_key == feature_key,
        )
    )
    return result.scalar_one_or_none()


async def get_effective_limits(
    session: AsyncSession,
    user: User,
    feature_key: str,
    *,
    plan_slug: str | None = None,
    now: datetime | None = None,
) -> FeatureLimits | None:
    """
    获取用户某功能的有效额度

    Returns:
        FeatureLimits；管理员撤销时 source="revoked"（加购包也不能使用）；
        套餐不包含该功能时返回 None
    """
    now = now or datetime.now(timezone.utc)

    override = await get_active_override(session, user.id, feature_key, now)
    if override:
        if override.override_type == "revoke":
            return FeatureLimits(source="revoked")
        if override.override_type == "limit_custom":
            return FeatureLimits(
                daily=override.limit_daily,
                weekly=override.limit_weekly,
                monthly=override.limit_monthly,
                source="override",
            )
        return FeatureLimits(source="override")

    if plan_slug is None:
        plan_slug = await get_user_plan_slug(session, user)
    plan_slug = await resolve_plan_slug(session, plan_slug)

    feature = await get_plan_feature(session, plan_slug, feature_key)
    if feature is None or not feature.enabled:
        return None

    return FeatureLimits(
        daily=feature.limit_daily,
        weekly=feature.limit_weekly,
        monthly=feature.limit_monthly,
    )


async def get_usage_counts(
    session: AsyncSession, user_id: str, feature_key: str, now: datetime | None = None
) -> UsageCounts:
    """统计套餐来源的用量（加购包消耗不计入套餐额度）"""
    now = now or datetime.now(timezone.utc)
    day_start, week_start, month_start = period_starts(now)
    earliest = min(week_start, month_start)

    base = and_(
        FeatureUsage.user_id == user_id,
        FeatureUsage.feature_key == feature_key,
        FeatureUsage.source == "plan",
    )

    def _count_since(start: datetime):
        return func.sum(case((FeatureUsage.used_at >= start, 1), else_=0))

    result = await session.execute(
        select(
            _count_since(day_start),
            _count_since(week_start),
            _count_since(month_start),
        ).where(base, FeatureUsage.used_at >= earliest)
    )
    today, week, month = result.one()
    return UsageCounts(today=int(today or 0), week=int(week or 0), month=int(month or 0))


async def record_usage(
    session: AsyncSession,
    user: User,
    feature_key: str,
    *,
    source: str = "plan",
    addon_purchase_id: str | None = None,
    details: dict | None = None,
) -> FeatureUsage:
    usage = FeatureUsage(
        tenant_id=user.tenant_id,
        user_id=user.id,
        feature_key=feature_key,
        source=source,
        addon_purchase_id=addon_purchase_id,
        details=details,
    )
    session.add(usage)
    return usage


async def check_limit(
    session: AsyncSession,
    user: User,
    feature_key: str,
    *,
    plan_slug: str | None = None,
    now: datetime | None = None,
) -> LimitCheck:
    """只检查不记录"""
    now = now or datetime.now(timezone.utc)
    limits = await get_effective_limits(session, user, feature_key, plan_slug=plan_slug, now=now)
    if limits is None:
        return LimitCheck(allowed=False, remaining=0, message="Feature não disponível para seu plano")
    if limits.revoked:
        return LimitCheck(allowed=False, remaining=0, message="Acesso a esta feature foi suspenso", revoked=True)
    if limits.unlimited:
        return LimitCheck(allowed=True, remaining=None)
    usage = await get_usage_counts(session, user.id, feature_key, now)
    return evaluate_limit(limits, usage, now)


async def has_addon_credit(session: AsyncSession, user_id: str, feature_key: str) -> bool:
    now = datetime.now(timezone.utc)
    result = await session.execute(
        select(AddonPurchase.id)
        .where(
            AddonPurchase.user_id == user_id,
            AddonPurchase.feature_key == feature_key,
            AddonPurchase.is_active.is_(True),
            AddonPurchase.credits_remaining > 0,
            or_(AddonPurchase.expires_at.is_(None), AddonPurchase.expires_at > now),
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def ensure_available(
    session: AsyncSession,
    user: User,
    feature_key: str,
    *,
    plan_slug: str | None = None,
) -> LimitCheck:
    """
    调用前的预检查（不记录用量）

    用于调用 AI 等可能失败的操作：先确认有额度，成功后再 check_and_record，
    避免失败的调用占用额度。
    """
    check = await check_limit(session, user, feature_key, plan_slug=plan_slug)
    if check.revoked:
        raise _revoked_error(feature_key)
    if check.allowed or await has_addon_credit(session, user.id, feature_key):
        return check

    if check.period is None:
        raise _not_in_plan_error(feature_key)
    raise _limit_error(feature_key, check)


def _revoked_error(feature_key: str) -> FeatureDisabledError:
    return FeatureDisabledError(
        "Acesso a esta feature foi suspenso",
        code="FEATURE_REVOKED",
        extra={"feature": feature_key, "upgrade_required": False},
    )


def _not_in_plan_error(feature_key: str) -> FeatureDisabledError:
    return FeatureDisabledError(
        "Feature não disponível para seu plano",
        code="FEATURE_NOT_IN_PLAN",
        extra={"feature": feature_key, "upgrade_required": True},
    )


def _limit_error(feature_key: str, check: LimitCheck) -> PlanLimitError:
    return PlanLimitError(
        check.message or "Limite atingido",
        extra={
            "feature": feature_key,
            "period": check.period,
            "limit": check.limit,
            "reset_at": check.reset_at.isoformat() if check.reset_at else None,
            "upgrade_required": True,
        },
    )


async def check_and_record(
    session: AsyncSession,
    user: User,
    feature_key: str,
    *,
    plan_slug: str | None = None,
    details: dict | None = None,
) -> LimitCheck:
    """
    检查额度并记录一次用量

    套餐额度用完时尝试消耗加购包额度；都没有时抛出异常。
    不 commit，由调用方在业务操作完成后统一提交。

    Raises:
        FeatureDisabledError: 管理员撤销（FEATURE_REVOKED）或套餐不包含该功能（403）
        PlanLimitError: 额度用完且没有可用加购包（429）
    """
    now = datetime.now(timezone.utc)
    limits = await get_effective_limits(session, user, feature_key, plan_slug=plan_slug, now=now)

    if limits is not None and limits.revoked:
        raise _revoked_error(feature_key)

    if limits is None:
        purchase = await addon_service.consume_credit(session, user.id, feature_key, now=now)
        if purchase is None:
            raise _not_in_plan_error(feature_key)
        await record_usage(session, user, feature_key, source="addon", addon_purchase_id=purchase.id, details=details)
        return LimitCheck(allowed=True, remaining=purchase.credits_remaining)

    if limits.unlimited:
        await record_usage(session, user, feature_key, details=details)
        return LimitCheck(allowed=True, remaining=None)

    usage = await get_usage_counts(session, user.id, feature_key, now)
    check = evaluate_limit(limits, usage, now)

    if check.allowed:
        await record_usage(session, user, feature_key, details=details)
        if check.remaining is not None:
            check.remaining = max(0, check.remaining - 1)
        return check

    purchase = await addon_service.consume_credit(session, user.id, feature_key, now=now)
    if purchase is not None:
        await record_usage(session, user, feature_key, source="addon", addon_purchase_id=purchase.id, details=details)
        logger.info(
            f"套餐额度用完，使用加购包额度: {feature_key}",
            extra={"addon_purchase_id": purchase.id, "credits_remaining": purchase.credits_remaining},
        )
        return LimitCheck(allowed=True, remaining=purchase.credits_remaining)

    raise _limit_error(feature_key, check)


async def get_usage_summary(session: AsyncSession, user: User, plan_slug: str) -> list[dict]:
    """用户仪表盘：套餐内每个功能的用量和剩余额度"""
    now = datetime.now(timezone.utc)
    plan_slug = await resolve_plan_slug(session, plan_slug)
    result = await session.execute(
        select(PlanFeature.feature_key).where(PlanFeature.plan_slug == plan_slug).order_by(PlanFeature.feature_key)
    )
    summary = []
    for feature_key in result.scalars().all():
        limits = await get_effective_limits(session, user, feature_key, plan_slug=plan_slug, now=now)
        if limits is not None and limits.revoked:
            limits = None
        usage = await get_usage_counts(session, user.id, feature_key, now)
        entry = {
            "feature": feature_key,
            "enabled": limits is not None,
            "used_today": usage.today,
            "used_week": usage.week,
            "used_month": usage.month,
            "limit_daily": limits.daily if limits else None,
            "limit_weekly": limits.weekly if limits else None,
            "limit_monthly": limits.monthly if limits else None,
            "remaining": None,
        }
        if limits is not None and not limits.unlimited:
            entry["remaining"] = evaluate_limit(limits, usage, now).remaining
        elif limits is None:
            entry["remaining"] = 0
        summary.append(entry)
    return summary


# ==================== 套餐目录 ====================


async def list_plans(session: AsyncSession, *, visible_only: bool = True) -> list[tuple[Plan, list[PlanFeature]]]:
    """套餐目录（按 sort_order），每个套餐附带功能额度列表"""
    query = select(Plan).order_by(Plan.sort_order, Plan.price_monthly_cents)
    if visible_only:
        query = query.where(Plan.is_visible.is_(True))
    plans = list((await session.execute(query)).scalars().all())
    if not plans:
        return []

    features = await session.execute(
        select(PlanFeature)
        .where(PlanFeature.plan_slug.in_([p.slug for p in plans]))
        .order_by(PlanFeature.feature_key)
    )
    by_plan: dict[str, list[PlanFeature]] = {}
    for feature in features.scalars().all():
        by_plan.setdefault(feature.plan_slug, []).append(feature)
    return [(plan, by_plan.get(plan.slug, [])) for plan in plans]


async def get_plan(session: AsyncSession, slug: str) -> Plan | None:
    result = await session.execute(select(Plan).where(Plan.slug == slug))
    return result.scalar_one_or_none()


async def get_plan_features(session: AsyncSession, plan_slug: str) -> list[PlanFeature]:
    result = await session.execute(
        select(PlanFeature).where(PlanFeature.plan_slug == plan_slug).order_by(PlanFeature.feature_key)
    )
    return list(result.scalars().all())


async def upsert_plan_feature(session: AsyncSession, plan_slug: str, data: dict) -> PlanFeature:
    """按 (plan_slug, feature_key) 新增或覆盖功能额度（不 commit）"""
    feature = await get_plan_feature(session, plan_slug, data["feature_key"])
    if feature is None:
        feature = PlanFeature(plan_slug=plan_slug, **data)
        session.add(feature)
    else:
        for key, value in data.items():
            setattr(feature, key, value)
    return feature
