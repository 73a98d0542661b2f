"""
套餐额度与加购包测试（sqlite 内存库）

- get_effective_limits: 用户覆盖 > 有效订阅 > 租户默认套餐 > free，目录外套餐按 free
- check_and_record: 套餐额度用完后消耗加购包，最早过期的额度包优先
- 管理员撤销（revoke）后加购包也不能绕过
- get_usage_summary: 列出实际生效套餐的功能
- AI 限额：提供商单用户日/月上限、租户日上限（AI_LIMIT_REACHED）
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from radar.db.base import Base
from radar.exceptions import FeatureDisabledError, PlanLimitError
from radar.models import (
    AddonPurchase,
    AIUsageLog,
    FeatureOverride,
    FeatureUsage,
    Plan,
    PlanFeature,
    Subscription,
    Tenant,
    User,
)
from radar.services import addons as addon_service
from radar.services import plans as plan_service
from radar.services.ai_router import ProviderChoice, check_provider_limits, check_tenant_quota


@pytest.fixture
async def session():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    async with async_sessionmaker(engine, expire_on_commit=False)() as db:
        yield db
    await engine.dispose()


async def _seed(db, *, tenant_plan: str = "free") -> tuple[Tenant, User]:
    db.add_all([
        Plan(slug="free", name="Radar Guardar"),
        Plan(slug="essencial", name="Radar Essencial"),
        Plan(slug="premium", name="Radar Premium"),
        PlanFeature(plan_slug="free", feature_key="diario", limit_monthly=1),
        PlanFeature(plan_slug="free", feature_key="chat", limit_daily=5),
        PlanFeature(plan_slug="essencial", feature_key="diario", limit_daily=2),
        PlanFeature(plan_slug="premium", feature_key="diario", limit_monthly=30),
        PlanFeature(plan_slug="premium", feature_key="oraculo"),
    ])
    tenant = Tenant(slug="acme", name="Acme", plan_slug=tenant_plan)
    db.add(tenant)
    await db.flush()
    user = User(tenant_id=tenant.id, email="ana@acme.com", display_name="Ana")
    db.add(user)
    await db.flush()
    return tenant, user


def _override(user: User, override_type: str, **kwargs) -> FeatureOverride:
    return FeatureOverride(
        tenant_id=user.tenant_id,
        user_id=user.id,
        feature_key="diario",
        override_type=override_type,
        **kwargs,
    )


def _purchase(user: User, credits: int, expires_in_days: int | None, feature_key: str = "diario") -> AddonPurchase:
    expires_at = None
    if expires_in_days is not None:
        expires_at = datetime.now(timezone.utc) + timedelta(days=expires_in_days)
    return AddonPurchase(
        tenant_id=user.tenant_id,
        user_id=user.id,
        addon_id=f"{feature_key}_pack",
        feature_key=feature_key,
        credits_total=credits,
        credits_remaining=credits,
        expires_at=expires_at,
    )


async def _usage_rows(db, user: User) -> list[FeatureUsage]:
    result = await db.execute(select(FeatureUsage).where(FeatureUsage.user_id == user.id))
    return list(result.scalars().all())


class TestEffectiveLimits:
    async def test_tenant_default_plan(self, session):
        _, user = await _seed(session, tenant_plan="essencial")
        limits = await plan_service.get_effective_limits(session, user, "diario")
        assert (limits.daily, limits.monthly, limits.source) == (2, None, "plan")

    async def test_subscription_wins_over_tenant_default(self, session):
        tenant, user = await _seed(session, tenant_plan="essencial")
        session.add(Subscription(tenant_id=tenant.id, user_id=user.id, plan_slug="premium", status="active"))
        await session.flush()

        limits = await plan_service.get_effective_limits(session, user, "diario")
        assert (limits.daily, limits.monthly) == (None, 30)

    async def test_canceled_subscription_is_ignored(self, session):
        tenant, user = await _seed(session, tenant_plan="essencial")
        session.add(Subscription(tenant_id=tenant.id, user_id=user.id, plan_slug="premium", status="canceled"))
        await session.flush()

        limits = await plan_service.get_effective_limits(session, user, "diario")
        assert limits.daily == 2

    async def test_unknown_plan_falls_back_to_free(self, session):
        _, user = await _seed(session, tenant_plan="legado")
        limits = await plan_service.get_effective_limits(session, user, "diario")
        assert limits.monthly == 1

    async def test_feature_missing_from_plan(self, session):
        _, user = await _seed(session)
        assert await plan_service.get_effective_limits(session, user, "oraculo") is None

    async def test_grant_override_is_unlimited(self, session):
        _, user = await _seed(session)
        session.add(_override(user, "grant"))
        await session.flush()

        limits = await plan_service.get_effective_limits(session, user, "diario")
        assert limits.unlimited
        assert limits.source == "override"

    async def test_custom_override_limits(self, session):
        _, user = await _seed(session)
        session.add(_override(user, "limit_custom", limit_daily=7, limit_monthly=50))
        await session.flush()

        limits = await plan_service.get_effective_limits(session, user, "diario")
        assert (limits.daily, limits.weekly, limits.monthly) == (7, None, 50)

    async def test_revoke_override(self, session):
        _, user = await _seed(session)
        session.add(_override(user, "revoke"))
        await session.flush()

        limits = await plan_service.get_effective_limits(session, user, "diario")
        assert limits.revoked
        assert not limits.unlimited

    async def test_expired_override_is_ignored(self, session):
        _, user = await _seed(session)
        session.add(_override(user, "grant", valid_until=datetime.now(timezone.utc) - timedelta(days=1)))
        await session.flush()

        limits = await plan_service.get_effective_limits(session, user, "diario")
        assert limits.monthly == 1
        assert limits.source == "plan"


class TestAddonFallback:
    async def test_plan_first_then_oldest_expiring_addon(self, session):
        _, user = await _seed(session)
        later = _purchase(user, credits=5, expires_in_days=60)
        sooner = _purchase(user, credits=2, expires_in_days=10)
        forever = _purchase(user, credits=5, expires_in_days=None)
        session.add_all([later, sooner, forever])
        await session.flush()

        first = await plan_service.check_and_record(session, user, "diario")
        assert first.allowed and first.remaining == 0

        second = await plan_service.check_and_record(session, user, "diario")
        assert second.allowed and second.remaining == 1
        assert (sooner.credits_remaining, later.credits_remaining, forever.credits_remaining) == (1, 5, 5)

        rows = await _usage_rows(session, user)
        assert sorted(row.source for row in rows) == ["addon", "plan"]
        addon_row = next(row for row in rows if row.source == "addon")
        assert addon_row.addon_purchase_id == sooner.id

        # 加购包消耗不计入套餐用量
        usage = await plan_service.get_usage_counts(session, user.id, "diario")
        assert usage.month == 1

    async def test_exhausted_purchase_is_deactivated(self, session):
        _, user = await _seed(session)
        purchase = _purchase(user, credits=1, expires_in_days=None)
        session.add(purchase)
        await session.flush()

        consumed = await addon_service.consume_credit(session, user.id, "diario")
        assert consumed is purchase
        assert purchase.credits_remaining == 0
        assert purchase.is_active is False
        assert await addon_service.consume_credit(session, user.id, "diario") is None

    async def test_expired_purchase_is_skipped(self, session):
        _, user = await _seed(session)
        session.add(_purchase(user, credits=3, expires_in_days=-1))
        await session.flush()
        assert await addon_service.consume_credit(session, user.id, "diario") is None

    async def test_limit_error_without_addons(self, session):
        _, user = await _seed(session)
        await plan_service.check_and_record(session, user, "diario")

        with pytest.raises(PlanLimitError) as exc_info:
            await plan_service.check_and_record(session, user, "diario")

        error = exc_info.value
        assert error.code == "PLAN_LIMIT_REACHED"
        assert error.extra["period"] == "monthly"
        assert error.extra["limit"] == 1
        assert error.extra["upgrade_required"] is True

    async def test_feature_outside_plan_uses_addon(self, session):
        _, user = await _seed(session)
        purchase = _purchase(user, credits=2, expires_in_days=30, feature_key="oraculo")
        session.add(purchase)
        await session.flush()

        check = await plan_service.check_and_record(session, user, "oraculo")
        assert check.allowed and check.remaining == 1

    async def test_feature_outside_plan_without_addon(self, session):
        _, user = await _seed(session)
        with pytest.raises(FeatureDisabledError) as exc_info:
            await plan_service.check_and_record(session, user, "oraculo")
        assert exc_info.value.code == "FEATURE_NOT_IN_PLAN"


class TestRevokedFeature:
    async def test_addon_credits_cannot_bypass_revoke(self, session):
        _, user = await _seed(session)
        purchase = _purchase(user, credits=5, expires_in_days=30)
        session.add_all([_override(user, "revoke"), purchase])
        await session.flush()

        with pytest.raises(FeatureDisabledError) as exc_info:
            await plan_service.check_and_record(session, user, "diario")

        assert exc_info.value.code == "FEATURE_REVOKED"
        assert exc_info.value.extra["upgrade_required"] is False
        assert purchase.credits_remaining == 5
        assert await _usage_rows(session, user) == []

    async def test_precheck_rejects_revoked_feature(self, session):
        _, user = await _seed(session)
        session.add_all([_override(user, "revoke"), _purchase(user, credits=5, expires_in_days=None)])
        await session.flush()

        check = await plan_service.check_limit(session, user, "diario")
        assert check.allowed is False and check.revoked is True

        with pytest.raises(FeatureDisabledError) as exc_info:
            await plan_service.ensure_available(session, user, "diario")
        assert exc_info.value.code == "FEATURE_REVOKED"


class TestUsageSummary:
    async def test_unknown_plan_lists_free_features(self, session):
        _, user = await _seed(session, tenant_plan="legado")
        plan_slug = await plan_service.get_user_plan_slug(session, user)
        assert plan_slug == "legado"

        summary = await plan_service.get_usage_summary(session, user, plan_slug)
        by_feature = {entry["feature"]: entry for entry in summary}
        assert set(by_feature) == {"chat", "diario"}
        assert by_feature["diario"]["limit_monthly"] == 1
        assert by_feature["chat"]["remaining"] == 5

    async def test_revoked_feature_shows_disabled(self, session):
        _, user = await _seed(session)
        session.add(_override(user, "revoke"))
        await session.flush()

        summary = await plan_service.get_usage_summary(session, user, "free")
        diario = next(entry for entry in summary if entry["feature"] == "diario")
        assert diario["enabled"] is False
        assert diario["remaining"] == 0


def _ai_log(tenant: Tenant, user: User, provider: str = "openai", **kwargs) -> AIUsageLog:
    return AIUsageLog(
        tenant_id=tenant.id,
        user_id=user.id,
        feature_key="chat",
        provider=provider,
        model="gpt-4o-mini",
        **kwargs,
    )


class TestAIQuotas:
    async def test_provider_daily_limit(self, session):
        tenant, user = await _seed(session)
        choice = ProviderChoice("openai", "gpt-4o-mini", limit_daily=2)
        session.add_all([
            _ai_log(tenant, user),
            _ai_log(tenant, user, success=False, error="timeout"),
            _ai_log(tenant, user, provider="deepseek"),
        ])
        await session.flush()

        # 失败的调用和其他提供商不计数
        await check_provider_limits(session, user.id, "chat", choice)

        session.add(_ai_log(tenant, user))
        await session.flush()
        with pytest.raises(PlanLimitError) as exc_info:
            await check_provider_limits(session, user.id, "chat", choice)

        assert exc_info.value.code == "AI_LIMIT_REACHED"
        assert exc_info.value.extra == {"provider": "openai", "period": "daily"}

    async def test_provider_monthly_limit(self, session):
        tenant, user = await _seed(session)
        session.add_all([_ai_log(tenant, user), _ai_log(tenant, user)])
        await session.flush()

        with pytest.raises(PlanLimitError) as exc_info:
            await check_provider_limits(
                session, user.id, "chat", ProviderChoice("openai", "gpt-4o-mini", limit_monthly=2)
            )
        assert exc_info.value.code == "AI_LIMIT_REACHED"
        assert exc_info.value.extra["period"] == "monthly"

    async def test_provider_without_limits(self, session):
        tenant, user = await _seed(session)
        session.add_all([_ai_log(tenant, user) for _ in range(3)])
        await session.flush()
        await check_provider_limits(session, user.id, "chat", ProviderChoice("openai", "gpt-4o-mini"))

    async def test_tenant_daily_quota(self, session):
        tenant, user = await _seed(session)
        tenant.max_ai_requests_per_day = 2
        yesterday = datetime.now(timezone.utc) - timedelta(days=1, hours=1)
        session.add_all([_ai_log(tenant, user), _ai_log(tenant, user, created_at=yesterday)])
        await session.flush()

        await check_tenant_quota(session, tenant)

        session.add(_ai_log(tenant, user, provider="deepseek"))
        await session.flush()
        with pytest.raises(PlanLimitError) as exc_info:
            await check_tenant_quota(session, tenant)

        assert exc_info.value.code == "AI_LIMIT_REACHED"
        assert exc_info.value.extra == {"scope": "tenant"}
        count = await session.scalar(select(func.count(AIUsageLog.id)))
        assert count == 3

    async def test_tenant_without_quota(self, session):
        tenant, user = await _seed(session)
        session.add_all([_ai_log(tenant, user) for _ in range(5)])
        await session.flush()
        await check_tenant_quota(session, tenant)
