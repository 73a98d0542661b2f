"""
套餐额度判定测试

evaluate_limit 是纯函数：给定有效额度和已用次数，返回是否允许、剩余量和重置时间。
"""

from datetime import datetime, timezone

from radar.services.plans import (
    FeatureLimits,
    UsageCounts,
    evaluate_limit,
    next_reset,
    period_starts,
)

# 2026-10-21 是周三
NOW = datetime(2026, 10, 21, 15, 30, tzinfo=timezone.utc)


def test_period_starts_week_begins_on_sunday():
    day, week, month = period_starts(NOW)
    assert day == datetime(2026, 10, 21, tzinfo=timezone.utc)
    assert week == datetime(2026, 10, 18, tzinfo=timezone.utc)
    assert month == datetime(2026, 10, 1, tzinfo=timezone.utc)


def test_next_reset():
    assert next_reset("daily", NOW) == datetime(2026, 10, 22, tzinfo=timezone.utc)
    assert next_reset("weekly", NOW) == datetime(2026, 10, 25, tzinfo=timezone.utc)
    assert next_reset("monthly", NOW) == datetime(2026, 11, 1, tzinfo=timezone.utc)


def test_next_reset_december_rolls_year():
    december = datetime(2026, 12, 15, tzinfo=timezone.utc)
    assert next_reset("monthly", december) == datetime(2027, 1, 1, tzinfo=timezone.utc)


def test_unlimited():
    limits = FeatureLimits()
    assert limits.unlimited
    check = evaluate_limit(limits, UsageCounts(today=500, week=500, month=500), NOW)
    assert check.allowed is True
    assert check.remaining is None


def test_daily_limit_reached():
    check = evaluate_limit(FeatureLimits(daily=5), UsageCounts(today=5), NOW)
    assert check.allowed is False
    assert check.period == "daily"
    assert check.limit == 5
    assert check.remaining == 0
    assert check.reset_at == datetime(2026, 10, 22, tzinfo=timezone.utc)
    assert "diário" in check.message


def test_daily_checked_before_monthly():
    check = evaluate_limit(
        FeatureLimits(daily=2, monthly=10),
        UsageCounts(today=2, week=10, month=10),
        NOW,
    )
    assert check.period == "daily"


def test_monthly_limit_reached():
    check = evaluate_limit(FeatureLimits(monthly=3), UsageCounts(today=0, week=1, month=3), NOW)
    assert check.allowed is False
    assert check.period == "monthly"
    assert check.reset_at == datetime(2026, 11, 1, tzinfo=timezone.utc)


def test_remaining_is_minimum_across_periods():
    check = evaluate_limit(
        FeatureLimits(daily=10, weekly=20, monthly=30),
        UsageCounts(today=1, week=15, month=16),
        NOW,
    )
    assert check.allowed is True
    assert check.remaining == 5
    assert check.limit == 10
