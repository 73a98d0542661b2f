"""
套餐模型 (Plan / PlanFeature / FeatureOverride)

套餐目录由平台管理员维护，每个套餐下按功能配置日/周/月用量上限。
FeatureOverride 允许租户管理员针对单个用户放开、收回或自定义某个功能的额度。

额度语义：
- 限额字段为 NULL 表示该周期不限制
- PlanFeature 不存在或 enabled=False 表示套餐不包含该功能
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from radar.db.base import Base
from radar.models.mixins import UUID_PK, TimestampMixin


class Plan(TimestampMixin, Base):
    """套餐目录表"""
    __tablename__ = "plans"

    id: Mapped[UUID_PK]

    # free / essencial / premium / profissional
    slug: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    # 展示用的卖点列表
    highlights: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    # 价格（分）
    price_monthly_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    price_yearly_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="brl", nullable=False)

    stripe_price_monthly: Mapped[str | None] = mapped_column(String(100))
    stripe_price_yearly: Mapped[str | None] = mapped_column(String(100))

    is_visible: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class PlanFeature(TimestampMixin, Base):
    """套餐功能额度表"""
    __tablename__ = "plan_features"
    __table_args__ = (
        UniqueConstraint("plan_slug", "feature_key", name="uq_plan_feature"),
    )

    id: Mapped[UUID_PK]

    plan_slug: Mapped[str] = mapped_column(
        ForeignKey("plans.slug", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # chat / diario / oraculo / exportacao ...
    feature_key: Mapped[str] = mapped_column(String(50), nullable=False)

    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    limit_daily: Mapped[int | None] = mapped_column(Integer)
    limit_weekly: Mapped[int | None] = mapped_column(Integer)
    limit_monthly: Mapped[int | None] = mapped_column(Integer)


class FeatureOverride(TimestampMixin, Base):
    """
    用户级功能覆盖

    override_type：
    - grant: 无限制放开
    - revoke: 收回访问权限
    - limit_custom: 使用本记录的自定义额度
    """
    __tablename__ = "feature_overrides"

    id: Mapped[UUID_PK]

    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    feature_key: Mapped[str] = mapped_column(String(50), nullable=False)

    override_type: Mapped[str] = mapped_column(String(20), nullable=False)
    limit_daily: Mapped[int | None] = mapped_column(Integer)
    limit_weekly: Mapped[int | None] = mapped_column(Integer)
    limit_monthly: Mapped[int | None] = mapped_column(Integer)

    reason: Mapped[str | None] = mapped_column(Text)
    created_by: Mapped[str | None] = mapped_column(String(36))

    valid_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
