"""
AI 路由配置模型

- AIProviderRoute: "菜单"表，决定某功能在某套餐/角色下使用哪些提供商，
  以及主用/备用/协作的角色与优先级、日/月调用上限
- AIPersona: 人设（系统提示词），按功能、角色、套餐匹配

tenant_id 为空的记录是平台全局配置，租户自己的配置优先。
"""

from sqlalchemy import JSON, Boolean, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from radar.db.base import Base
from radar.models.mixins import UUID_PK, TimestampMixin

# 路由角色排序：主用 → 备用 → 协作
ROUTE_ROLE_ORDER = {"principal": 0, "fallback": 1, "colaborativo": 2}


class AIProviderRoute(TimestampMixin, Base):
    """AI 提供商路由表"""
    __tablename__ = "ai_provider_routes"

    id: Mapped[UUID_PK]

    tenant_id: Mapped[str | None] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        index=True,
    )

    feature_key: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    # 为空表示匹配任意套餐 / 任意角色
    plan_slug: Mapped[str | None] = mapped_column(String(50))
    user_role: Mapped[str | None] = mapped_column(String(20))

    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)

    # principal / fallback / colaborativo
    route_role: Mapped[str] = mapped_column(String(20), default="principal", nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=100, nullable=False)
    weight: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # 单用户调用上限，为空不限制
    limit_daily: Mapped[int | None] = mapped_column(Integer)
    limit_monthly: Mapped[int | None] = mapped_column(Integer)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class AIPersona(TimestampMixin, Base):
    """AI 人设表"""
    __tablename__ = "ai_personas"

    id: Mapped[UUID_PK]

    tenant_id: Mapped[str | None] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        index=True,
    )

    slug: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    feature_key: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)

    # 空列表表示不限制
    allowed_roles: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    allowed_plans: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
