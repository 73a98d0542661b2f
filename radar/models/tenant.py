"""
租户模型 (Tenant)

租户是多租户系统的顶层实体，代表一个运营方（机构、白标客户）。
所有业务数据都通过 tenant_id 进行行级过滤。

租户状态（在 schemas/tenant.py 中用 Literal 验证）：
- active: 正常运行
- trial: 试用中（视同可用）
- suspended: 已暂停（API 请求被拒绝）
- cancelled: 已取消
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from radar.db.base import Base
from radar.models.mixins import UUID_PK, TimestampMixin

# 可正常访问 API 的状态
ACTIVE_TENANT_STATUSES = ("active", "trial")


class Tenant(TimestampMixin, Base):
    """
    租户表

    字段说明：
    - slug: URL 友好的唯一标识
    - plan_slug: 租户下用户的默认套餐（无订阅时使用）
    - settings: {"features": {"chat": true, ...}, "ai": {"provider": "...", "model": "..."}}
    - branding: 白标配置（logo、主色等），后端只存储
    - max_ai_requests_per_day: 租户级 AI 调用日上限，为空表示不限制
    """
    __tablename__ = "tenants"

    id: Mapped[UUID_PK]

    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False, index=True)

    plan_slug: Mapped[str] = mapped_column(String(50), default="free", nullable=False)

    settings: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    branding: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    max_ai_requests_per_day: Mapped[int | None] = mapped_column(Integer)

    stripe_customer_id: Mapped[str | None] = mapped_column(String(100))

    disabled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    disabled_reason: Mapped[str | None] = mapped_column(Text)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_TENANT_STATUSES

    def feature_enabled(self, feature_key: str) -> bool:
        """租户功能开关，未配置的功能视为开启"""
        features = (self.settings or {}).get("features") or {}
        return bool(features.get(feature_key, True))

    @property
    def ai_settings(self) -> dict:
        return (self.settings or {}).get("ai") or {}
