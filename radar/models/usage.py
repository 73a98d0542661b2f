"""
用量记录模型

- FeatureUsage: 每次消耗一次功能额度记一条（来源为套餐或加购包）
- AIUsageLog: 每次调用 LLM 提供商记一条（成功或失败），用于提供商限额和成本统计

两张表只追加不修改，不使用 TimestampMixin。
"""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from radar.db.base import Base
from radar.models.mixins import utcnow


class FeatureUsage(Base):
    """功能用量表"""
    __tablename__ = "feature_usage"
    __table_args__ = (
        Index("ix_feature_usage_user_feature_used", "user_id", "feature_key", "used_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    feature_key: Mapped[str] = mapped_column(String(50), nullable=False)

    # plan / addon
    source: Mapped[str] = mapped_column(String(10), default="plan", nullable=False)
    addon_purchase_id: Mapped[str | None] = mapped_column(
        ForeignKey("addon_purchases.id", ondelete="SET NULL"),
    )

    details: Mapped[dict | None] = mapped_column(JSON)

    used_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )


class AIUsageLog(Base):
    """AI 调用日志表"""
    __tablename__ = "ai_usage_logs"
    __table_args__ = (
        Index("ix_ai_usage_tenant_created", "tenant_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid4()),
    )

    tenant_id: Mapped[str | None] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
    )
    user_id: Mapped[str | None] = mapped_column(String(36), index=True)

    feature_key: Mapped[str] = mapped_column(String(50), nullable=False)
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    persona: Mapped[str | None] = mapped_column(String(100))

    tokens_input: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    tokens_output: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    latency_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    success: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    error: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
