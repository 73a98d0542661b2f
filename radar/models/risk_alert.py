"""
风险预警模型 (RiskAlert)

日记、聊天、WhatsApp 消息中检测到风险（等级不为 LOW）时自动创建，
租户管理员在控制台跟进并标记为已处理。
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from radar.db.base import Base
from radar.models.mixins import UUID_PK, TimestampMixin


class RiskAlert(TimestampMixin, Base):
    """风险预警表"""
    __tablename__ = "risk_alerts"

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

    # diary / chat / clarity_test / manual
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    # 来源记录 ID（日记条目、聊天消息）
    source_id: Mapped[str | None] = mapped_column(String(36))

    level: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(30), nullable=False)

    triggers: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    recommendation: Mapped[str] = mapped_column(Text, default="", nullable=False)

    is_resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    resolved_by: Mapped[str | None] = mapped_column(String(36))
    resolution_note: Mapped[str | None] = mapped_column(Text)
