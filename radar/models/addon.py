"""
加购包购买记录 (AddonPurchase)

加购包目录是代码内的静态配置（见 services/addons.py），
这里只记录用户实际购买的额度包，按 expires_at 过期、按 credits_remaining 消耗。
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from radar.db.base import Base
from radar.models.mixins import UUID_PK, TimestampMixin


class AddonPurchase(TimestampMixin, Base):
    """加购包购买表"""
    __tablename__ = "addon_purchases"

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

    addon_id: Mapped[str] = mapped_column(String(50), nullable=False)
    # 额度包对应的功能，非额度类加购包为空
    feature_key: Mapped[str | None] = mapped_column(String(50), index=True)

    # 额度类加购包：总额度 / 剩余额度；非额度类为空
    credits_total: Mapped[int | None] = mapped_column(Integer)
    credits_remaining: Mapped[int | None] = mapped_column(Integer)

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    stripe_session_id: Mapped[str | None] = mapped_column(String(255), unique=True)
