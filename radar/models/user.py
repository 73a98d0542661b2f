"""
用户模型 (User)

终端用户、专业人员和租户管理员共用一张表，通过 role 区分。
邮箱在租户内唯一。

角色：
- usuaria: 终端用户（默认）
- profissional: 专业人员（心理、法律等）
- admin: 租户管理员（可访问 /v1/admin 控制台）
- super_admin: 平台运营人员
"""

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from radar.db.base import Base
from radar.models.mixins import UUID_PK, TimestampMixin

ADMIN_ROLES = ("admin", "super_admin")


class User(TimestampMixin, Base):
    """用户表"""
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("tenant_id", "email", name="uq_user_tenant_email"),
    )

    id: Mapped[UUID_PK]

    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(20), default="usuaria", nullable=False)

    # WhatsApp：手机号（仅数字，含国家码）和是否同意接收消息
    phone: Mapped[str | None] = mapped_column(String(20), index=True)
    whatsapp_opt_in: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_notifications: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    stripe_customer_id: Mapped[str | None] = mapped_column(String(100), index=True)

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
