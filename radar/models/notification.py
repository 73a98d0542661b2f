"""
通知与 WhatsApp 消息模型

- Notification: 发送给用户的通知，每个渠道（in_app / whatsapp / email）一条记录
- WhatsAppMessage: WhatsApp 收发流水（含未绑定用户的号码）
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from radar.db.base import Base
from radar.models.mixins import UUID_PK, TimestampMixin


class Notification(TimestampMixin, Base):
    """通知表"""
    __tablename__ = "notifications"

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

    channel: Mapped[str] = mapped_column(String(20), nullable=False)
    # risk_alert / safety_plan / journal_reminder / chat_summary / billing / system / marketing
    category: Mapped[str] = mapped_column(String(30), default="system", nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)

    # pending / sent / failed / read
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False, index=True)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    external_id: Mapped[str | None] = mapped_column(String(255))
    error: Mapped[str | None] = mapped_column(Text)


class WhatsAppMessage(TimestampMixin, Base):
    """WhatsApp 消息流水表"""
    __tablename__ = "whatsapp_messages"

    id: Mapped[UUID_PK]

    tenant_id: Mapped[str | None] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        index=True,
    )
    user_id: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        index=True,
    )

    phone: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    # incoming / outgoing
    direction: Mapped[str] = mapped_column(String(10), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    # received / sent / failed
    status: Mapped[str] = mapped_column(String(20), default="received", nullable=False)
    external_id: Mapped[str | None] = mapped_column(String(255))
