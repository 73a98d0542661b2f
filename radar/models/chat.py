"""
聊天消息模型 (ChatMessage)

应用内 AI 对话和 WhatsApp 机器人对话都存放在这里，
通过 session_id 把一轮对话串起来，channel 区分来源。
"""

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from radar.db.base import Base
from radar.models.mixins import UUID_PK, TimestampMixin


class ChatMessage(TimestampMixin, Base):
    """聊天消息表"""
    __tablename__ = "chat_messages"

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

    session_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)

    # app / whatsapp
    channel: Mapped[str] = mapped_column(String(20), default="app", nullable=False)

    # user / assistant
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # assistant 消息记录实际使用的提供商和人设
    provider: Mapped[str | None] = mapped_column(String(50))
    model: Mapped[str | None] = mapped_column(String(100))
    persona: Mapped[str | None] = mapped_column(String(100))
    tokens: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    risk_level: Mapped[str | None] = mapped_column(String(10))
