"""
日记模型 (JournalEntry)

用户记录的事件/感受。保存时做风险检测，删除为软删除（deleted_at）。

entry_type：
- episode: 事件记录（默认）
- feeling: 情绪记录
- note: 普通笔记
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from radar.db.base import Base
from radar.models.mixins import UUID_PK, TimestampMixin


class JournalEntry(TimestampMixin, Base):
    """日记条目表"""
    __tablename__ = "journal_entries"

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

    title: Mapped[str | None] = mapped_column(String(255))
    content: Mapped[str] = mapped_column(Text, nullable=False)

    tags: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    emotions: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    # 影响程度 1-10
    impact_score: Mapped[int | None] = mapped_column(Integer)

    entry_type: Mapped[str] = mapped_column(String(20), default="episode", nullable=False)

    # 最近一次风险检测的等级（LOW/MEDIUM/HIGH/CRITICAL）
    risk_level: Mapped[str] = mapped_column(String(10), default="LOW", nullable=False)

    # 扩展元数据（数据库列名 metadata，避免与 SQLAlchemy 保留属性冲突）
    extra_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict, nullable=False)

    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
