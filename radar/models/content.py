"""
内容模型 (ContentItem)

文章、指南、资源链接等自助内容。tenant_id 为空表示平台全局内容，
对所有租户可见；否则只对本租户可见。
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from radar.db.base import Base
from radar.models.mixins import UUID_PK, TimestampMixin


class ContentItem(TimestampMixin, Base):
    """内容表"""
    __tablename__ = "content_items"
    __table_args__ = (
        UniqueConstraint("tenant_id", "slug", name="uq_content_tenant_slug"),
    )

    id: Mapped[UUID_PK]

    tenant_id: Mapped[str | None] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        index=True,
    )

    slug: Mapped[str] = mapped_column(String(150), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    summary: Mapped[str | None] = mapped_column(Text)
    body: Mapped[str] = mapped_column(Text, default="", nullable=False)

    # article / guide / video / resource
    content_type: Mapped[str] = mapped_column(String(20), default="article", nullable=False)
    category: Mapped[str | None] = mapped_column(String(50), index=True)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    # draft / published / archived
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False, index=True)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    author_id: Mapped[str | None] = mapped_column(String(36))
