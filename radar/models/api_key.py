"""
API 密钥模型 (APIKey)

每个 API Key 绑定到一个用户，认证后即可确定租户、用户和角色。

安全设计：
- API Key 只在创建时显示一次，之后只存储 SHA256 哈希值
- 支持过期时间和手动撤销
- 支持独立的限流配置

API Key 格式示例：
    rd_sk_xxxxxxxxxxxxxxxxxxxx
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from radar.db.base import Base
from radar.models.mixins import UUID_PK, TimestampMixin


class APIKey(TimestampMixin, Base):
    """API 密钥表"""
    __tablename__ = "api_keys"
    __table_args__ = (
        UniqueConstraint("hashed_key", name="uq_api_keys_hashed_key"),
    )

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

    # 用途说明，如 "app-mobile"、"painel"
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # 明文前缀，便于在列表中识别
    prefix: Mapped[str] = mapped_column(String(12), index=True)

    hashed_key: Mapped[str] = mapped_column(String(128), nullable=False)

    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # 覆盖全局限流设置，为空使用默认值
    rate_limit_per_minute: Mapped[int | None] = mapped_column(Integer)
