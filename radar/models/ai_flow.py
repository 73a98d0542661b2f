"""
AI 流程图模型

管理员在可视化编辑器里搭建的流程：节点（触发器 / AI / 动作）和连线。
每次保存图结构都会生成一个版本快照，可回滚到任意版本。
后端只负责存储和版本管理，不执行流程。

review_status：
- draft: 草稿
- in_validation: 验证期（validation_window_days 天）
- approved: 已批准
"""

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from radar.db.base import Base
from radar.models.mixins import UUID_PK, TimestampMixin


class AIFlow(TimestampMixin, Base):
    """AI 流程表"""
    __tablename__ = "ai_flows"

    id: Mapped[UUID_PK]

    tenant_id: Mapped[str] = mapped_column(
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # simulation / real
    mode_default: Mapped[str] = mapped_column(String(20), default="simulation", nullable=False)

    review_status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)
    validation_window_days: Mapped[int] = mapped_column(Integer, default=7, nullable=False)
    validation_started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    validation_ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    created_by: Mapped[str | None] = mapped_column(String(36))


class AIFlowNode(TimestampMixin, Base):
    """流程节点表"""
    __tablename__ = "ai_flow_nodes"

    id: Mapped[UUID_PK]

    flow_id: Mapped[str] = mapped_column(
        ForeignKey("ai_flows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # TRIGGER / IA / ACTION
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    subtype: Mapped[str | None] = mapped_column(String(50))
    label: Mapped[str | None] = mapped_column(String(255))
    ai_agent_id: Mapped[str | None] = mapped_column(String(36))

    position_x: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    position_y: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    config: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)


class AIFlowEdge(TimestampMixin, Base):
    """流程连线表"""
    __tablename__ = "ai_flow_edges"

    id: Mapped[UUID_PK]

    flow_id: Mapped[str] = mapped_column(
        ForeignKey("ai_flows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    source_node_id: Mapped[str] = mapped_column(String(36), nullable=False)
    source_handle: Mapped[str] = mapped_column(String(50), default="output", nullable=False)
    target_node_id: Mapped[str] = mapped_column(String(36), nullable=False)
    target_handle: Mapped[str] = mapped_column(String(50), default="input", nullable=False)


class AIFlowVersion(TimestampMixin, Base):
    """流程版本快照表"""
    __tablename__ = "ai_flow_versions"
    __table_args__ = (
        UniqueConstraint("flow_id", "version", name="uq_flow_version"),
    )

    id: Mapped[UUID_PK]

    flow_id: Mapped[str] = mapped_column(
        ForeignKey("ai_flows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str | None] = mapped_column(String(255))
    is_current: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # stable / testing / deprecated
    stability_status: Mapped[str] = mapped_column(String(20), default="testing", nullable=False)

    nodes: Mapped[list[dict]] = mapped_column(JSON, default=list, nullable=False)
    edges: Mapped[list[dict]] = mapped_column(JSON, default=list, nullable=False)

    created_by: Mapped[str | None] = mapped_column(String(36))
