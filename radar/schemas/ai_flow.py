"""AI 流程图编辑器的请求/响应模型"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

NodeType = Literal["TRIGGER", "IA", "ACTION"]
FlowMode = Literal["simulation", "real"]
ReviewStatus = Literal["draft", "in_validation", "approved"]


class AIFlowCreate(BaseModel):
    name: str = Field(..., max_length=255)
    description: str | None = None
    mode_default: FlowMode = "simulation"
    validation_window_days: int = Field(default=7, ge=1, le=90)


class AIFlowUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    is_active: bool | None = None
    mode_default: FlowMode | None = None
    review_status: ReviewStatus | None = None
    validation_window_days: int | None = Field(default=None, ge=1, le=90)


class AIFlowResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    is_active: bool
    mode_default: str
    review_status: str
    validation_window_days: int
    validation_started_at: datetime | None = None
    validation_ends_at: datetime | None = None
    created_by: str | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class FlowNode(BaseModel):
    id: str = Field(..., min_length=1, description="节点 id（客户端 id 即可，保存时重新分配）")
    type: NodeType
    subtype: str | None = None
    label: str | None = None
    ai_agent_id: str | None = None
    position_x: float = 0
    position_y: float = 0
    config: dict = Field(default_factory=dict)

    class Config:
        from_attributes = True


class FlowEdge(BaseModel):
    id: str | None = None
    source_node_id: str
    source_handle: str = "output"
    target_node_id: str
    target_handle: str = "input"

    class Config:
        from_attributes = True


class FlowGraphSave(BaseModel):
    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)
    label: str | None = Field(default=None, max_length=255, description="版本备注")


class FlowGraphResponse(BaseModel):
    flow: AIFlowResponse
    nodes: list[FlowNode]
    edges: list[FlowEdge]
    version: int | None = None


class FlowVersionResponse(BaseModel):
    id: str
    version: int
    label: str | None = None
    is_current: bool
    stability_status: str
    created_by: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True
