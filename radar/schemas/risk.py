"""风险检测与预警的响应模型"""

from datetime import datetime

from pydantic import BaseModel, Field


class RiskDetectionResponse(BaseModel):
    detected: bool
    level: str
    category: str
    triggers: list[str]
    recommendation: str


class AnalyzeRiskRequest(BaseModel):
    message: str = Field(..., min_length=1)
    tags: list[str] = Field(default_factory=list)


class RiskAlertResponse(BaseModel):
    id: str
    user_id: str
    source: str
    source_id: str | None = None
    level: str
    category: str
    triggers: list[str]
    recommendation: str
    is_resolved: bool
    resolved_at: datetime | None = None
    resolved_by: str | None = None
    resolution_note: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class RiskAlertListResponse(BaseModel):
    items: list[RiskAlertResponse]
    total: int


class RiskAlertResolve(BaseModel):
    note: str | None = Field(default=None, max_length=2000)
