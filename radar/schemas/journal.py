"""日记相关的请求/响应模型"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from radar.schemas.risk import RiskAlertResponse, RiskDetectionResponse

EntryType = Literal["episode", "feeling", "note"]


class JournalEntryCreate(BaseModel):
    content: str = Field(..., description="正文，不能为空")
    title: str | None = Field(default=None, max_length=255)
    tags: list[str] = Field(default_factory=list)
    emotions: list[str] = Field(default_factory=list)
    impact_score: int | None = Field(default=None, ge=1, le=10)
    entry_type: EntryType = "episode"
    metadata: dict = Field(default_factory=dict)


class JournalEntryUpdate(BaseModel):
    content: str | None = Field(default=None, min_length=1)
    title: str | None = Field(default=None, max_length=255)
    tags: list[str] | None = None
    emotions: list[str] | None = None
    impact_score: int | None = Field(default=None, ge=1, le=10)
    entry_type: EntryType | None = None
    metadata: dict | None = None


class JournalEntryResponse(BaseModel):
    id: str
    title: str | None = None
    content: str
    tags: list[str]
    emotions: list[str]
    impact_score: int | None = None
    entry_type: str
    risk_level: str
    metadata: dict = Field(default_factory=dict, validation_alias="extra_metadata")
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class RiskPatternResponse(BaseModel):
    high_risk_count: int
    moderate_risk_count: int
    should_suggest_safety_plan: bool


class RiskAnalysisResponse(BaseModel):
    risk: RiskDetectionResponse
    high_risk_tags_found: list[str]
    moderate_risk_tags_found: list[str]
    pattern: RiskPatternResponse | None = None


class JournalCreateResponse(BaseModel):
    entry: JournalEntryResponse
    risk_alert: RiskAlertResponse | None = None
    risk_analysis: RiskAnalysisResponse


class JournalUpdateResponse(BaseModel):
    entry: JournalEntryResponse
    risk_alert: RiskAlertResponse | None = None


class JournalListResponse(BaseModel):
    items: list[JournalEntryResponse]
    total: int
    limit: int
    offset: int
