"""Coach 聊天的请求/响应模型"""

from datetime import datetime

from pydantic import BaseModel, Field

from radar.schemas.risk import RiskDetectionResponse


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=8000)
    session_id: str | None = Field(default=None, max_length=36)
    collaborative: bool = False


class ChatMessageResponse(BaseModel):
    id: str
    session_id: str
    channel: str
    role: str
    content: str
    provider: str | None = None
    model: str | None = None
    persona: str | None = None
    tokens: int = 0
    risk_level: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class CollaborativeAnswer(BaseModel):
    provider: str
    model: str
    content: str
    tokens_total: int

    class Config:
        from_attributes = True


class ChatResponse(BaseModel):
    session_id: str
    message: ChatMessageResponse
    reply: ChatMessageResponse
    risk: RiskDetectionResponse
    risk_alert_id: str | None = None
    collaborative_responses: list[CollaborativeAnswer] = Field(default_factory=list)


class ChatSessionSummary(BaseModel):
    session_id: str
    messages: int
    last_activity: datetime
