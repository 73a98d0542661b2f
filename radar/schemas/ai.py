"""AI 路由配置、人设和用量统计的请求/响应模型"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

RouteRole = Literal["principal", "fallback", "colaborativo"]
Provider = Literal["openai", "groq", "deepseek", "openrouter", "ollama", "gemini"]


class AIRouteCreate(BaseModel):
    feature_key: str = Field(..., min_length=1, max_length=50)
    plan_slug: str | None = Field(default=None, description="空表示所有套餐")
    user_role: str | None = Field(default=None, description="空表示所有角色")
    provider: Provider
    model: str = Field(..., min_length=1, max_length=100)
    route_role: RouteRole = "principal"
    priority: int = Field(default=100, ge=0)
    weight: int = Field(default=1, ge=0)
    limit_daily: int | None = Field(default=None, ge=1)
    limit_monthly: int | None = Field(default=None, ge=1)
    is_active: bool = True


class AIRouteUpdate(BaseModel):
    plan_slug: str | None = None
    user_role: str | None = None
    provider: Provider | None = None
    model: str | None = Field(default=None, min_length=1, max_length=100)
    route_role: RouteRole | None = None
    priority: int | None = Field(default=None, ge=0)
    weight: int | None = Field(default=None, ge=0)
    limit_daily: int | None = Field(default=None, ge=1)
    limit_monthly: int | None = Field(default=None, ge=1)
    is_active: bool | None = None


class AIRouteResponse(BaseModel):
    id: str
    tenant_id: str | None = None
    feature_key: str
    plan_slug: str | None = None
    user_role: str | None = None
    provider: str
    model: str
    route_role: str
    priority: int
    weight: int
    limit_daily: int | None = None
    limit_monthly: int | None = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class AIPersonaCreate(BaseModel):
    slug: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9_-]+$")
    name: str = Field(..., min_length=1, max_length=255)
    feature_key: str = Field(..., min_length=1, max_length=50)
    system_prompt: str = Field(..., min_length=1)
    allowed_roles: list[str] = Field(default_factory=list, description="空表示所有角色")
    allowed_plans: list[str] = Field(default_factory=list, description="空表示所有套餐")
    is_active: bool = True


class AIPersonaUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    system_prompt: str | None = Field(default=None, min_length=1)
    allowed_roles: list[str] | None = None
    allowed_plans: list[str] | None = None
    is_active: bool | None = None


class AIPersonaResponse(BaseModel):
    id: str
    tenant_id: str | None = None
    slug: str
    name: str
    feature_key: str
    system_prompt: str
    allowed_roles: list[str]
    allowed_plans: list[str]
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class AIUsageBucket(BaseModel):
    key: str
    calls: int
    failures: int
    tokens_input: int
    tokens_output: int
    avg_latency_ms: float


class AIUsageSummary(BaseModel):
    days: int
    total_calls: int
    total_failures: int
    total_tokens: int
    by_provider: list[AIUsageBucket]
    by_feature: list[AIUsageBucket]
