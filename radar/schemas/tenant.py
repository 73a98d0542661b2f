"""租户相关的请求/响应模型"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from radar.schemas.user import EMAIL_PATTERN

# 类型定义（用于验证）
TenantStatus = Literal["active", "trial", "suspended", "cancelled"]


class TenantCreate(BaseModel):
    """创建租户请求（同时创建初始管理员）"""
    slug: str = Field(..., min_length=2, max_length=100, pattern=r"^[a-z0-9][a-z0-9-]*$", description="租户标识，全局唯一")
    name: str = Field(..., min_length=1, max_length=255)
    plan_slug: str = Field(default="free", description="租户默认套餐")
    status: Literal["active", "trial"] = "active"
    settings: dict = Field(default_factory=dict, description="features 开关和 ai 默认配置")
    branding: dict = Field(default_factory=dict)
    max_ai_requests_per_day: int | None = Field(default=None, ge=1)
    admin_email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255, description="初始管理员邮箱")
    admin_name: str | None = Field(default=None, max_length=255)


class TenantUpdate(BaseModel):
    """更新租户请求"""
    name: str | None = Field(default=None, min_length=1, max_length=255)
    plan_slug: str | None = None
    status: TenantStatus | None = None
    settings: dict | None = None
    branding: dict | None = None
    max_ai_requests_per_day: int | None = Field(default=None, ge=1)


class TenantResponse(BaseModel):
    """租户信息响应"""
    id: str
    slug: str
    name: str
    status: str
    plan_slug: str
    settings: dict
    branding: dict
    max_ai_requests_per_day: int | None = None
    created_at: datetime
    updated_at: datetime
    disabled_at: datetime | None = None
    disabled_reason: str | None = None

    # 统计信息（由路由层填充）
    user_count: int | None = None

    class Config:
        from_attributes = True


class TenantCreateResponse(TenantResponse):
    """创建租户响应（含初始管理员 API Key）"""
    admin_user_id: str
    initial_api_key: str = Field(..., description="初始管理员 API Key，仅此时显示一次")


class TenantDisableRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500, description="禁用原因")


class TenantListResponse(BaseModel):
    items: list[TenantResponse]
    total: int
    skip: int
    limit: int
