"""用户与 API Key 的请求/响应模型"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"
UserRole = Literal["usuaria", "profissional", "admin", "super_admin"]


class UserCreate(BaseModel):
    """创建用户请求（平台管理端，同时签发一个 API Key）"""
    email: str = Field(..., pattern=EMAIL_PATTERN, max_length=255)
    display_name: str | None = Field(default=None, max_length=255)
    role: UserRole = "usuaria"
    phone: str | None = Field(default=None, max_length=20)


class UserUpdate(BaseModel):
    """租户管理员修改用户"""
    role: UserRole | None = None
    is_active: bool | None = None
    display_name: str | None = Field(default=None, max_length=255)


class ProfileUpdate(BaseModel):
    """用户修改自己的资料"""
    display_name: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=20)
    whatsapp_opt_in: bool | None = None
    email_notifications: bool | None = None


class UserResponse(BaseModel):
    id: str
    tenant_id: str
    email: str
    display_name: str | None = None
    role: str
    phone: str | None = None
    whatsapp_opt_in: bool
    email_notifications: bool
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UserListResponse(BaseModel):
    items: list[UserResponse]
    total: int


class UserCreateResponse(UserResponse):
    api_key: str = Field(..., description="用户 API Key，仅此时显示一次")


class MeResponse(BaseModel):
    """GET /v1/me"""
    user: UserResponse
    tenant: dict
    plan_slug: str


class FeatureUsageItem(BaseModel):
    feature: str
    enabled: bool
    used_today: int
    used_week: int
    used_month: int
    limit_daily: int | None = None
    limit_weekly: int | None = None
    limit_monthly: int | None = None
    remaining: int | None = None


class UsageResponse(BaseModel):
    plan_slug: str
    features: list[FeatureUsageItem]


class APIKeyCreate(BaseModel):
    """为用户签发 API Key"""
    user_id: str
    name: str = Field(..., max_length=255, description="Key 名称（用于识别用途）")
    expires_at: datetime | None = Field(default=None, description="过期时间，空表示永不过期")
    rate_limit_per_minute: int | None = Field(default=None, ge=1, description="独立限流配置")


class APIKeyInfo(BaseModel):
    """API Key 信息（不含完整 Key）"""
    id: str
    user_id: str
    name: str
    prefix: str
    revoked: bool
    expires_at: datetime | None
    last_used_at: datetime | None
    rate_limit_per_minute: int | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class APIKeySecret(APIKeyInfo):
    """API Key 创建响应（含完整 Key，仅创建时返回一次）"""
    api_key: str
