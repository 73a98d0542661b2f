"""套餐目录、功能覆盖和加购包的请求/响应模型"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

OverrideType = Literal["grant", "revoke", "limit_custom"]


class PlanFeatureUpsert(BaseModel):
    feature_key: str = Field(..., min_length=1, max_length=50)
    enabled: bool = True
    limit_daily: int | None = Field(default=None, ge=0, description="空表示不限制")
    limit_weekly: int | None = Field(default=None, ge=0)
    limit_monthly: int | None = Field(default=None, ge=0)


class PlanFeatureResponse(PlanFeatureUpsert):
    class Config:
        from_attributes = True


class PlanCreate(BaseModel):
    slug: str = Field(..., min_length=1, max_length=50, pattern=r"^[a-z0-9_-]+$")
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = None
    highlights: list[str] = Field(default_factory=list)
    price_monthly_cents: int = Field(default=0, ge=0)
    price_yearly_cents: int = Field(default=0, ge=0)
    currency: str = Field(default="brl", min_length=3, max_length=3)
    stripe_price_monthly: str | None = None
    stripe_price_yearly: str | None = None
    is_visible: bool = True
    sort_order: int = 0
    features: list[PlanFeatureUpsert] = Field(default_factory=list)


class PlanUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    description: str | None = None
    highlights: list[str] | None = None
    price_monthly_cents: int | None = Field(default=None, ge=0)
    price_yearly_cents: int | None = Field(default=None, ge=0)
    stripe_price_monthly: str | None = None
    stripe_price_yearly: str | None = None
    is_visible: bool | None = None
    sort_order: int | None = None


class PlanResponse(BaseModel):
    id: str
    slug: str
    name: str
    description: str | None = None
    highlights: list[str]
    price_monthly_cents: int
    price_yearly_cents: int
    currency: str
    is_visible: bool
    sort_order: int
    features: list[PlanFeatureResponse] = Field(default_factory=list)

    class Config:
        from_attributes = True


class FeatureOverrideCreate(BaseModel):
    user_id: str
    feature_key: str = Field(..., min_length=1, max_length=50)
    override_type: OverrideType
    limit_daily: int | None = Field(default=None, ge=0)
    limit_weekly: int | None = Field(default=None, ge=0)
    limit_monthly: int | None = Field(default=None, ge=0)
    reason: str | None = Field(default=None, max_length=1000)
    valid_until: datetime | None = None


class FeatureOverrideResponse(BaseModel):
    id: str
    user_id: str
    feature_key: str
    override_type: str
    limit_daily: int | None = None
    limit_weekly: int | None = None
    limit_monthly: int | None = None
    reason: str | None = None
    created_by: str | None = None
    valid_until: datetime | None = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class AddonResponse(BaseModel):
    id: str
    name: str
    description: str
    type: str
    category: str
    price_cents: int
    feature_key: str | None = None
    credits: int | None = None
    validity_days: int | None = None
    one_time_purchase: bool = False
    coming_soon: bool = False
    includes: list[str] = Field(default_factory=list)
    available_for_plans: list[str] = Field(default_factory=list)


class AddonPurchaseResponse(BaseModel):
    id: str
    addon_id: str
    feature_key: str | None = None
    credits_total: int | None = None
    credits_remaining: int | None = None
    expires_at: datetime | None = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True
