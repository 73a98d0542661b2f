"""计费相关的请求/响应模型"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    plan_slug: str = Field(..., min_length=1, max_length=50)
    period: Literal["monthly", "yearly"] = "monthly"


class AddonCheckoutRequest(BaseModel):
    addon_id: str = Field(..., min_length=1, max_length=50)


class CheckoutResponse(BaseModel):
    session_id: str
    url: str | None = None


class PortalResponse(BaseModel):
    url: str


class SubscriptionInfo(BaseModel):
    plan_slug: str
    status: str
    period: str | None = None
    current_period_end: datetime | None = None
    has_customer: bool = False


class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
    handled: bool = False
