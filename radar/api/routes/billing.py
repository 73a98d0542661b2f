"""
计费接口 (Stripe)

结账、加购、客户门户和订阅查询。Stripe 未配置时返回 503 BILLING_NOT_CONFIGURED，
业务错误（价格未配置、无客户记录等）由全局 RadarError 处理器映射为 400。
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from radar.api.deps import get_current_context, get_db_session
from radar.auth.api_key import APIKeyContext
from radar.schemas.billing import (
    AddonCheckoutRequest,
    CheckoutRequest,
    CheckoutResponse,
    PortalResponse,
    SubscriptionInfo,
)
from radar.services import billing as billing_service

router = APIRouter()


@router.post("/v1/billing/checkout", response_model=CheckoutResponse)
async def create_checkout(
    payload: CheckoutRequest,
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    """创建订阅结账会话，前端跳转到返回的 url"""
    result = await billing_service.create_checkout_session(
        db, user=context.user, plan_slug=payload.plan_slug, period=payload.period
    )
    return CheckoutResponse(**result)


@router.post("/v1/billing/addon-checkout", response_model=CheckoutResponse)
async def create_addon_checkout(
    payload: AddonCheckoutRequest,
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    result = await billing_service.create_addon_checkout(db, user=context.user, addon_id=payload.addon_id)
    return CheckoutResponse(**result)


@router.post("/v1/billing/portal", response_model=PortalResponse)
async def create_portal(context: APIKeyContext = Depends(get_current_context)):
    result = await billing_service.create_portal_session(context.user)
    return PortalResponse(**result)


@router.get("/v1/billing/subscription", response_model=SubscriptionInfo)
async def get_subscription(
    context: APIKeyContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db_session),
):
    info = await billing_service.get_subscription_info(db, context.user)
    return SubscriptionInfo(**info)
