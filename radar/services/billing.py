"""
Stripe 计费服务

结账：
- 订阅：套餐的 Stripe Price（按 monthly/yearly），mode=subscription
- 加购包：目录里配置的 Price，或按目录价格即时生成 price_data，mode=payment
- 客户门户：用户自行管理订阅和支付方式

Webhook：
    签名校验 → 按 event id 去重（BillingEvent）→ 按类型处理 → 同一事务提交

stripe SDK 是同步的，所有 API 调用都通过 asyncio.to_thread 执行。
"""

import asyncio
from datetime import datetime, timezone
from typing import Any

import stripe
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from radar.config import get_settings
from radar.exceptions import BillingError, BillingNotConfiguredError, WebhookError
from radar.infra.logging import get_logger
from radar.models import BillingEvent, Plan, Subscription, User
from radar.models.subscription import LIVE_SUBSCRIPTION_STATUSES
from radar.services import addons as addon_service
from radar.services import plans as plan_service
from radar.services.notifications import notify

logger = get_logger(__name__)

BILLING_PERIODS = ("monthly", "yearly")

# Stripe 订阅状态 → 本地状态
STRIPE_STATUS_MAP = {
    "active": "active",
    "trialing": "trialing",
    "past_due": "past_due",
    "unpaid": "past_due",
    "incomplete": "past_due",
    "incomplete_expired": "canceled",
    "canceled": "canceled",
    "paused": "paused",
}


def _configure_stripe() -> None:
    settings = get_settings()
    if not settings.stripe_enabled:
        raise BillingNotConfiguredError("Stripe não configurado")
    stripe.api_key = settings.stripe_secret_key


def _from_timestamp(value: int | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


async def _call_stripe(func, **params) -> Any:
    try:
        return await asyncio.to_thread(func, **params)
    except stripe.StripeError as e:
        logger.error(f"Stripe API 错误: {e}")
        raise BillingError(f"Erro no Stripe: {e.user_message or e}", code="STRIPE_ERROR") from e


def _customer_params(user: User) -> dict[str, str]:
    if user.stripe_customer_id:
        return {"customer": user.stripe_customer_id}
    return {"customer_email": user.email}


# ==================== 结账 ====================


async def create_checkout_session(
    session: AsyncSession,
    *,
    user: User,
    plan_slug: str,
    period: str = "monthly",
) -> dict[str, str]:
    """创建订阅结账会话，返回 {"session_id", "url"}"""
    _configure_stripe()
    settings = get_settings()

    if period not in BILLING_PERIODS:
        raise BillingError(f"Período inválido: {period}", code="INVALID_PERIOD")

    plan = (await session.execute(select(Plan).where(Plan.slug == plan_slug))).scalar_one_or_none()
    if plan is None:
        raise BillingError(f"Plano não encontrado: {plan_slug}", code="PLAN_NOT_FOUND")

    price_id = plan.stripe_price_monthly if period == "monthly" else plan.stripe_price_yearly
    if not price_id:
        raise BillingError("Preço do Stripe não configurado para este plano", code="PRICE_NOT_CONFIGURED")

    metadata = {
        "type": "subscription",
        "user_id": user.id,
        "tenant_id": user.tenant_id,
        "plan_slug": plan_slug,
        "period": period,
    }
    checkout = await _call_stripe(
        stripe.checkout.Session.create,
        mode="subscription",
        line_items=[{"price": price_id, "quantity": 1}],
        success_url=settings.stripe_success_url,
        cancel_url=settings.stripe_cancel_url,
        client_reference_id=user.id,
        metadata=metadata,
        subscription_data={"metadata": metadata},
        **_customer_params(user),
    )
    logger.info(f"订阅结账会话已创建: {plan_slug}/{period}", extra={"checkout_session": checkout.id})
    return {"session_id": checkout.id, "url": checkout.url}


async def create_addon_checkout(session: AsyncSession, *, user: User, addon_id: str) -> dict[str, str]:
    """创建加购包结账会话（一次性付款）"""
    _configure_stripe()
    settings = get_settings()

    addon = addon_service.get_addon(addon_id)
    if addon is None:
        raise BillingError(f"Add-on não encontrado: {addon_id}", code="ADDON_NOT_FOUND")
    if addon.coming_soon:
        raise BillingError("Add-on ainda não disponível", code="ADDON_NOT_AVAILABLE")

    plan_slug = await plan_service.get_user_plan_slug(session, user)
    if plan_slug not in addon.available_for_plans:
        raise BillingError("Add-on não disponível para seu plano", code="ADDON_NOT_AVAILABLE")

    if addon.one_time_purchase and await addon_service.has_purchased(session, user.id, addon.id):
        raise BillingError("Add-on já adquirido", code="ADDON_ALREADY_PURCHASED")

    if addon.stripe_price_id:
        line_item = {"price": addon.stripe_price_id, "quantity": 1}
    else:
        line_item = {
            "price_data": {
                "currency": settings.stripe_currency,
                "unit_amount": addon.price_cents,
                "product_data": {"name": addon.name, "description": addon.description},
            },
            "quantity": 1,
        }

    checkout = await _call_stripe(
        stripe.checkout.Session.create,
        mode="payment",
        line_items=[line_item],
        success_url=settings.stripe_success_url,
        cancel_url=settings.stripe_cancel_url,
        client_reference_id=user.id,
        metadata={
            "type": "addon",
            "addon_id": addon.id,
            "user_id": user.id,
            "tenant_id": user.tenant_id,
        },
        **_customer_params(user),
    )
    return {"session_id": checkout.id, "url": checkout.url}


async def create_portal_session(user: User) -> dict[str, str]:
    _configure_stripe()
    if not user.stripe_customer_id:
        raise BillingError("Nenhuma assinatura encontrada", code="NO_CUSTOMER")

    portal = await _call_stripe(
        stripe.billing_portal.Session.create,
        customer=user.stripe_customer_id,
        return_url=get_settings().stripe_portal_return_url,
    )
    return {"url": portal.url}


async def get_subscription_info(session: AsyncSession, user: User) -> dict[str, Any]:
    subscription = await plan_service.get_active_subscription(session, user.id)
    if subscription is None:
        return {
            "plan_slug": await plan_service.get_user_plan_slug(session, user),
            "status": "free",
            "period": None,
            "current_period_end": None,
            "has_customer": bool(user.stripe_customer_id),
        }
    return {
        "plan_slug": subscription.plan_slug,
        "status": subscription.status,
        "period": subscription.period,
        "current_period_end": subscription.current_period_end,
        "has_customer": bool(user.stripe_customer_id),
    }


# ==================== Webhook ====================


def verify_webhook(payload: bytes, signature: str | None) -> None:
    """
    校验 Stripe 签名

    Raises:
        BillingNotConfiguredError: 未配置 webhook secret
        WebhookError: 签名缺失或无效
    """
    secret = get_settings().stripe_webhook_secret
    if not secret:
        raise BillingNotConfiguredError("Webhook do Stripe não configurado")
    if not signature:
        raise WebhookError("Assinatura ausente", code="INVALID_SIGNATURE")
    try:
        stripe.Webhook.construct_event(payload, signature, secret)
    except stripe.SignatureVerificationError as e:
        raise WebhookError("Assinatura inválida", code="INVALID_SIGNATURE") from e
    except ValueError as e:
        raise WebhookError("Payload inválido", code="INVALID_PAYLOAD") from e


async def _find_subscription(session: AsyncSession, stripe_subscription_id: str | None) -> Subscription | None:
    if not stripe_subscription_id:
        return None
    result = await session.execute(
        select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
    )
    return result.scalar_one_or_none()


async def _plan_slug_for_price(session: AsyncSession, price_id: str | None) -> tuple[str, str] | None:
    """Stripe Price ID → (plan_slug, period)"""
    if not price_id:
        return None
    result = await session.execute(
        select(Plan).where(or_(Plan.stripe_price_monthly == price_id, Plan.stripe_price_yearly == price_id))
    )
    plan = result.scalars().first()
    if plan is None:
        return None
    return plan.slug, "monthly" if plan.stripe_price_monthly == price_id else "yearly"


def _subscription_price_id(data: dict) -> str | None:
    items = (data.get("items") or {}).get("data") or []
    if not items:
        return None
    return (items[0].get("price") or {}).get("id")


def _subscription_period_end(data: dict) -> datetime | None:
    end = data.get("current_period_end")
    if end is None:
        items = (data.get("items") or {}).get("data") or []
        if items:
            end = items[0].get("current_period_end")
    return _from_timestamp(end)


async def _handle_checkout_completed(session: AsyncSession, data: dict) -> bool:
    metadata = data.get("metadata") or {}
    user_id = metadata.get("user_id") or data.get("client_reference_id")
    user = await session.get(User, user_id) if user_id else None
    if user is None:
        logger.warning("checkout.session.completed 找不到用户", extra={"checkout_session": data.get("id")})
        return False

    customer_id = data.get("customer")
    if customer_id and not user.stripe_customer_id:
        user.stripe_customer_id = customer_id

    if metadata.get("type") == "addon":
        addon = addon_service.get_addon(metadata.get("addon_id", ""))
        if addon is None:
            logger.warning(f"未知加购包: {metadata.get('addon_id')}")
            return False
        await addon_service.grant_addon(session, user=user, addon=addon, stripe_session_id=data.get("id"))
        await notify(
            session,
            user=user,
            title="Add-on ativado",
            body=f"{addon.name} já está disponível na sua conta.",
            category="billing",
            channels=["in_app"],
        )
        return True

    plan_slug = metadata.get("plan_slug")
    stripe_subscription_id = data.get("subscription")
    if not plan_slug:
        return False

    subscription = await _find_subscription(session, stripe_subscription_id)
    if subscription is None:
        # 同一用户只保留一个有效订阅
        live = await session.execute(
            select(Subscription).where(
                Subscription.user_id == user.id,
                Subscription.status.in_(LIVE_SUBSCRIPTION_STATUSES),
            )
        )
        for old in live.scalars().all():
            old.status = "canceled"
            old.canceled_at = datetime.now(timezone.utc)

        subscription = Subscription(
            tenant_id=user.tenant_id,
            user_id=user.id,
            stripe_subscription_id=stripe_subscription_id,
        )
        session.add(subscription)

    subscription.plan_slug = plan_slug
    subscription.period = metadata.get("period") or "monthly"
    subscription.status = "active"
    subscription.stripe_customer_id = customer_id

    await notify(
        session,
        user=user,
        title="Assinatura confirmada",
        body=f"Seu plano {plan_slug} está ativo. Obrigada por apoiar o Radar!",
        category="billing",
        channels=["in_app"],
    )
    return True


async def _handle_subscription_updated(session: AsyncSession, data: dict) -> bool:
    subscription = await _find_subscription(session, data.get("id"))
    if subscription is None:
        logger.info("订阅更新事件对应的本地订阅不存在", extra={"stripe_subscription_id": data.get("id")})
        return False

    subscription.status = STRIPE_STATUS_MAP.get(data.get("status", ""), subscription.status)
    subscription.current_period_end = _subscription_period_end(data) or subscription.current_period_end

    plan = await _plan_slug_for_price(session, _subscription_price_id(data))
    if plan is not None:
        subscription.plan_slug, subscription.period = plan

    if subscription.status == "canceled" and subscription.canceled_at is None:
        subscription.canceled_at = datetime.now(timezone.utc)
    return True


async def _handle_subscription_deleted(session: AsyncSession, data: dict) -> bool:
    subscription = await _find_subscription(session, data.get("id"))
    if subscription is None:
        return False
    subscription.status = "canceled"
    subscription.canceled_at = datetime.now(timezone.utc)
    return True


async def _handle_payment_failed(session: AsyncSession, data: dict) -> bool:
    stripe_subscription_id = data.get("subscription")
    if not stripe_subscription_id:
        details = ((data.get("parent") or {}).get("subscription_details") or {})
        stripe_subscription_id = details.get("subscription")

    subscription = await _find_subscription(session, stripe_subscription_id)
    if subscription is None:
        return False

    subscription.status = "past_due"
    user = await session.get(User, subscription.user_id)
    if user is not None:
        await notify(
            session,
            user=user,
            title="Falha no pagamento",
            body="Não conseguimos processar o pagamento da sua assinatura. Atualize sua forma de pagamento.",
            category="billing",
        )
    return True


EVENT_HANDLERS = {
    "checkout.session.completed": _handle_checkout_completed,
    "customer.subscription.updated": _handle_subscription_updated,
    "customer.subscription.deleted": _handle_subscription_deleted,
    "invoice.payment_failed": _handle_payment_failed,
}


async def handle_event(session: AsyncSession, event: dict) -> dict[str, Any]:
    """
    处理一个已验签的 Stripe 事件

    同一 event id 只处理一次；未知类型直接确认。处理结果与去重记录在同一事务中提交。
    """
    event_id = event.get("id")
    event_type = event.get("type", "")
    if not event_id:
        raise WebhookError("Evento sem id", code="INVALID_PAYLOAD")

    existing = await session.execute(select(BillingEvent.id).where(BillingEvent.stripe_event_id == event_id))
    if existing.scalar_one_or_none() is not None:
        logger.info(f"重复的 Stripe 事件，已忽略: {event_id}")
        return {"received": True, "duplicate": True, "handled": False}

    handler = EVENT_HANDLERS.get(event_type)
    handled = False
    if handler is not None:
        data = (event.get("data") or {}).get("object") or {}
        handled = await handler(session, data)
    else:
        logger.debug(f"未处理的 Stripe 事件类型: {event_type}")

    session.add(BillingEvent(stripe_event_id=event_id, event_type=event_type))
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        logger.info(f"并发重复的 Stripe 事件: {event_id}")
        return {"received": True, "duplicate": True, "handled": False}

    logger.info(f"Stripe 事件已处理: {event_type}", extra={"event_id": event_id, "handled": handled})
    return {"received": True, "duplicate": False, "handled": handled}
