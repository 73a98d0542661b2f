"""
外部回调接口

- POST /webhooks/stripe   : Stripe 事件（签名校验 + 事件 id 去重）
- GET  /webhooks/whatsapp : Meta 订阅校验
- POST /webhooks/whatsapp : 入站 WhatsApp 消息（Meta / Z-API JSON，Twilio 表单）

这些接口不走 API Key 认证。
"""

import json

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from radar.api.deps import get_db_session
from radar.config import get_settings
from radar.infra.logging import get_logger
from radar.infra.whatsapp import parse_webhook_payload
from radar.schemas.billing import WebhookAck
from radar.services import billing as billing_service
from radar.services import whatsapp as whatsapp_service

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


# ==================== Stripe ====================


@router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(request: Request, db: AsyncSession = Depends(get_db_session)):
    """
    Stripe 事件回调

    先用原始请求体校验签名（400 INVALID_SIGNATURE），再按事件类型处理。
    重复事件和未知类型都返回 200，避免 Stripe 重试。
    """
    payload = await request.body()
    billing_service.verify_webhook(payload, request.headers.get("stripe-signature"))

    try:
        event = json.loads(payload)
    except json.JSONDecodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "INVALID_PAYLOAD", "detail": "Invalid JSON payload"},
        )

    result = await billing_service.handle_event(db, event)
    return WebhookAck(**result)


# ==================== WhatsApp ====================


@router.get("/whatsapp")
async def verify_whatsapp_webhook(
    mode: str | None = Query(None, alias="hub.mode"),
    token: str | None = Query(None, alias="hub.verify_token"),
    challenge: str | None = Query(None, alias="hub.challenge"),
):
    """Meta 订阅校验：token 匹配时原样返回 challenge"""
    settings = get_settings()
    if mode == "subscribe" and settings.whatsapp_verify_token and token == settings.whatsapp_verify_token:
        return PlainTextResponse(challenge or "")
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": "VERIFICATION_FAILED", "detail": "Webhook verification failed"},
    )


@router.post("/whatsapp")
async def whatsapp_webhook(request: Request, db: AsyncSession = Depends(get_db_session)) -> dict:
    """入站消息；非文本消息和状态回执直接确认"""
    provider = get_settings().whatsapp_provider
    content_type = request.headers.get("content-type", "")

    if provider == "twilio" or content_type.startswith("application/x-www-form-urlencoded"):
        form = await request.form()
        payload = dict(form)
        provider = "twilio"
    else:
        try:
            payload = await request.json()
        except json.JSONDecodeError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"code": "INVALID_PAYLOAD", "detail": "Invalid JSON payload"},
            )

    message = parse_webhook_payload(provider, payload)
    if message is None or not message.text.strip():
        return {"status": "ignored"}

    result = await whatsapp_service.process_inbound(db, message)
    logger.info(
        "WhatsApp 入站消息已处理",
        extra={"known_user": result.user_id is not None, "opted_out": result.opted_out},
    )
    return {"status": "processed"}
