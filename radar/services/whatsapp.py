"""
WhatsApp 入站消息处理

Webhook 收到的每条文本消息：
1. 记录为 incoming
2. 按手机号找到用户（手机号在保存时已规范化）
3. 退订关键字 → 关闭 whatsapp_opt_in
4. 已知用户 → 文本风险检测
5. 按关键字生成机器人回复，发送并记录为 outgoing（发送失败只记日志）
"""

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from radar.config import get_settings
from radar.exceptions import NotificationError
from radar.infra.logging import get_logger
from radar.infra.whatsapp import InboundMessage, get_whatsapp_client
from radar.models import User, WhatsAppMessage
from radar.services import risk as risk_service

logger = get_logger(__name__)

OPT_OUT_KEYWORDS = ("sair", "parar", "stop")


@dataclass
class InboundResult:
    processed: bool
    user_id: str | None = None
    reply: str | None = None
    opted_out: bool = False
    risk_level: str | None = None


def build_bot_reply(text: str, user: User | None) -> str:
    app_url = get_settings().public_app_url.rstrip("/")
    lower = text.strip().lower()

    if "ajuda" in lower or lower in ("oi", "olá", "ola"):
        greeting = f" {user.display_name}" if user and user.display_name else ""
        return (
            f"Olá{greeting}! 👋\n\n"
            "Sou o assistente do Radar. Como posso ajudar?\n\n"
            "📱 *Comandos disponíveis:*\n"
            "• *status* - Ver seu progresso\n"
            "• *emergencia* - Recursos de emergência\n"
            "• *ajuda* - Ver este menu\n\n"
            f"Para acessar todas as funcionalidades, use nosso app: {app_url}"
        )

    if "emergencia" in lower or "emergência" in lower or "perigo" in lower:
        return (
            "🆘 *Recursos de Emergência*\n\n"
            "📞 *Ligue agora:*\n"
            "• *180* - Central de Atendimento à Mulher\n"
            "• *190* - Polícia Militar\n"
            "• *192* - SAMU\n"
            "• *188* - CVV (apoio emocional)\n\n"
            "Se você está em perigo imediato, ligue para 190 ou vá até a delegacia mais próxima.\n\n"
            "Você não está sozinha. 💜"
        )

    if "status" in lower or "progresso" in lower:
        if user is None:
            return (
                "Para ver seu status, você precisa ter uma conta no Radar.\n\n"
                f"Crie sua conta gratuita: {app_url}/cadastro"
            )
        return (
            "📊 *Seu Status*\n\n"
            "Acesse seu dashboard completo no app para ver:\n"
            "• Seu progresso\n"
            "• Entradas do diário\n\n"
            f"🔗 {app_url}/dashboard"
        )

    return (
        "Entendi sua mensagem. Para uma conversa mais completa, acesse nosso chat no app:\n\n"
        f"🔗 {app_url}/chat\n\n"
        "Se precisar de ajuda imediata, digite *emergencia*."
    )


async def find_user_by_phone(session: AsyncSession, phone: str) -> User | None:
    result = await session.execute(
        select(User).where(User.phone == phone, User.is_active.is_(True)).order_by(User.created_at).limit(1)
    )
    return result.scalar_one_or_none()


async def process_inbound(session: AsyncSession, message: InboundMessage) -> InboundResult:
    """处理一条入站消息并提交"""
    user = await find_user_by_phone(session, message.phone)

    session.add(
        WhatsAppMessage(
            tenant_id=user.tenant_id if user else None,
            user_id=user.id if user else None,
            phone=message.phone,
            direction="incoming",
            content=message.text,
            status="received",
            external_id=message.external_id,
        )
    )

    if message.text.strip().lower() in OPT_OUT_KEYWORDS:
        if user is not None:
            user.whatsapp_opt_in = False
        reply = "Você não receberá mais mensagens do Radar por aqui. Para voltar, ative as notificações no app."
        await _send_reply(session, message.phone, reply, user)
        await session.commit()
        logger.info("WhatsApp 用户已退订", extra={"phone": message.phone})
        return InboundResult(processed=True, user_id=user.id if user else None, reply=reply, opted_out=True)

    risk_level = None
    if user is not None:
        result, _ = await risk_service.process_chat_message(
            session, user=user, message_id=message.external_id, content=message.text
        )
        risk_level = result.level

    reply = build_bot_reply(message.text, user)
    await _send_reply(session, message.phone, reply, user)
    await session.commit()

    return InboundResult(
        processed=True,
        user_id=user.id if user else None,
        reply=reply,
        risk_level=risk_level,
    )


async def _send_reply(session: AsyncSession, phone: str, text: str, user: User | None) -> None:
    outgoing = WhatsAppMessage(
        tenant_id=user.tenant_id if user else None,
        user_id=user.id if user else None,
        phone=phone,
        direction="outgoing",
        content=text,
        status="pending",
    )
    session.add(outgoing)
    try:
        outgoing.external_id = await get_whatsapp_client().send_text(phone, text)
        outgoing.status = "sent"
    except NotificationError as e:
        outgoing.status = "failed"
        logger.warning(f"WhatsApp 回复发送失败: {e}", extra={"phone": phone})
