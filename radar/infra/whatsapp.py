"""
WhatsApp 客户端

支持三种接入方式（WHATSAPP_PROVIDER）：
- meta: WhatsApp Cloud API（graph.facebook.com）
- z-api: Z-API 实例
- twilio: Twilio WhatsApp

发送统一走 httpx；入站 Webhook 的载荷解析也放在这里，
业务处理（机器人回复、风险检测）见 services/whatsapp.py。
"""

import re
from dataclasses import dataclass
from typing import Any

import httpx

from radar.config import Settings, get_settings
from radar.exceptions import NotificationError
from radar.infra.logging import get_logger

logger = get_logger(__name__)

MESSAGE_TEMPLATES: dict[str, str] = {
    "welcome": "Olá {{name}}! Bem-vinda ao Radar. Estamos aqui para ajudar você. 💜",
    "risk_alert": "⚠️ {{name}}, detectamos sinais de risco no seu registro. Acesse seu plano de segurança: {{link}}",
    "reminder": "📝 {{name}}, que tal registrar como você está se sentindo hoje? Seu diário te espera: {{link}}",
}


@dataclass
class InboundMessage:
    """一条入站文本消息"""
    phone: str
    text: str
    external_id: str | None = None


def format_phone_number(phone: str) -> str:
    """只保留数字；11 位巴西号码补 55 国家码"""
    cleaned = re.sub(r"\D", "", phone or "")
    if len(cleaned) == 11 and not cleaned.startswith("55"):
        cleaned = "55" + cleaned
    return cleaned


def render_template(name: str, variables: dict[str, str]) -> str:
    """替换模板中的 {{var}} 占位符，未知模板返回空字符串"""
    message = MESSAGE_TEMPLATES.get(name, "")
    for key, value in variables.items():
        message = message.replace("{{" + key + "}}", value)
    return message


def parse_webhook_payload(provider: str, payload: dict[str, Any]) -> InboundMessage | None:
    """
    从各家 Webhook 载荷中提取文本消息

    非文本消息（图片、状态回执等）返回 None。
    """
    if provider == "z-api":
        text = (payload.get("text") or {}).get("message")
        if text and payload.get("phone"):
            return InboundMessage(
                phone=format_phone_number(payload["phone"]),
                text=text,
                external_id=payload.get("messageId"),
            )
        return None

    if provider == "twilio":
        body = payload.get("Body")
        sender = payload.get("From", "")
        if body and sender:
            return InboundMessage(
                phone=format_phone_number(sender.replace("whatsapp:", "")),
                text=body,
                external_id=payload.get("MessageSid"),
            )
        return None

    # meta
    try:
        value = payload["entry"][0]["changes"][0]["value"]
        msg = value["messages"][0]
    except (KeyError, IndexError, TypeError):
        return None
    if msg.get("type") != "text":
        return None
    return InboundMessage(
        phone=format_phone_number(msg.get("from", "")),
        text=(msg.get("text") or {}).get("body", ""),
        external_id=msg.get("id"),
    )


class WhatsAppClient:
    """WhatsApp 发送客户端"""

    def __init__(self, settings: Settings | None = None, http_client: httpx.AsyncClient | None = None):
        self.settings = settings or get_settings()
        self._http_client = http_client

    @property
    def provider(self) -> str:
        return self.settings.whatsapp_provider

    @property
    def enabled(self) -> bool:
        return self.settings.whatsapp_enabled

    def _build_request(self, to: str, message: str) -> dict[str, Any]:
        """构造 httpx 请求参数（method/url/headers/json|data|auth）"""
        s = self.settings
        phone = format_phone_number(to)

        if self.provider == "z-api":
            return {
                "url": f"https://api.z-api.io/instances/{s.whatsapp_instance_id}/token/{s.whatsapp_token}/send-text",
                "json": {"phone": phone, "message": message},
            }

        if self.provider == "twilio":
            return {
                "url": f"https://api.twilio.com/2010-04-01/Accounts/{s.whatsapp_instance_id}/Messages.json",
                "data": {
                    "From": f"whatsapp:{s.whatsapp_phone_number_id}",
                    "To": f"whatsapp:{phone}",
                    "Body": message,
                },
                "auth": (s.whatsapp_instance_id or "", s.whatsapp_token or ""),
            }

        if self.provider == "meta":
            return {
                "url": f"https://graph.facebook.com/{s.whatsapp_api_version}/{s.whatsapp_phone_number_id}/messages",
                "headers": {"Authorization": f"Bearer {s.whatsapp_token}"},
                "json": {
                    "messaging_product": "whatsapp",
                    "to": phone,
                    "type": "text",
                    "text": {"body": message},
                },
            }

        raise NotificationError(f"WhatsApp provider não suportado: {self.provider}")

    async def send_text(self, to: str, message: str) -> str | None:
        """
        发送文本消息

        Returns:
            服务商返回的消息 ID

        Raises:
            NotificationError: 未配置或服务商返回错误
        """
        if not self.enabled:
            raise NotificationError("WhatsApp não configurado")

        request_kwargs = self._build_request(to, message)

        try:
            if self._http_client is not None:
                response = await self._http_client.post(**request_kwargs)
            else:
                async with httpx.AsyncClient(timeout=15.0) as client:
                    response = await client.post(**request_kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"WhatsApp 发送失败 ({self.provider}): {e}")
            raise NotificationError(f"Erro ao enviar mensagem: {e}") from e

        try:
            data = response.json() if response.content else {}
        except ValueError as e:
            raise NotificationError(f"Resposta inválida do provedor WhatsApp: {e}") from e
        if not isinstance(data, dict):
            return None
        return (
            data.get("messageId")
            or data.get("sid")
            or ((data.get("messages") or [{}])[0].get("id"))
        )

    async def send_template(self, to: str, template: str, variables: dict[str, str]) -> str | None:
        message = render_template(template, variables)
        if not message:
            raise NotificationError(f"Template desconhecido: {template}")
        return await self.send_text(to, message)


def get_whatsapp_client() -> WhatsAppClient:
    return WhatsAppClient()
