"""
通知服务测试

- 渠道选择：站内总是发送；WhatsApp/邮件取决于用户偏好和平台配置
- 外部渠道失败只标记 failed，不抛异常
- 邮件发送：SMTP 未配置时报错，smtplib 异常转换为 NotificationError
- WhatsApp 模板：风险预警和开通欢迎消息走 send_template
"""

import smtplib
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from radar.config import Settings
from radar.exceptions import NotificationError
from radar.infra import mailer
from radar.services.notifications import notify, send_whatsapp_welcome


def _user(**overrides):
    data = {
        "id": "u1",
        "tenant_id": "t1",
        "email": "ana@example.com",
        "phone": "5511987654321",
        "whatsapp_opt_in": True,
        "email_notifications": True,
    }
    data.update(overrides)
    return SimpleNamespace(**data)


def _session():
    session = MagicMock()
    session.flush = AsyncMock()
    return session


def _settings(whatsapp: bool, smtp: bool):
    return SimpleNamespace(whatsapp_enabled=whatsapp, smtp_enabled=smtp)


@pytest.mark.asyncio
async def test_in_app_only_when_channels_not_configured():
    with patch("radar.services.notifications.get_settings", return_value=_settings(False, False)):
        created = await notify(_session(), user=_user(), title="Oi", body="Tudo bem?")

    assert [n.channel for n in created] == ["in_app"]
    assert created[0].status == "sent"


@pytest.mark.asyncio
async def test_default_channels_follow_user_preferences():
    client = SimpleNamespace(send_text=AsyncMock(return_value="wamid.9"))
    with patch("radar.services.notifications.get_settings", return_value=_settings(True, True)), \
            patch("radar.services.notifications.get_whatsapp_client", return_value=client), \
            patch("radar.services.notifications.mailer.send_email", AsyncMock()) as send_email:
        created = await notify(
            _session(),
            user=_user(email_notifications=False),
            title="Alerta",
            body="Detectamos sinais de risco",
            category="risk_alert",
        )

    assert [n.channel for n in created] == ["in_app", "whatsapp"]
    whatsapp = created[1]
    assert whatsapp.status == "sent"
    assert whatsapp.external_id == "wamid.9"
    client.send_text.assert_awaited_once_with("5511987654321", "*Alerta*\n\nDetectamos sinais de risco")
    send_email.assert_not_awaited()


@pytest.mark.asyncio
async def test_explicit_channels_always_include_in_app():
    with patch("radar.services.notifications.mailer.send_email", AsyncMock()):
        created = await notify(_session(), user=_user(), title="t", body="b", channels=["email"])
    assert [n.channel for n in created] == ["in_app", "email"]


@pytest.mark.asyncio
async def test_failed_delivery_is_recorded_not_raised():
    failing = AsyncMock(side_effect=NotificationError("SMTP não configurado"))
    with patch("radar.services.notifications.mailer.send_email", failing):
        created = await notify(_session(), user=_user(), title="t", body="b", channels=["email"])

    email = created[1]
    assert email.status == "failed"
    assert email.error == "SMTP não configurado"


@pytest.mark.asyncio
async def test_send_email_requires_smtp():
    with pytest.raises(NotificationError):
        await mailer.send_email("a@b.com", "s", "b", settings=Settings(smtp_host=None))


@pytest.mark.asyncio
async def test_send_email_wraps_smtp_errors():
    settings = Settings(smtp_host="smtp.example.com")
    with patch("radar.infra.mailer._send_sync", side_effect=smtplib.SMTPException("boom")):
        with pytest.raises(NotificationError):
            await mailer.send_email("a@b.com", "s", "b", settings=settings)


def test_build_message_headers():
    message = mailer.build_message("Radar <no-reply@radar.local>", "ana@example.com", "Assunto", "Olá")
    assert message["To"] == "ana@example.com"
    assert message["Subject"] == "Assunto"


@pytest.mark.asyncio
async def test_whatsapp_template_replaces_plain_text():
    client = SimpleNamespace(send_text=AsyncMock(), send_template=AsyncMock(return_value="wamid.1"))
    settings = SimpleNamespace(whatsapp_enabled=True, smtp_enabled=False, public_app_url="https://app.radar.test/")
    with patch("radar.services.notifications.get_settings", return_value=settings), \
            patch("radar.services.notifications.get_whatsapp_client", return_value=client):
        created = await notify(
            _session(),
            user=_user(display_name="Ana"),
            title="Alerta de segurança",
            body="Procure ajuda",
            category="risk_alert",
            whatsapp_template="risk_alert",
        )

    client.send_template.assert_awaited_once_with(
        "5511987654321",
        "risk_alert",
        {"name": "Ana", "link": "https://app.radar.test/plano-seguranca"},
    )
    client.send_text.assert_not_awaited()
    assert created[1].external_id == "wamid.1"
    assert created[1].status == "sent"


@pytest.mark.asyncio
async def test_whatsapp_welcome_uses_welcome_template():
    client = SimpleNamespace(send_text=AsyncMock(), send_template=AsyncMock(return_value="wamid.2"))
    settings = SimpleNamespace(whatsapp_enabled=True, smtp_enabled=False, public_app_url="https://app.radar.test")
    with patch("radar.services.notifications.get_settings", return_value=settings), \
            patch("radar.services.notifications.get_whatsapp_client", return_value=client):
        created = await send_whatsapp_welcome(_session(), _user(display_name="Ana"))

    assert [n.channel for n in created] == ["in_app", "whatsapp"]
    assert created[0].body.startswith("Olá Ana!")
    client.send_template.assert_awaited_once_with(
        "5511987654321", "welcome", {"name": "Ana", "link": "https://app.radar.test/dashboard"}
    )


@pytest.mark.asyncio
async def test_whatsapp_welcome_skipped_without_phone():
    client = SimpleNamespace(send_template=AsyncMock())
    settings = SimpleNamespace(whatsapp_enabled=True, smtp_enabled=False, public_app_url="https://app.radar.test")
    with patch("radar.services.notifications.get_settings", return_value=settings), \
            patch("radar.services.notifications.get_whatsapp_client", return_value=client):
        created = await send_whatsapp_welcome(_session(), _user(phone=None))

    assert created == []
    client.send_template.assert_not_awaited()
