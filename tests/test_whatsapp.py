"""
WhatsApp 渠道测试

- 手机号规范化与入站载荷解析（Meta / Z-API / Twilio）
- 机器人关键字回复
- 发送客户端（httpx.MockTransport 模拟服务商），非 JSON 响应转换为 NotificationError
- 入站处理：退订、发送失败不影响处理
- Meta 订阅校验接口
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from radar.config import Settings, get_settings
from radar.exceptions import NotificationError
from radar.infra.whatsapp import (
    InboundMessage,
    WhatsAppClient,
    format_phone_number,
    parse_webhook_payload,
    render_template,
)
from radar.main import app
from radar.services.whatsapp import build_bot_reply, process_inbound


def test_format_phone_number():
    assert format_phone_number("(11) 98765-4321") == "5511987654321"
    assert format_phone_number("+55 11 98765-4321") == "5511987654321"
    assert format_phone_number("") == ""


def test_render_template():
    text = render_template("reminder", {"name": "Ana", "link": "https://app/diario"})
    assert text.startswith("📝 Ana,")
    assert "https://app/diario" in text
    assert render_template("desconhecido", {}) == ""


class TestParseWebhookPayload:
    def test_meta_text_message(self):
        payload = {
            "entry": [{"changes": [{"value": {"messages": [
                {"from": "5511987654321", "id": "wamid.1", "type": "text", "text": {"body": "oi"}}
            ]}}]}]
        }
        message = parse_webhook_payload("meta", payload)
        assert message == InboundMessage(phone="5511987654321", text="oi", external_id="wamid.1")

    def test_meta_status_update_is_ignored(self):
        payload = {"entry": [{"changes": [{"value": {"statuses": [{"id": "wamid.1"}]}}]}]}
        assert parse_webhook_payload("meta", payload) is None

    def test_meta_image_is_ignored(self):
        payload = {"entry": [{"changes": [{"value": {"messages": [{"from": "55", "type": "image"}]}}]}]}
        assert parse_webhook_payload("meta", payload) is None

    def test_zapi(self):
        payload = {"phone": "11987654321", "text": {"message": "status"}, "messageId": "z1"}
        message = parse_webhook_payload("z-api", payload)
        assert message.phone == "5511987654321"
        assert message.external_id == "z1"

    def test_twilio(self):
        payload = {"From": "whatsapp:+5511987654321", "Body": "ajuda", "MessageSid": "SM1"}
        message = parse_webhook_payload("twilio", payload)
        assert message.phone == "5511987654321"
        assert message.text == "ajuda"


class TestBotReply:
    def test_help_menu_greets_user(self):
        reply = build_bot_reply("oi", SimpleNamespace(display_name="Ana"))
        assert reply.startswith("Olá Ana!")

    def test_emergency(self):
        reply = build_bot_reply("Estou em PERIGO", None)
        assert "180" in reply and "190" in reply

    def test_status_requires_account(self):
        assert "/cadastro" in build_bot_reply("status", None)
        assert "/dashboard" in build_bot_reply("status", SimpleNamespace(display_name=None))

    def test_default_points_to_chat(self):
        assert "/chat" in build_bot_reply("qualquer coisa", None)


class TestWhatsAppClient:
    @pytest.mark.asyncio
    async def test_send_via_zapi(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["body"] = request.content
            return httpx.Response(200, json={"messageId": "z-123"})

        settings = Settings(whatsapp_provider="z-api", whatsapp_token="tok", whatsapp_instance_id="inst")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = WhatsAppClient(settings=settings, http_client=http_client)
            message_id = await client.send_text("(11) 98765-4321", "olá")

        assert message_id == "z-123"
        assert captured["url"] == "https://api.z-api.io/instances/inst/token/tok/send-text"
        assert b"5511987654321" in captured["body"]

    @pytest.mark.asyncio
    async def test_provider_error_raises_notification_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500))
        settings = Settings(whatsapp_provider="meta", whatsapp_token="tok", whatsapp_phone_number_id="123")
        async with httpx.AsyncClient(transport=transport) as http_client:
            client = WhatsAppClient(settings=settings, http_client=http_client)
            with pytest.raises(NotificationError):
                await client.send_text("5511987654321", "olá")

    @pytest.mark.asyncio
    async def test_non_json_success_body_raises_notification_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>ok</html>"))
        settings = Settings(whatsapp_provider="z-api", whatsapp_token="tok", whatsapp_instance_id="inst")
        async with httpx.AsyncClient(transport=transport) as http_client:
            client = WhatsAppClient(settings=settings, http_client=http_client)
            with pytest.raises(NotificationError):
                await client.send_text("5511987654321", "olá")

    @pytest.mark.asyncio
    async def test_send_template_renders_variables(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = request.content.decode()
            return httpx.Response(200, json={"messageId": "z-9"})

        settings = Settings(whatsapp_provider="z-api", whatsapp_token="tok", whatsapp_instance_id="inst")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = WhatsAppClient(settings=settings, http_client=http_client)
            message_id = await client.send_template(
                "5511987654321", "risk_alert", {"name": "Ana", "link": "https://app/plano"}
            )

        assert message_id == "z-9"
        assert "Ana" in captured["body"] and "https://app/plano" in captured["body"]

    @pytest.mark.asyncio
    async def test_not_configured(self):
        client = WhatsAppClient(settings=Settings(whatsapp_token=None))
        with pytest.raises(NotificationError):
            await client.send_text("5511987654321", "olá")


def _session(user):
    result = MagicMock()
    result.scalar_one_or_none.return_value = user
    session = MagicMock()
    session.execute = AsyncMock(return_value=result)
    session.commit = AsyncMock()
    return session


@pytest.mark.asyncio
async def test_opt_out_disables_whatsapp():
    user = SimpleNamespace(id="u1", tenant_id="t1", whatsapp_opt_in=True, display_name="Ana")
    session = _session(user)
    client = SimpleNamespace(send_text=AsyncMock(return_value="msg-1"))

    with patch("radar.services.whatsapp.get_whatsapp_client", return_value=client):
        result = await process_inbound(session, InboundMessage(phone="5511987654321", text=" SAIR "))

    assert result.opted_out is True
    assert user.whatsapp_opt_in is False
    directions = [call.args[0].direction for call in session.add.call_args_list]
    assert directions == ["incoming", "outgoing"]
    session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_unknown_sender_gets_reply_even_if_send_fails():
    session = _session(None)
    client = SimpleNamespace(send_text=AsyncMock(side_effect=NotificationError("down")))

    with patch("radar.services.whatsapp.get_whatsapp_client", return_value=client):
        result = await process_inbound(session, InboundMessage(phone="5511987654321", text="emergencia"))

    assert result.processed is True
    assert result.user_id is None
    assert result.risk_level is None
    outgoing = session.add.call_args_list[-1].args[0]
    assert outgoing.status == "failed"


class TestVerifyEndpoint:
    def test_challenge_echoed(self):
        settings = get_settings()
        previous = settings.whatsapp_verify_token
        settings.whatsapp_verify_token = "verify-me"
        try:
            client = TestClient(app)
            resp = client.get(
                "/webhooks/whatsapp",
                params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "42"},
            )
            assert resp.status_code == 200
            assert resp.text == "42"

            resp = client.get(
                "/webhooks/whatsapp",
                params={"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "42"},
            )
            assert resp.status_code == 403
            assert resp.json()["code"] == "VERIFICATION_FAILED"
        finally:
            settings.whatsapp_verify_token = previous
