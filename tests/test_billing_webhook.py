"""
Stripe Webhook 测试

- 签名校验：未配置 / 缺失 / 无效
- 事件去重：同一 event id 只处理一次（含并发写入冲突）
- 事件处理：订阅删除、未知事件类型
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import stripe
from sqlalchemy.exc import IntegrityError

from radar.config import get_settings
from radar.exceptions import BillingNotConfiguredError, WebhookError
from radar.models import BillingEvent
from radar.services import billing as billing_service


@pytest.fixture
def webhook_secret():
    settings = get_settings()
    previous = settings.stripe_webhook_secret
    settings.stripe_webhook_secret = "whsec_test"
    yield
    settings.stripe_webhook_secret = previous


def _result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _session(*execute_results):
    session = MagicMock()
    session.execute = AsyncMock(side_effect=list(execute_results))
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


class TestVerifyWebhook:
    def test_not_configured(self):
        settings = get_settings()
        previous = settings.stripe_webhook_secret
        settings.stripe_webhook_secret = None
        try:
            with pytest.raises(BillingNotConfiguredError):
                billing_service.verify_webhook(b"{}", "sig")
        finally:
            settings.stripe_webhook_secret = previous

    def test_missing_signature(self, webhook_secret):
        with pytest.raises(WebhookError) as exc_info:
            billing_service.verify_webhook(b"{}", None)
        assert exc_info.value.code == "INVALID_SIGNATURE"

    def test_invalid_signature(self, webhook_secret):
        error = stripe.SignatureVerificationError("bad signature", "t=1,v1=x")
        with patch.object(stripe.Webhook, "construct_event", side_effect=error):
            with pytest.raises(WebhookError) as exc_info:
                billing_service.verify_webhook(b"{}", "t=1,v1=x")
        assert exc_info.value.code == "INVALID_SIGNATURE"

    def test_valid_signature(self, webhook_secret):
        with patch.object(stripe.Webhook, "construct_event", return_value={}) as construct:
            billing_service.verify_webhook(b"{}", "t=1,v1=ok")
        construct.assert_called_once_with(b"{}", "t=1,v1=ok", "whsec_test")


class TestHandleEvent:
    @pytest.mark.asyncio
    async def test_event_without_id_is_rejected(self):
        with pytest.raises(WebhookError):
            await billing_service.handle_event(_session(), {"type": "x"})

    @pytest.mark.asyncio
    async def test_duplicate_event_is_skipped(self):
        session = _session(_result("existing-id"))
        result = await billing_service.handle_event(session, {"id": "evt_1", "type": "customer.subscription.deleted"})
        assert result == {"received": True, "duplicate": True, "handled": False}
        session.add.assert_not_called()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_event_is_acknowledged(self):
        session = _session(_result(None))
        result = await billing_service.handle_event(session, {"id": "evt_2", "type": "charge.refunded"})
        assert result == {"received": True, "duplicate": False, "handled": False}

        recorded = session.add.call_args.args[0]
        assert isinstance(recorded, BillingEvent)
        assert recorded.stripe_event_id == "evt_2"
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_subscription_deleted_cancels_local_subscription(self):
        subscription = SimpleNamespace(status="active", canceled_at=None)
        session = _session(_result(None), _result(subscription))
        event = {
            "id": "evt_3",
            "type": "customer.subscription.deleted",
            "data": {"object": {"id": "sub_123"}},
        }

        result = await billing_service.handle_event(session, event)

        assert result["handled"] is True
        assert subscription.status == "canceled"
        assert subscription.canceled_at is not None

    @pytest.mark.asyncio
    async def test_subscription_updated_maps_stripe_status(self):
        subscription = SimpleNamespace(
            status="active", canceled_at=None, current_period_end=None, plan_slug="essencial", period="monthly"
        )
        session = _session(_result(None), _result(subscription))
        event = {
            "id": "evt_4",
            "type": "customer.subscription.updated",
            "data": {"object": {"id": "sub_123", "status": "unpaid", "current_period_end": 1790000000}},
        }

        result = await billing_service.handle_event(session, event)

        assert result["handled"] is True
        assert subscription.status == "past_due"
        assert subscription.current_period_end.year == 2026
        assert subscription.plan_slug == "essencial"

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_on_commit(self):
        session = _session(_result(None))
        session.commit = AsyncMock(side_effect=IntegrityError("INSERT", {}, Exception("duplicate key")))

        result = await billing_service.handle_event(session, {"id": "evt_5", "type": "charge.refunded"})

        assert result["duplicate"] is True
        session.rollback.assert_awaited_once()
