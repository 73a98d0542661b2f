from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from radar.middleware.audit import AuditLogMiddleware, _get_action_from_path, _parse_path
from radar.services.audit import record_audit_log, sanitize_params


def test_audit_action_mappings():
    assert _get_action_from_path("POST", "/admin/tenants") == "platform_tenant_create"
    assert _get_action_from_path("POST", "/admin/tenants/t1/disable") == "platform_tenant_disable"
    assert _get_action_from_path("PUT", "/admin/plans/premium/features") == "platform_plan_features"
    assert _get_action_from_path("PATCH", "/v1/admin/users/u1") == "admin_user_update"
    assert _get_action_from_path("GET", "/v1/admin/risk-alerts") == "admin_risk_alert_read"
    assert _get_action_from_path("POST", "/v1/admin/api-keys/k1/revoke") == "admin_api_key_revoke"
    assert _get_action_from_path("DELETE", "/v1/admin/ai-personas/p1") == "admin_ai_persona_delete"
    assert _get_action_from_path("PUT", "/v1/admin/ai-flows/f1/graph") == "admin_ai_flow_graph"
    assert _get_action_from_path("POST", "/v1/admin/ai-flows/f1/versions/3/revert") == "admin_ai_flow_revert"
    assert _get_action_from_path("GET", "/admin") == "platform_read"


def test_non_admin_paths_are_not_audited():
    assert _get_action_from_path("GET", "/v1/me") is None
    assert _get_action_from_path("POST", "/v1/journal") is None
    assert _get_action_from_path("GET", "/administrator") is None
    assert _get_action_from_path("GET", "/healthz") is None


def test_parse_path_resource_and_sub_resource():
    assert _parse_path("PATCH", "/v1/admin/content/c1") == ("admin_content_update", "content", "c1")
    assert _parse_path("GET", "/v1/admin/ai-flows/f1/versions") == (
        "admin_ai_flow_version_read",
        "ai_flow_version",
        "f1",
    )


def test_sanitize_params():
    params = {"api_key": "rd_sk_x", "Token": "abc", "q": "x" * 250, "page": 2}
    sanitized = sanitize_params(params)
    assert sanitized["api_key"] == "***"
    assert sanitized["Token"] == "***"
    assert sanitized["q"].endswith("...") and len(sanitized["q"]) == 203
    assert sanitized["page"] == 2
    assert sanitize_params({}) is None


@pytest.mark.asyncio
async def test_record_audit_log_adds_sanitized_row():
    session = MagicMock()
    log = await record_audit_log(
        session,
        request_id="req-1",
        action="platform_tenant_create",
        method="POST",
        path="/admin/tenants",
        status_code=201,
        duration_ms=12.5,
        query_params={"secret": "s"},
        user_agent="x" * 600,
    )
    session.add.assert_called_once_with(log)
    assert log.id
    assert log.query_params == {"secret": "***"}
    assert len(log.user_agent) == 500


def test_middleware_records_admin_requests_only():
    app = FastAPI()
    app.add_middleware(AuditLogMiddleware)

    @app.post("/admin/tenants")
    async def create_tenant():
        return {"ok": True}

    @app.get("/v1/me")
    async def me():
        return {"ok": True}

    recorder = AsyncMock()
    with patch.object(AuditLogMiddleware, "_record_audit", recorder):
        client = TestClient(app)
        client.get("/v1/me")
        assert recorder.call_count == 0

        client.post("/admin/tenants?token=abc")

    assert recorder.call_count == 1
    fields = recorder.call_args.kwargs
    assert fields["action"] == "platform_tenant_create"
    assert fields["status_code"] == 200
    assert fields["query_params"] == {"token": "abc"}
