"""
端到端测试

在 sqlite+aiosqlite 上走完整请求链路：
1. 平台管理员创建套餐和租户（返回初始管理员 API Key）
2. 创建普通用户，写日记 → 风险预警 → 站内通知
3. 套餐额度用完返回 429
4. 内容发布与读取
5. 租户暂停后请求被拒绝

运行方式：
    pytest tests/test_e2e.py -v
"""

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from radar.config import get_settings
from radar.main import app

pytestmark = pytest.mark.e2e

ADMIN = {"X-Admin-Token": "secret-admin"}


def _bearer(key: str) -> dict:
    return {"Authorization": f"Bearer {key}"}


@pytest.fixture
def client():
    settings = get_settings()
    settings.admin_token = "secret-admin"

    # Clean test DB if present
    db_file = Path("./test_radar.db")
    if db_file.exists():
        db_file.unlink()

    # lifespan 在 test 环境下自动建表
    with TestClient(app) as test_client:
        yield test_client


def test_end_to_end_flow(client):
    # ---- 套餐目录 ----
    resp = client.post(
        "/admin/plans",
        headers=ADMIN,
        json={
            "slug": "free",
            "name": "Radar Guardar",
            "features": [
                {"feature_key": "diario", "limit_monthly": 3},
                {"feature_key": "chat", "limit_daily": 5},
            ],
        },
    )
    assert resp.status_code == 201, resp.text
    assert {f["feature_key"] for f in resp.json()["features"]} == {"diario", "chat"}

    resp = client.get("/v1/plans")
    assert [p["slug"] for p in resp.json()] == ["free"]

    # ---- 租户 ----
    resp = client.post(
        "/admin/tenants",
        headers=ADMIN,
        json={"slug": "acme", "name": "Acme", "admin_email": "Admin@Acme.com"},
    )
    assert resp.status_code == 201, resp.text
    tenant = resp.json()
    admin_key = tenant["initial_api_key"]
    assert admin_key.startswith("rd_sk_")
    assert tenant["user_count"] == 1

    resp = client.post(
        "/admin/tenants",
        headers=ADMIN,
        json={"slug": "acme", "name": "Outra", "admin_email": "x@acme.com"},
    )
    assert resp.status_code == 409
    assert resp.json()["code"] == "TENANT_SLUG_EXISTS"

    resp = client.post(
        f"/admin/tenants/{tenant['id']}/users",
        headers=ADMIN,
        json={"email": "ana@acme.com", "display_name": "Ana", "phone": "(11) 98765-4321"},
    )
    assert resp.status_code == 201, resp.text
    user = resp.json()
    user_key = user["api_key"]
    assert user["role"] == "usuaria"

    resp = client.post(f"/admin/tenants/{tenant['id']}/users", headers=ADMIN, json={"email": "ANA@acme.com"})
    assert resp.status_code == 409
    assert resp.json()["code"] == "USER_EMAIL_EXISTS"

    # ---- /v1/me ----
    resp = client.get("/v1/me", headers=_bearer(user_key))
    assert resp.status_code == 200
    me = resp.json()
    assert me["user"]["email"] == "ana@acme.com"
    assert me["tenant"]["slug"] == "acme"
    assert me["plan_slug"] == "free"

    resp = client.get("/v1/me", headers=_bearer("rd_sk_invalid"))
    assert resp.status_code == 401
    assert resp.json()["code"] == "INVALID_API_KEY"

    # ---- 日记 → 风险预警 → 通知 ----
    resp = client.post(
        "/v1/journal",
        headers=_bearer(user_key),
        json={"content": "Ele me empurrou e eu fiquei com medo", "tags": ["agressao_fisica", "medo_intenso"]},
    )
    assert resp.status_code == 201, resp.text
    created = resp.json()
    assert created["entry"]["risk_level"] == "CRITICAL"
    assert created["risk_alert"]["level"] == "CRITICAL"
    assert created["risk_analysis"]["high_risk_tags_found"] == ["agressao_fisica", "medo_intenso"]

    resp = client.post("/v1/journal", headers=_bearer(user_key), json={"content": "   "})
    assert resp.status_code == 400
    assert resp.json()["code"] == "CONTENT_REQUIRED"

    resp = client.get("/v1/risk-alerts", headers=_bearer(user_key))
    assert resp.json()["total"] == 1

    resp = client.get("/v1/notifications", headers=_bearer(user_key))
    notifications = resp.json()
    assert notifications["total"] == 1
    assert notifications["items"][0]["category"] == "risk_alert"

    resp = client.post("/v1/notifications/read-all", headers=_bearer(user_key))
    assert resp.json() == {"updated": 1}

    # ---- 额度：每月 3 条日记 ----
    for text in ("Dia calmo", "Fui trabalhar"):
        resp = client.post("/v1/journal", headers=_bearer(user_key), json={"content": text})
        assert resp.status_code == 201, resp.text

    resp = client.post("/v1/journal", headers=_bearer(user_key), json={"content": "Mais um"})
    assert resp.status_code == 429
    body = resp.json()
    assert body["code"] == "PLAN_LIMIT_REACHED"
    assert body["period"] == "monthly"
    assert body["upgrade_required"] is True

    resp = client.get("/v1/journal", headers=_bearer(user_key))
    assert resp.json()["total"] == 3

    # ---- 租户管理台 ----
    resp = client.get("/v1/admin/users", headers=_bearer(user_key))
    assert resp.status_code == 403
    assert resp.json()["code"] == "FORBIDDEN"

    resp = client.get("/v1/admin/risk-alerts", headers=_bearer(admin_key), params={"level": "CRITICAL"})
    assert resp.status_code == 200
    alert_id = resp.json()["items"][0]["id"]

    resp = client.post(
        f"/v1/admin/risk-alerts/{alert_id}/resolve", headers=_bearer(admin_key), json={"note": "Contato feito"}
    )
    assert resp.status_code == 200
    assert resp.json()["is_resolved"] is True

    # ---- 内容 ----
    resp = client.post(
        "/v1/admin/content",
        headers=_bearer(admin_key),
        json={"slug": "sinais-de-abuso", "title": "Sinais de abuso", "body": "...", "status": "published"},
    )
    assert resp.status_code == 201, resp.text

    resp = client.post(
        "/v1/admin/content",
        headers=_bearer(admin_key),
        json={"slug": "sinais-de-abuso", "title": "Duplicado"},
    )
    assert resp.status_code == 409

    resp = client.get("/v1/content/sinais-de-abuso", headers=_bearer(user_key))
    assert resp.status_code == 200
    assert resp.json()["title"] == "Sinais de abuso"

    resp = client.get("/v1/content/nao-existe", headers=_bearer(user_key))
    assert resp.status_code == 404
    assert resp.json()["code"] == "CONTENT_NOT_FOUND"

    # ---- 暂停租户 ----
    resp = client.post(f"/admin/tenants/{tenant['id']}/disable", headers=ADMIN, json={"reason": "inadimplência"})
    assert resp.status_code == 200
    assert resp.json()["status"] == "suspended"

    resp = client.get("/v1/me", headers=_bearer(user_key))
    assert resp.status_code == 403
    assert resp.json()["code"] == "TENANT_DISABLED"

    resp = client.post(f"/admin/tenants/{tenant['id']}/enable", headers=ADMIN)
    assert resp.status_code == 200

    resp = client.get("/v1/me", headers=_bearer(user_key))
    assert resp.status_code == 200
