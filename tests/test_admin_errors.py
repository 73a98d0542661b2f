import pytest
from fastapi.testclient import TestClient

from radar.config import get_settings
from radar.main import app


@pytest.fixture(autouse=True)
def _set_admin_token():
    settings = get_settings()
    previous = settings.admin_token
    settings.admin_token = "secret-admin"
    yield
    settings.admin_token = previous


def test_admin_missing_token_returns_code():
    client = TestClient(app)
    resp = client.get("/admin/tenants")
    assert resp.status_code == 401
    assert resp.json() == {
        "code": "MISSING_ADMIN_TOKEN",
        "detail": "Missing X-Admin-Token header",
    }


def test_admin_invalid_token_returns_code():
    client = TestClient(app)
    resp = client.get("/admin/tenants", headers={"X-Admin-Token": "wrong"})
    assert resp.status_code == 403
    assert resp.json() == {
        "code": "INVALID_ADMIN_TOKEN",
        "detail": "Invalid admin token",
    }


def test_admin_not_configured():
    get_settings().admin_token = None
    client = TestClient(app)
    resp = client.get("/admin/plans", headers={"X-Admin-Token": "anything"})
    assert resp.status_code == 503
    assert resp.json()["code"] == "ADMIN_API_NOT_CONFIGURED"


def test_missing_api_key_returns_code():
    client = TestClient(app)
    resp = client.get("/v1/me")
    assert resp.status_code == 401
    assert resp.json()["code"] == "UNAUTHORIZED"


def test_validation_error_format():
    client = TestClient(app)
    resp = client.post(
        "/admin/tenants",
        headers={"X-Admin-Token": "secret-admin"},
        json={"slug": "Invalid Slug!", "name": "x", "admin_email": "not-an-email"},
    )
    assert resp.status_code == 422
    body = resp.json()
    assert body["code"] == "VALIDATION_ERROR"
    assert isinstance(body["detail"], list)


def test_healthz():
    client = TestClient(app)
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
