"""认证与访问闸门测试。"""

from fastapi.testclient import TestClient

from cloudvault.packages.storage.core.config import get_settings
from cloudvault.packages.storage.core.guards import can_read_bucket, is_public_bucket
from cloudvault.packages.storage.core.security import get_password_hash, verify_credentials
from cloudvault.packages.storage.models.bucket import Bucket


def test_login_success(client: TestClient):
    resp = client.post("/api/auth/login", json={"username": "admin", "password": "admin123"})
    assert resp.status_code == 200
    assert resp.json()["success"] is True


def test_login_with_wrong_password(client: TestClient):
    resp = client.post("/api/auth/login", json={"username": "admin", "password": "nope"})
    assert resp.status_code == 401
    payload = resp.json()
    assert payload["kind"] == "unauthorized"
    assert payload["msg"]


def test_login_with_missing_fields(client: TestClient):
    resp = client.post("/api/auth/login", json={})
    assert resp.status_code == 401


def test_protected_endpoint_requires_credentials(client: TestClient):
    assert client.get("/api/buckets").status_code == 401
    assert client.get("/api/buckets", auth=("admin", "wrong")).status_code == 401
    assert client.get("/api/buckets", auth=("root", "admin123")).status_code == 401
    assert client.get("/api/buckets", auth=("admin", "admin123")).status_code == 200


def test_password_hash_takes_precedence(client: TestClient, monkeypatch):
    """配置了 bcrypt 哈希后，只有哈希对应的密码可以通过校验。"""
    monkeypatch.setattr(get_settings(), "auth_password_hash", get_password_hash("s3cret"))

    assert verify_credentials("admin", "s3cret") is True
    assert verify_credentials("admin", "admin123") is False
    assert client.get("/api/buckets", auth=("admin", "s3cret")).status_code == 200


def test_invalid_password_hash_rejects(monkeypatch):
    monkeypatch.setattr(get_settings(), "auth_password_hash", "not-a-bcrypt-hash")
    assert verify_credentials("admin", "admin123") is False


def test_access_gate_rules():
    public = Bucket(name="pub", access="PUBLIC")
    private = Bucket(name="priv", access="PRIVATE")

    assert is_public_bucket(public)
    assert not is_public_bucket(private)
    assert can_read_bucket(public, authenticated=False)
    assert not can_read_bucket(private, authenticated=False)
    assert can_read_bucket(private, authenticated=True)


def test_health_echoes_request_id(client: TestClient):
    resp = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "healthy"
    assert resp.headers["X-Request-ID"] == "req-123"

    generated = client.get("/health")
    assert generated.headers.get("X-Request-ID")
