"""文件直链读取测试：公开桶匿名可读，私有桶需要凭证。"""

import io

from fastapi.testclient import TestClient


def _setup_bucket(client: TestClient, headers, name: str, access: str) -> dict:
    bucket = client.post("/api/buckets", json={"name": name, "access": access}, headers=headers).json()
    client.post(f"/api/buckets/{bucket['id']}/folders", json={"name": "img"}, headers=headers)
    resp = client.post(
        f"/api/buckets/{bucket['id']}/upload",
        data={"path": "img"},
        files={"file": ("hello.txt", io.BytesIO(b"hello public world"), "text/plain")},
        headers=headers,
    )
    assert resp.status_code == 201
    return bucket


def test_public_bucket_is_readable_anonymously(client: TestClient, auth_headers):
    _setup_bucket(client, auth_headers, "site", "PUBLIC")

    resp = client.get("/api/files/site/img/hello.txt")
    assert resp.status_code == 200
    assert resp.content == b"hello public world"
    assert resp.headers["content-type"].startswith("text/plain")


def test_private_bucket_requires_credentials(client: TestClient, auth_headers):
    _setup_bucket(client, auth_headers, "vault", "PRIVATE")

    anonymous = client.get("/api/files/vault/img/hello.txt")
    assert anonymous.status_code == 401
    assert anonymous.json()["kind"] == "unauthorized"

    wrong = client.get("/api/files/vault/img/hello.txt", auth=("admin", "wrong"))
    assert wrong.status_code == 401

    authorized = client.get("/api/files/vault/img/hello.txt", headers=auth_headers)
    assert authorized.status_code == 200
    assert authorized.content == b"hello public world"


def test_missing_file_and_bucket(client: TestClient, auth_headers):
    _setup_bucket(client, auth_headers, "site", "PUBLIC")

    assert client.get("/api/files/site/img/nope.txt").status_code == 404
    assert client.get("/api/files/site/img").status_code == 404
    assert client.get("/api/files/unknown/img/hello.txt").status_code == 404


def test_blob_removed_outside_service_reads_as_not_found(client: TestClient, auth_headers, content_root):
    _setup_bucket(client, auth_headers, "site", "PUBLIC")
    (content_root / "site" / "img" / "hello.txt").unlink()

    resp = client.get("/api/files/site/img/hello.txt")
    assert resp.status_code == 404
    assert resp.json()["kind"] == "not_found"


def test_large_file_is_streamed_in_full(client: TestClient, auth_headers):
    bucket = client.post("/api/buckets", json={"name": "big", "access": "PUBLIC"}, headers=auth_headers).json()
    payload = bytes(range(256)) * 8192
    client.post(
        f"/api/buckets/{bucket['id']}/upload",
        files={"file": ("blob.bin", io.BytesIO(payload), "application/octet-stream")},
        headers=auth_headers,
    )

    resp = client.get("/api/files/big/blob.bin")
    assert resp.status_code == 200
    assert resp.content == payload


def test_malformed_credentials_still_read_public_bucket(client: TestClient, auth_headers):
    """格式错误的认证头按匿名处理，公开桶依然可读。"""
    _setup_bucket(client, auth_headers, "site", "PUBLIC")

    resp = client.get("/api/files/site/img/hello.txt", headers={"Authorization": "Basic !!!notbase64"})
    assert resp.status_code == 200
    assert resp.content == b"hello public world"

    wrong = client.get("/api/files/site/img/hello.txt", auth=("admin", "wrong"))
    assert wrong.status_code == 200


def test_malformed_credentials_rejected_for_private_bucket(client: TestClient, auth_headers):
    _setup_bucket(client, auth_headers, "vault", "PRIVATE")

    resp = client.get("/api/files/vault/img/hello.txt", headers={"Authorization": "Basic !!!notbase64"})
    assert resp.status_code == 401
    assert resp.json()["kind"] == "unauthorized"
