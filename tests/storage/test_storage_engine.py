"""存储引擎测试：操作顺序、一致性与核对修复。"""

import io

import pytest
from fastapi.testclient import TestClient

from cloudvault.packages.storage.core.enums import ErrorKindEnum
from cloudvault.packages.storage.core.exceptions import AppException
from cloudvault.packages.storage.crud.bucket import bucket_crud
from cloudvault.packages.storage.models.item import StorageItem
from cloudvault.packages.storage.services.content_store import LocalContentStore
from cloudvault.packages.storage.services.storage_engine import StorageEngine, guess_mime_type


class _FailingWriteStore(LocalContentStore):
    def write(self, *args, **kwargs):
        raise OSError("disk full")


class _FailingDeleteStore(LocalContentStore):
    def delete_one(self, *args, **kwargs):
        raise OSError("permission denied")

    def delete_subtree(self, *args, **kwargs):
        raise OSError("permission denied")


def test_failed_write_leaves_no_metadata(db_session_fixture, content_root):
    engine = StorageEngine(_FailingWriteStore(content_root))
    bucket = engine.create_bucket(db_session_fixture, name="media")

    with pytest.raises(OSError):
        engine.upload_file(db_session_fixture, bucket_id=bucket.id, file_name="a.txt", source=b"abc")

    assert db_session_fixture.query(StorageItem).count() == 0


def test_upload_reports_monotonic_progress(db_session_fixture, storage_engine):
    bucket = storage_engine.create_bucket(db_session_fixture, name="media")
    seen: list[int] = []

    item, created = storage_engine.upload_file(
        db_session_fixture,
        bucket_id=bucket.id,
        file_name="data.bin",
        source=io.BytesIO(b"x" * 1000),
        on_progress=seen.append,
    )

    assert created is True
    assert item.size == 1000
    assert seen == sorted(seen)
    assert seen[-1] == 1000
    assert len(seen) > 1


def test_upload_strips_client_directories(db_session_fixture, storage_engine):
    bucket = storage_engine.create_bucket(db_session_fixture, name="media")

    item, _ = storage_engine.upload_file(
        db_session_fixture, bucket_id=bucket.id, file_name="C:\\Users\\me\\report.txt", source=b"r"
    )
    assert item.name == "report.txt"
    assert item.storage_path == "report.txt"


def test_failed_cleanup_reports_inconsistency(db_session_fixture, content_root):
    engine = StorageEngine(_FailingDeleteStore(content_root))
    bucket = engine.create_bucket(db_session_fixture, name="media")
    item, _ = engine.upload_file(db_session_fixture, bucket_id=bucket.id, file_name="a.txt", source=b"abc")
    item_id = item.id

    with pytest.raises(AppException) as exc_info:
        engine.delete_item(db_session_fixture, item_id)

    assert exc_info.value.status_code == 500
    assert exc_info.value.kind == ErrorKindEnum.INCONSISTENCY
    assert db_session_fixture.query(StorageItem).filter(StorageItem.id == item_id).count() == 0
    assert (content_root / "media" / "a.txt").exists()


def test_bucket_namespace_rolled_back_when_insert_fails(db_session_fixture, storage_engine, content_root, monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(bucket_crud, "create_bucket", _boom)

    with pytest.raises(RuntimeError):
        storage_engine.create_bucket(db_session_fixture, name="fresh")
    assert not (content_root / "fresh").exists()

    (content_root / "existing").mkdir(parents=True)
    with pytest.raises(RuntimeError):
        storage_engine.create_bucket(db_session_fixture, name="existing")
    assert (content_root / "existing").is_dir()


def test_reconcile_detects_and_repairs(db_session_fixture, storage_engine, content_root):
    bucket = storage_engine.create_bucket(db_session_fixture, name="media")
    storage_engine.create_folder(db_session_fixture, bucket_id=bucket.id, name="docs", path="")
    storage_engine.upload_file(db_session_fixture, bucket_id=bucket.id, file_name="a.txt", source=b"a", path="docs")
    storage_engine.upload_file(db_session_fixture, bucket_id=bucket.id, file_name="b.txt", source=b"b")

    (content_root / "media" / "orphan.bin").write_bytes(b"lost")
    (content_root / "media" / ".upload-abc.part").write_bytes(b"partial")
    (content_root / "media" / "b.txt").unlink()

    report = storage_engine.reconcile(db_session_fixture, bucket_id=bucket.id)
    assert report.orphan_blobs == ["orphan.bin"]
    assert report.missing_blobs == ["b.txt"]
    assert report.repaired is False

    repaired = storage_engine.reconcile(db_session_fixture, bucket_id=bucket.id, repair=True)
    assert repaired.repaired is True
    assert not (content_root / "media" / "orphan.bin").exists()

    names = {item.name for item in db_session_fixture.query(StorageItem).all()}
    assert names == {"docs", "a.txt"}

    clean = storage_engine.reconcile(db_session_fixture, bucket_id=bucket.id)
    assert clean.orphan_blobs == []
    assert clean.missing_blobs == []


def test_reconcile_endpoint(client: TestClient, auth_headers, content_root):
    bucket = client.post("/api/buckets", json={"name": "check"}, headers=auth_headers).json()
    (content_root / "check" / "stray.txt").write_bytes(b"x")

    resp = client.post(f"/api/buckets/{bucket['id']}/reconcile", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json() == {
        "bucket_id": bucket["id"],
        "orphan_blobs": ["stray.txt"],
        "missing_blobs": [],
        "repaired": False,
    }

    fixed = client.post(f"/api/buckets/{bucket['id']}/reconcile", params={"repair": "true"}, headers=auth_headers)
    assert fixed.json()["repaired"] is True
    assert not (content_root / "check" / "stray.txt").exists()


@pytest.mark.parametrize(
    ("file_name", "declared", "expected"),
    [
        ("a.png", "image/png", "image/png"),
        ("a.png", None, "image/png"),
        ("a.png", "application/octet-stream", "image/png"),
        ("a.weird-ext", "", "application/octet-stream"),
    ],
)
def test_guess_mime_type(file_name, declared, expected):
    assert guess_mime_type(file_name, declared) == expected
