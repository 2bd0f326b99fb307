"""S3 内容存储测试：使用 MagicMock 替代 boto3 客户端。"""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from cloudvault.packages.storage.core.exceptions import AppException
from cloudvault.packages.storage.services.content_store import S3ContentStore


def _client_error(code: str, operation: str = "HeadObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


@pytest.fixture()
def s3_client() -> MagicMock:
    return MagicMock()


@pytest.fixture()
def store(s3_client) -> S3ContentStore:
    return S3ContentStore(bucket="vault", prefix="/tenant/", client=s3_client)


def test_keys_include_prefix_and_bucket(store: S3ContentStore, s3_client):
    store.ensure_bucket_namespace("photos")
    store.ensure_path("photos", "2024/trip")

    keys = [call.kwargs["Key"] for call in s3_client.put_object.call_args_list]
    assert keys == ["tenant/photos/", "tenant/photos/2024/trip/"]
    assert store.describe() == "s3://vault/tenant"


def test_write_streams_through_counting_reader(store: S3ContentStore, s3_client):
    received = bytearray()

    def _upload(reader, bucket, key):
        assert bucket == "vault"
        assert key == "tenant/photos/docs/a.txt"
        while True:
            chunk = reader.read(3)
            if not chunk:
                break
            received.extend(chunk)

    s3_client.upload_fileobj.side_effect = _upload
    progress: list[int] = []

    size = store.write("photos", "docs", "a.txt", b"hello world", on_progress=progress.append, chunk_size=4)

    assert size == 11
    assert bytes(received) == b"hello world"
    assert progress == sorted(progress)
    assert progress[-1] == 11


def test_write_over_limit_raises(store: S3ContentStore, s3_client):
    def _upload(reader, bucket, key):
        while reader.read(8):
            pass

    s3_client.upload_fileobj.side_effect = _upload

    with pytest.raises(AppException) as exc_info:
        store.write("photos", "", "big.bin", b"x" * 64, max_bytes=16)
    assert exc_info.value.status_code == 413


def test_read_stream_missing_object(store: S3ContentStore, s3_client):
    s3_client.get_object.side_effect = _client_error("NoSuchKey", "GetObject")

    with pytest.raises(AppException) as exc_info:
        store.read_stream("photos", "a.txt")
    assert exc_info.value.status_code == 404


def test_read_stream_returns_body_chunks(store: S3ContentStore, s3_client):
    body = MagicMock()
    body.iter_chunks.return_value = iter([b"ab", b"c"])
    s3_client.get_object.return_value = {"Body": body}

    assert b"".join(store.read_stream("photos", "a.txt", chunk_size=2)) == b"abc"
    s3_client.get_object.assert_called_once_with(Bucket="vault", Key="tenant/photos/a.txt")
    body.iter_chunks.assert_called_once_with(2)


def test_exists_and_delete_one(store: S3ContentStore, s3_client):
    s3_client.head_object.side_effect = _client_error("404")
    assert store.exists("photos", "a.txt") is False
    assert store.delete_one("photos", "", "a.txt") is False
    s3_client.delete_object.assert_not_called()

    s3_client.head_object.side_effect = None
    assert store.delete_one("photos", "", "a.txt") is True
    s3_client.delete_object.assert_called_once_with(Bucket="vault", Key="tenant/photos/a.txt")


def test_exists_propagates_other_errors(store: S3ContentStore, s3_client):
    s3_client.head_object.side_effect = _client_error("AccessDenied")
    with pytest.raises(ClientError):
        store.exists("photos", "a.txt")


def test_delete_subtree_batches_keys(store: S3ContentStore, s3_client):
    keys = [{"Key": f"tenant/photos/docs/{i}.txt"} for i in range(1500)]
    paginator = MagicMock()
    paginator.paginate.return_value = [{"Contents": keys[:1000]}, {"Contents": keys[1000:]}]
    s3_client.get_paginator.return_value = paginator

    assert store.delete_subtree("photos", "", "docs") is True

    paginator.paginate.assert_called_once_with(Bucket="vault", Prefix="tenant/photos/docs/")
    batches = [call.kwargs["Delete"]["Objects"] for call in s3_client.delete_objects.call_args_list]
    assert [len(batch) for batch in batches] == [1000, 500]


def test_walk_skips_directory_markers(store: S3ContentStore, s3_client):
    paginator = MagicMock()
    paginator.paginate.return_value = [
        {"Contents": [{"Key": "tenant/photos/"}, {"Key": "tenant/photos/docs/"}, {"Key": "tenant/photos/docs/a.txt"}]},
        {},
    ]
    s3_client.get_paginator.return_value = paginator

    assert list(store.walk("photos")) == ["docs/a.txt"]


def test_namespace_exists(store: S3ContentStore, s3_client):
    s3_client.list_objects_v2.return_value = {"KeyCount": 0}
    assert store.namespace_exists("photos") is False

    s3_client.list_objects_v2.return_value = {"KeyCount": 1}
    assert store.namespace_exists("photos") is True
