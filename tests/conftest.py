"""测试夹具：为 pytest 提供隔离的元数据库、内容存储与客户端配置。"""

import base64
import os
import tempfile
from typing import Generator

_TEST_ROOT = tempfile.mkdtemp(prefix="cloudvault_test_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_ROOT, 'bootstrap.sqlite')}"
os.environ["STORAGE_BACKEND"] = "LOCAL"
os.environ["STORAGE_PATH"] = os.path.join(_TEST_ROOT, "storage")
os.environ["LOG_DIR"] = os.path.join(_TEST_ROOT, "log")
os.environ["AUTH_USERNAME"] = "admin"
os.environ["AUTH_PASSWORD"] = "admin123"
os.environ.pop("AUTH_PASSWORD_HASH", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from cloudvault.main import app  # noqa: E402
from cloudvault.packages.storage.core.dependencies import get_content_store, get_db  # noqa: E402
from cloudvault.packages.storage.db import session as db_session  # noqa: E402
from cloudvault.packages.storage.models.base import Base  # noqa: E402
from cloudvault.packages.storage.services.content_store import LocalContentStore  # noqa: E402
from cloudvault.packages.storage.services.storage_engine import StorageEngine  # noqa: E402


def basic_auth(username: str, password: str) -> dict[str, str]:
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return {"Authorization": f"Basic {token}"}


@pytest.fixture(autouse=True)
def setup_test_database(tmp_path) -> Generator[None, None, None]:
    """每个用例使用独立的 SQLite 文件，互不干扰。"""
    engine = db_session.build_engine(f"sqlite:///{tmp_path / 'metadata.sqlite'}")
    original_engine, original_factory = db_session.engine, db_session.SessionLocal
    db_session.engine = engine
    db_session.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    Base.metadata.create_all(bind=engine)
    yield

    engine.dispose()
    db_session.engine, db_session.SessionLocal = original_engine, original_factory


@pytest.fixture()
def content_root(tmp_path):
    return tmp_path / "blobs"


@pytest.fixture()
def content_store(content_root) -> LocalContentStore:
    return LocalContentStore(content_root)


@pytest.fixture()
def storage_engine(content_store) -> StorageEngine:
    return StorageEngine(content_store, max_upload_size=1024 * 1024, chunk_size=64)


@pytest.fixture()
def db_session_fixture() -> Generator[Session, None, None]:
    """提供给测试用例使用的数据库会话。"""
    session = db_session.SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def auth_headers() -> dict[str, str]:
    return basic_auth("admin", "admin123")


@pytest.fixture()
def client(content_store):
    """构建 FastAPI TestClient，并注入测试专用的数据库与内容存储依赖。"""
    def override_get_db() -> Generator[Session, None, None]:
        session = db_session.SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_content_store] = lambda: content_store

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
