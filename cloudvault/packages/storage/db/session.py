"""Database engine and session factory configuration."""

import sqlite3
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker

from cloudvault.packages.storage.core.config import get_settings

settings = get_settings()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):  # pragma: no cover - driver hook
    # SQLite only enforces ON DELETE CASCADE with this pragma enabled per connection.
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def build_engine(url: str, *, echo: bool = False) -> Engine:
    """创建数据库引擎；SQLite 会先确保数据文件所在目录存在并允许跨线程访问。"""
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        database = parsed.database
        if database and database != ":memory:":
            Path(database).parent.mkdir(parents=True, exist_ok=True)
        return create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    # ``pool_pre_ping`` keeps the connection pool healthy for server databases.
    return create_engine(url, pool_pre_ping=True, echo=echo)


engine = build_engine(settings.sql_database_url, echo=settings.database_echo)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
