"""
Database setup and session management.
"""

from pathlib import Path

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from config import settings


def _is_sqlite(database_url: str) -> bool:
    return make_url(database_url).get_backend_name() == "sqlite"


def _ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if not _is_sqlite(database_url) or not url.database or url.database == ":memory:":
        return
    Path(url.database).expanduser().parent.mkdir(parents=True, exist_ok=True)


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    # API handlers and the worker process share the file.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=5000")
    cursor.close()


def build_engine(database_url: str):
    """Create an async engine; SQLite files get WAL mode and a busy timeout."""
    if _is_sqlite(database_url):
        _ensure_sqlite_dir(database_url)
        new_engine = create_async_engine(database_url, echo=False)
        event.listen(new_engine.sync_engine, "connect", _set_sqlite_pragmas)
        return new_engine
    return create_async_engine(database_url, echo=False, pool_pre_ping=True)


engine = build_engine(settings.DATABASE_URL)

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

Base = declarative_base()


async def get_db():
    """
    Dependency that provides a database session.
    Use with FastAPI's Depends().
    """
    async with async_session_maker() as session:
        yield session
