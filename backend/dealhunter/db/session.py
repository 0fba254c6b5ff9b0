"""Async database session and engine configuration."""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from dealhunter.config import settings


def enable_sqlite_savepoints(async_engine: AsyncEngine, immediate: bool = False) -> None:
    """Let SQLAlchemy own BEGIN on SQLite so SAVEPOINTs nest correctly.

    The sqlite3 driver defers BEGIN on its own, which breaks begin_nested().

    Args:
        async_engine: Engine to configure
        immediate: Emit BEGIN IMMEDIATE so concurrent connections queue on
            the write lock instead of failing to upgrade a read lock
    """
    begin_statement = "BEGIN IMMEDIATE" if immediate else "BEGIN"

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql(begin_statement)


# SQLite doesn't support pool_size / max_overflow / pool_pre_ping
_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

_engine_kwargs: dict = {"echo": False}
if not _is_sqlite:
    _engine_kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)

engine = create_async_engine(settings.DATABASE_URL, **_engine_kwargs)
if _is_sqlite:
    enable_sqlite_savepoints(engine, immediate=True)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
