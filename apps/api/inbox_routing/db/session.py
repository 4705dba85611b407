from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from inbox_routing.core.config import settings


def build_engine(database_url: str) -> Engine:
    """Create an engine; SQLite gets SAVEPOINT-capable transaction handling."""
    url = make_url(database_url)
    backend = url.get_backend_name()

    if backend.startswith("postgresql"):
        return create_engine(
            database_url, pool_pre_ping=True, connect_args={"options": "-c timezone=utc"}
        )

    if backend == "sqlite":
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
        sqlite_engine = create_engine(database_url, **kwargs)

        # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN.
        @event.listens_for(sqlite_engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(sqlite_engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

        return sqlite_engine

    return create_engine(database_url, pool_pre_ping=True)


engine = build_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@contextmanager
def statement_timeout(db: Session, timeout_ms: int | None) -> Iterator[None]:
    """
    Bound the statements run inside the block (PostgreSQL only).

    Use inside a SAVEPOINT: a cancelled statement aborts the savepoint, and
    rolling it back also reverts the SET LOCAL.
    """
    if not timeout_ms or db.get_bind().dialect.name != "postgresql":
        yield
        return
    db.execute(text(f"SET LOCAL statement_timeout = {int(timeout_ms)}"))
    yield
    db.execute(text("SET LOCAL statement_timeout = DEFAULT"))
