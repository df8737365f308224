"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` and provides small helpers used by the
application and tests. The default is a local SQLite file `app.db` at
the backend root; PostgreSQL URLs work unchanged.

SQLite only allows one writer at a time. Every transaction is opened
with `BEGIN IMMEDIATE` so concurrent writers wait on the busy timeout
instead of failing with a lock upgrade error halfway through a
read-modify-write.
"""

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

from .config import settings


def make_engine(url: str) -> Engine:
    """Create an engine for `url` with the SQLite locking setup applied."""
    if not url.startswith("sqlite"):
        return create_engine(url, echo=False, pool_pre_ping=True)
    eng = create_engine(
        url,
        echo=False,
        connect_args={"check_same_thread": False, "timeout": settings.DB_BUSY_TIMEOUT_SECONDS},
    )

    @event.listens_for(eng, "connect")
    def _on_connect(dbapi_connection, _record):
        # take over BEGIN handling from pysqlite
        dbapi_connection.isolation_level = None
        cur = dbapi_connection.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()

    @event.listens_for(eng, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return eng


engine = make_engine(settings.DATABASE_URL)


def create_db_and_tables():
    """Create database tables using SQLModel metadata.

    This function is intended for local development and lightweight
    scripts; production deployments should rely on a proper migration
    tool (alembic) instead.
    """
    from . import models  # noqa: F401  registers the tables

    SQLModel.metadata.create_all(engine)


def drop_db_and_tables():
    """Drop every table known to the metadata. Used by tests."""
    from . import models  # noqa: F401

    SQLModel.metadata.drop_all(engine)


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
