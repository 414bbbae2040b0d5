"""
Database connection and session management.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from config.settings import settings
from processing.models import Base


def create_db_engine(url: str, **kwargs) -> Engine:
    """
    Create an engine for ``url``.

    pysqlite defers BEGIN on its own and breaks SAVEPOINT handling, so for
    SQLite the driver's transaction handling is switched off and SQLAlchemy
    emits BEGIN itself.
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {}).setdefault("check_same_thread", False)

    engine = create_engine(url, echo=settings.DEBUG, future=True, **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


engine = create_db_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)


def init_db(bind: Engine = engine):
    """Initialize database tables."""
    database = bind.url.database
    if bind.dialect.name == "sqlite" and database and database != ":memory:":
        Path(database).parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=bind)


@contextmanager
def session_scope(factory: sessionmaker = SessionLocal) -> Iterator[Session]:
    """Yield a fresh session and ensure it is closed on exit."""
    db: Session = factory()
    try:
        yield db
    finally:
        db.close()
