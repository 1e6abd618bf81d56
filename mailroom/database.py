"""Database connection and session management."""
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from mailroom.config import get_settings

settings = get_settings()

# SQLite requires check_same_thread=False when sessions cross threads
connect_args = {"check_same_thread": False} if "sqlite" in settings.database_url else {}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON;")
    cursor.close()


def enable_sqlite_foreign_keys(target: Engine) -> None:
    """Make SQLite enforce ON DELETE CASCADE on every new connection of ``target``."""
    if target.dialect.name != "sqlite":
        return
    if not event.contains(target, "connect", _set_sqlite_pragmas):
        event.listen(target, "connect", _set_sqlite_pragmas)


enable_sqlite_foreign_keys(engine)


def init_db(bind: Engine | None = None) -> None:
    """Create the mailroom tables on ``bind`` (the default engine if omitted)."""
    from mailroom import models  # noqa: F401

    target = bind or engine
    enable_sqlite_foreign_keys(target)
    Base.metadata.create_all(bind=target)


@contextmanager
def get_db_context(bind: Engine | None = None) -> Generator[Session, None, None]:
    """Session scope for host code that does not manage its own sessions.

    Commits when the block exits cleanly and rolls back on any exception.
    ``bind`` overrides the engine configured by ``database_url``.
    """
    db = SessionLocal(bind=bind) if bind is not None else SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
