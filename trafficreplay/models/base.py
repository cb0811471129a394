"""
SQLAlchemy base configuration and session management.

Uses SQLAlchemy 2.0 style with type hints and declarative base.
Designed to be portable between SQLite (dev) and PostgreSQL (prod).
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, sessionmaker, Session

from trafficreplay.config import config


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


def _set_sqlite_pragma(dbapi_connection, connection_record):
    """
    Configure SQLite for an append-heavy time-series workload.

    WAL mode allows concurrent reads during writes - the poller is
    constantly inserting while the API serves replay queries.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute('PRAGMA journal_mode=WAL')
    cursor.execute('PRAGMA synchronous=NORMAL')
    cursor.execute('PRAGMA cache_size=-64000')  # 64MB
    cursor.close()


def make_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine with settings appropriate for the database type.

    File-backed SQLite databases get their parent directory created.
    """
    engine_kwargs = {'echo': echo}
    is_sqlite = url.startswith('sqlite')

    if is_sqlite:
        engine_kwargs['connect_args'] = {'check_same_thread': False}
        database = make_url(url).database
        if database and database != ':memory:':
            Path(database).parent.mkdir(parents=True, exist_ok=True)

    new_engine = create_engine(url, **engine_kwargs)

    if is_sqlite:
        event.listen(new_engine, 'connect', _set_sqlite_pragma)

    return new_engine


def make_session_factory(url: str, echo: bool = False) -> sessionmaker:
    """Create engine, ensure schema, and return a bound session factory."""
    new_engine = make_engine(url, echo=echo)
    Base.metadata.create_all(bind=new_engine)
    return sessionmaker(
        bind=new_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )


engine = make_engine(config.database.url, echo=config.debug)

# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,  # Avoid lazy loading issues
)


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Transactional scope around a series of operations.

    Commits on success, rolls back on any exception and re-raises.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """
    Initialize database schema.

    Creates all tables if they don't exist.
    """
    Base.metadata.create_all(bind=engine)
