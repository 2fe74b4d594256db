"""Database engine and session helpers."""

from typing import Callable

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from .. import models  # noqa: F401  (registers tables on SQLModel.metadata)

SessionFactory = Callable[[], Session]


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):  # type: ignore[no-untyped-def]
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine for the catalog database.

    SQLite connections are shared across request threads and get
    foreign key enforcement so tag links cascade with their image.
    """
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(database_url, echo=echo)


def init_db(engine: Engine) -> None:
    """Create all tables that do not exist yet."""
    SQLModel.metadata.create_all(engine)


def session_factory(engine: Engine) -> SessionFactory:
    """Build a factory returning sessions that keep loaded attributes after commit."""

    def factory() -> Session:
        return Session(engine, expire_on_commit=False)

    return factory


__all__ = [
    "SessionFactory",
    "create_db_engine",
    "init_db",
    "session_factory",
]
