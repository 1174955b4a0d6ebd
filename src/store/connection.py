"""Relational store connection handle.

This module owns engine creation for the target database. The resulting
``StoreConnection`` is passed explicitly to the import runner and the
staging commands instead of living in module state.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Connection, Engine, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError
from sqlalchemy.pool import NullPool

from core.errors import StoreConnectionError
from core.import_spec import DatabaseSettings
from core.logging_config import get_logger

_LOGGER = get_logger(__name__)

POSTGRES_DRIVER = "postgresql+psycopg"


def build_database_url(settings: DatabaseSettings) -> URL:
    """Build a PostgreSQL URL from config-file login information."""
    return URL.create(
        POSTGRES_DRIVER,
        username=settings.user,
        password=settings.password or None,
        host=settings.host,
        port=settings.port,
        database=settings.database,
        query={"sslmode": settings.ssl_mode},
    )


class StoreConnection:
    """Owns the SQLAlchemy engine of one import run.

    SQLite URLs are accepted for dry runs; for them the pysqlite driver's
    implicit transaction handling is replaced so SAVEPOINTs work.
    """

    def __init__(self, database_url: str | URL) -> None:
        try:
            url = make_url(database_url)
        except ArgumentError as error:
            raise StoreConnectionError(
                f"Invalid database URL: {error}. Provide a SQLAlchemy URL such as "
                "'postgresql+psycopg://user@host/devmine'."
            ) from error
        self._engine = _create_engine(url)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    def verify(self) -> None:
        """Open and close one connection to fail fast on bad settings.

        Raises:
            StoreConnectionError: If the database cannot be reached.
        """
        with self.connect():
            pass

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        """Yield an open connection, translating connect failures.

        Raises:
            StoreConnectionError: If the database cannot be reached.
        """
        try:
            connection = self._engine.connect()
        except SQLAlchemyError as error:
            raise StoreConnectionError(
                f"Failed to connect to {self._engine.url.render_as_string(hide_password=True)}: "
                f"{error}. Check the devmine_database settings."
            ) from error
        try:
            yield connection
        finally:
            connection.close()

    def dispose(self) -> None:
        """Release pooled connections."""
        self._engine.dispose()


def _create_engine(url: URL) -> Engine:
    kwargs: dict[str, Any] = {"pool_pre_ping": True}
    if url.get_backend_name() == "sqlite" and url.database not in (None, "", ":memory:"):
        kwargs["poolclass"] = NullPool
    engine = create_engine(url, **kwargs)
    if url.get_backend_name() == "sqlite":
        _enable_sqlite_savepoints(engine)
    _LOGGER.debug("store_engine_created", url=url.render_as_string(hide_password=True))
    return engine


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """Let SQLAlchemy emit BEGIN itself so nested transactions behave."""

    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(connection: Connection) -> None:
        connection.exec_driver_sql("BEGIN")
