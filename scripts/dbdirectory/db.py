"""Database access: pooled connections and template execution."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Generator, Optional, TypeVar, Union

from sqlalchemy import create_engine, event, exc
from sqlalchemy.engine import URL, Connection, CursorResult, Engine, make_url

from scripts.dbdirectory.config import PLACEHOLDER, ConnectionSettings
from scripts.dbdirectory.dialects import Dialect
from scripts.dbdirectory.errors import ConfigurationError, DirectoryReadFailure, PlaceholderMismatch
from scripts.dbdirectory.paging import Pageable, format_with_pageable

logger = logging.getLogger("dbdirectory.db")

T = TypeVar("T")
IdentityRow = dict[str, Optional[str]]
RowMapper = Callable[[CursorResult], T]


def build_url(settings: ConnectionSettings) -> URL:
    """Combine the configured URL with the dialect's driver and credentials."""
    try:
        url = make_url(settings.url)
    except exc.ArgumentError as e:
        raise ConfigurationError(f"Invalid connection URL: {e}") from e
    if "+" not in url.drivername:
        url = url.set(drivername=settings.dialect.driver)
    if settings.user:
        url = url.set(username=settings.user)
    if settings.password:
        url = url.set(password=settings.password)
    return url


def bind_placeholders(
    template: str, params: tuple[Any, ...], paramstyle: str = "qmark"
) -> tuple[str, Union[tuple[Any, ...], dict[str, Any]]]:
    """Rewrite ``?`` markers, left to right, into the driver's paramstyle.

    Raises ``PlaceholderMismatch`` when the marker count differs from
    ``len(params)``.
    """
    pieces = template.split(PLACEHOLDER)
    expected = len(pieces) - 1
    if expected != len(params):
        raise PlaceholderMismatch(expected, len(params))

    if paramstyle == "qmark":
        return template, tuple(params)
    if paramstyle in ("format", "pyformat"):
        return "%s".join(p.replace("%", "%%") for p in pieces), tuple(params)

    sql = pieces[0]
    for i, piece in enumerate(pieces[1:], start=1):
        if paramstyle == "numeric":
            marker = f":{i}"
        elif paramstyle == "numeric_dollar":
            marker = f"${i}"
        elif paramstyle == "named":
            marker = f":p{i}"
        else:
            raise ConfigurationError(f"Unsupported driver paramstyle: {paramstyle}")
        sql += marker + piece
    if paramstyle == "named":
        return sql, {f"p{i}": value for i, value in enumerate(params, start=1)}
    return sql, tuple(params)


class Database:
    """Owns one connection pool and runs operator templates against it."""

    def __init__(self, settings: ConnectionSettings) -> None:
        engine = create_engine(
            build_url(settings),
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout,
            pool_recycle=settings.pool_recycle,
            logging_name=settings.name,
        )
        self._setup(engine, settings.dialect)

    @classmethod
    def from_engine(cls, engine: Engine, dialect: Dialect) -> "Database":
        db = cls.__new__(cls)
        db._setup(engine, dialect)
        return db

    def _setup(self, engine: Engine, dialect: Dialect) -> None:
        self._engine = engine
        self.dialect = dialect
        event.listen(engine, "checkout", self._probe_on_checkout)

    def _probe_on_checkout(self, dbapi_connection, connection_record, connection_proxy) -> None:
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute(self.dialect.probe)
        except Exception as e:
            # the pool discards this connection and retries with a fresh one
            raise exc.DisconnectionError(str(e)) from e
        finally:
            cursor.close()

    def close(self) -> None:
        self._engine.dispose()

    @contextmanager
    def connection(self) -> Generator[Connection, None, None]:
        with self._engine.connect() as conn:
            yield conn

    def ping(self) -> bool:
        try:
            with self.connection() as conn:
                conn.exec_driver_sql(self.dialect.probe)
            return True
        except exc.SQLAlchemyError as e:
            logger.error("Connectivity probe failed: %s", e)
            return False

    def execute(
        self,
        template: str,
        pageable: Optional[Pageable],
        mapper: RowMapper[T],
        *params: Any,
    ) -> Optional[T]:
        """Run a query template and fold its rows through ``mapper``.

        Database failures are logged and yield ``None``; mapping failures
        raise ``DirectoryReadFailure``.
        """
        query = format_with_pageable(template, pageable, self.dialect)
        sql, bound = bind_placeholders(query, params, self._engine.dialect.paramstyle)
        logger.debug("Query: %s params: %d", query, len(params))

        started = time.monotonic()
        try:
            with self.connection() as conn:
                result = conn.exec_driver_sql(sql, bound)
                try:
                    return mapper(result)
                except exc.SQLAlchemyError:
                    raise
                except DirectoryReadFailure:
                    raise
                except Exception as e:
                    raise DirectoryReadFailure(str(e)) from e
        except exc.SQLAlchemyError as e:
            logger.error(
                "Query failed: %s",
                e,
                exc_info=True,
                extra={"duration_s": round(time.monotonic() - started, 3)},
            )
            return None

    def execute_update(self, template: str, *params: Any) -> bool:
        """Run a DML template in its own transaction. Returns False on failure."""
        sql, bound = bind_placeholders(template, params, self._engine.dialect.paramstyle)
        logger.debug("Update: %s params: %d", template, len(params))
        try:
            with self._engine.begin() as conn:
                conn.exec_driver_sql(sql, bound)
            return True
        except exc.SQLAlchemyError as e:
            logger.error("Update failed: %s", e, exc_info=True)
            return False


# ----------------------------------------------------------------------
# Row mappers
# ----------------------------------------------------------------------


def read_rows(result: CursorResult) -> list[IdentityRow]:
    """All rows as column-label -> string mappings."""
    columns = list(result.keys())
    if not columns:
        raise DirectoryReadFailure("Query returned no result columns")
    return [
        {col: (None if value is None else str(value)) for col, value in zip(columns, row)}
        for row in result
    ]


def read_int(result: CursorResult) -> Optional[int]:
    row = result.first()
    if row is None or row[0] is None:
        return None
    return int(row[0])


def read_bool(result: CursorResult) -> Optional[bool]:
    row = result.first()
    if row is None:
        return None
    value = row[0]
    if isinstance(value, str):
        return value.strip().lower() in ("1", "t", "true", "y", "yes")
    return bool(value)
