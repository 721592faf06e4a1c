"""Supported relational engines: probe statements and paging strategies."""

from __future__ import annotations

from enum import Enum
from typing import Optional


class PagingStrategy(str, Enum):
    LIMIT_OFFSET = "limit_offset"
    OFFSET_FETCH = "offset_fetch"
    # SQL Server refuses OFFSET/FETCH without an ORDER BY
    ORDERED_OFFSET_FETCH = "ordered_offset_fetch"


class Dialect(Enum):
    """Closed set of engines, each carrying its own behaviour as data.

    Value layout: (description, SQLAlchemy driver, probe statement, paging).
    """

    POSTGRESQL = ("PostgreSQL 10+", "postgresql+psycopg2", "SELECT 1", PagingStrategy.LIMIT_OFFSET)
    MYSQL = ("MySQL 5.7+", "mysql+pymysql", "SELECT 1", PagingStrategy.LIMIT_OFFSET)
    ORACLE = ("Oracle 12+", "oracle+oracledb", "SELECT 1 FROM DUAL", PagingStrategy.OFFSET_FETCH)
    SQL_SERVER = (
        "MS SQL Server 2012+ (jtds)",
        "mssql+pymssql",
        "SELECT 1",
        PagingStrategy.ORDERED_OFFSET_FETCH,
    )
    MSSQL = (
        "MS SQL Server 2012+ (jdbc)",
        "mssql+pyodbc",
        "SELECT 1",
        PagingStrategy.ORDERED_OFFSET_FETCH,
    )

    def __init__(self, desc: str, driver: str, probe: str, paging: PagingStrategy) -> None:
        self.desc = desc
        self.driver = driver
        self.probe = probe
        self.paging = paging

    @classmethod
    def by_description(cls, desc: Optional[str]) -> Optional["Dialect"]:
        for value in cls:
            if value.desc == desc:
                return value
        return None

    @classmethod
    def lookup(cls, value: Optional[str]) -> Optional["Dialect"]:
        """Resolve a description or a member name such as ``"postgresql"``."""
        if not value:
            return None
        found = cls.by_description(value)
        if found is not None:
            return found
        return cls.__members__.get(value.strip().upper())

    @classmethod
    def descriptions(cls) -> list[str]:
        return [d.desc for d in cls]


DEFAULT_DIALECT = Dialect.MSSQL
