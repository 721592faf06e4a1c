"""Shared fixtures: a file-backed SQLite directory with 100 users plus jdoe."""

from __future__ import annotations

import pytest
from sqlalchemy import create_engine

from scripts.dbdirectory import credentials
from scripts.dbdirectory.config import QueryTemplates
from scripts.dbdirectory.db import Database
from scripts.dbdirectory.dialects import Dialect
from scripts.dbdirectory.repository import IdentityRepository

JDOE_PASSWORD = "s3cret-Pass"
HASH_FUNCTION = "SHA-256"

SELECT_USERS = (
    "select id, username, email, first_name as firstName, last_name as lastName, locale "
    "from users"
)


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'directory.db'}")
    record = credentials.generate(JDOE_PASSWORD, HASH_FUNCTION)
    with engine.begin() as conn:
        conn.exec_driver_sql(
            """CREATE TABLE users (
                   id TEXT PRIMARY KEY,
                   username TEXT NOT NULL,
                   email TEXT,
                   first_name TEXT,
                   last_name TEXT,
                   locale TEXT,
                   hash TEXT,
                   salt TEXT
               )"""
        )
        rows = [
            (f"{i:03d}", f"user{i:03d}", f"user{i:03d}@example.com", f"First{i}", f"Last{i % 10}", "en", None, None)
            for i in range(100)
        ]
        rows.append(("900", "jdoe", "jdoe@example.com", "John", "Doe", "de", record.hash, record.salt))
        conn.exec_driver_sql("INSERT INTO users VALUES (?, ?, ?, ?, ?, ?, ?, ?)", rows)
    yield engine
    engine.dispose()


@pytest.fixture
def templates():
    return QueryTemplates(
        count="select count(*) from users",
        list_all=SELECT_USERS + " order by id",
        find_by_id=SELECT_USERS + " where id = ?",
        find_by_username=SELECT_USERS + " where username = ?",
        find_by_username_or_email=(
            SELECT_USERS + " cross join (select ? as login_name) c "
            "where username = login_name or email = login_name"
        ),
        find_by_search_term=(
            SELECT_USERS + " cross join (select ? as term) c "
            "where username = term or last_name = term or email = term order by id"
        ),
        find_password_hash=(
            "select hash, salt from users cross join (select ? as login_name) c "
            "where username = login_name or email = login_name"
        ),
        find_password_hash_username_only="select hash, salt from users where username = ?",
        update_credentials="update users set hash = ?, salt = ? where username = ?",
        update_email_address="update users set email = ? where username = ?",
        dialect=Dialect.POSTGRESQL,
        hash_function=HASH_FUNCTION,
    )


@pytest.fixture
def db(engine):
    # SQLite accepts the LIMIT/OFFSET clause used for PostgreSQL
    return Database.from_engine(engine, Dialect.POSTGRESQL)


@pytest.fixture
def repository(db, templates):
    return IdentityRepository(db, templates)
