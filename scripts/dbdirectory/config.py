"""Configuration: template set, connection settings and their sources.

An instance is configured either from a host component mapping (the
properties declared in ``CONFIG_PROPERTIES``) or from environment variables
for local use and the operator CLI.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from dotenv import load_dotenv

from scripts.dbdirectory.credentials import (
    DEFAULT_HASH_ALGORITHM,
    HASH_ALGORITHMS,
    CredentialScheme,
    scheme_for,
)
from scripts.dbdirectory.dialects import DEFAULT_DIALECT, Dialect
from scripts.dbdirectory.errors import ConfigurationError
from scripts.dbdirectory.secrets import resolve_secret

PLACEHOLDER = "?"

# attribute name -> component property name
TEMPLATE_PROPERTIES: dict[str, str] = {
    "count": "count",
    "list_all": "listAll",
    "find_by_id": "findById",
    "find_by_username": "findByUsername",
    "find_by_username_or_email": "findByUsernameOrEmail",
    "find_by_search_term": "findBySearchTerm",
    "find_password_hash": "findPasswordHash",
    "find_password_hash_username_only": "findPasswordHashUsernameOnly",
    "update_credentials": "updateCredentials",
    "update_email_address": "updateEmailAddress",
}


@dataclass(frozen=True)
class ConnectionSettings:
    url: str
    dialect: Dialect
    user: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    name: str = "dbdirectory"
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: float = 30.0
    pool_recycle: int = 1800

    def __post_init__(self) -> None:
        if not self.url or not self.url.strip():
            raise ConfigurationError("Connection URL is required")
        if not isinstance(self.dialect, Dialect):
            raise ConfigurationError(f"Unknown RDBMS: {self.dialect!r}")


@dataclass(frozen=True)
class QueryTemplates:
    count: str
    list_all: str
    find_by_id: str
    find_by_username: str
    find_by_username_or_email: str
    find_by_search_term: str
    find_password_hash: str
    find_password_hash_username_only: str
    update_credentials: str
    update_email_address: str
    dialect: Dialect
    hash_function: str = DEFAULT_HASH_ALGORITHM
    allow_local_delete: bool = False
    allow_database_overwrite: bool = False
    scheme: CredentialScheme = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        missing = [
            prop
            for attr, prop in TEMPLATE_PROPERTIES.items()
            if not isinstance(getattr(self, attr), str) or not getattr(self, attr).strip()
        ]
        if missing:
            raise ConfigurationError(f"Missing SQL template(s): {', '.join(missing)}")
        if not isinstance(self.dialect, Dialect):
            raise ConfigurationError(f"Unknown RDBMS: {self.dialect!r}")
        if self.hash_function not in HASH_ALGORITHMS:
            raise ConfigurationError(f"Unknown hash function: {self.hash_function!r}")
        object.__setattr__(self, "scheme", scheme_for(self.hash_function))


@dataclass(frozen=True)
class SchedulerSettings:
    reconcile_interval_min: int = 60
    misfire_grace_time: int = 300


@dataclass(frozen=True)
class DirectoryConfig:
    instance_id: str
    connection: ConnectionSettings
    templates: QueryTemplates
    scheduler: SchedulerSettings = field(default_factory=SchedulerSettings)

    @classmethod
    def from_component(
        cls, instance_id: str, name: str, props: Mapping[str, Any]
    ) -> "DirectoryConfig":
        """Build from a host component's configuration properties."""
        rdbms = props.get("rdbms")
        dialect = Dialect.by_description(rdbms)
        if dialect is None:
            raise ConfigurationError(f"Unknown RDBMS: {rdbms!r}")

        connection = ConnectionSettings(
            url=props.get("url") or "",
            dialect=dialect,
            user=props.get("user"),
            password=resolve_secret(props.get("password")),
            name=name,
        )
        templates = QueryTemplates(
            **{attr: props.get(prop) for attr, prop in TEMPLATE_PROPERTIES.items()},
            dialect=dialect,
            hash_function=props.get("hashFunction") or DEFAULT_HASH_ALGORITHM,
            allow_local_delete=_as_bool(props.get("allowLocalDelete", False)),
            allow_database_overwrite=_as_bool(props.get("allowDatabaseToOverwriteCache", False)),
        )
        return cls(instance_id=instance_id, connection=connection, templates=templates)


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def load_config() -> DirectoryConfig:
    """Load configuration from environment variables (and a local .env file).

    Templates come from ``DIRECTORY_SQL_<NAME>`` where ``<NAME>`` is the
    upper-cased attribute, e.g. ``DIRECTORY_SQL_FIND_BY_ID``.
    """
    load_dotenv()

    rdbms = os.environ.get("DIRECTORY_RDBMS", DEFAULT_DIALECT.desc)
    dialect = Dialect.lookup(rdbms)
    if dialect is None:
        raise ConfigurationError(
            f"DIRECTORY_RDBMS={rdbms!r} is not one of: {', '.join(Dialect.descriptions())}"
        )

    url = os.environ.get("DIRECTORY_URL", "")
    if not url:
        raise ValueError("DIRECTORY_URL environment variable is required")

    connection = ConnectionSettings(
        url=url,
        dialect=dialect,
        user=os.environ.get("DIRECTORY_USER") or None,
        password=resolve_secret(os.environ.get("DIRECTORY_PASSWORD") or None),
        name=os.environ.get("DIRECTORY_NAME", "dbdirectory"),
        pool_size=int(os.environ.get("DIRECTORY_POOL_SIZE", "5")),
        max_overflow=int(os.environ.get("DIRECTORY_POOL_MAX_OVERFLOW", "10")),
        pool_timeout=float(os.environ.get("DIRECTORY_POOL_TIMEOUT", "30")),
        pool_recycle=int(os.environ.get("DIRECTORY_POOL_RECYCLE", "1800")),
    )

    templates = QueryTemplates(
        **{
            attr: os.environ.get(f"DIRECTORY_SQL_{attr.upper()}", "")
            for attr in TEMPLATE_PROPERTIES
        },
        dialect=dialect,
        hash_function=os.environ.get("DIRECTORY_HASH_FUNCTION", DEFAULT_HASH_ALGORITHM),
        allow_local_delete=_as_bool(os.environ.get("DIRECTORY_ALLOW_LOCAL_DELETE")),
        allow_database_overwrite=_as_bool(os.environ.get("DIRECTORY_ALLOW_DATABASE_OVERWRITE")),
    )

    return DirectoryConfig(
        instance_id=os.environ.get("DIRECTORY_INSTANCE_ID", connection.name),
        connection=connection,
        templates=templates,
    )


# ----------------------------------------------------------------------
# Property declarations for the host's configuration surface
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class ConfigProperty:
    name: str
    label: str
    help_text: str
    type: str = "String"
    default: Any = None
    options: tuple[str, ...] = ()


_PLACEHOLDER_HELP = f"Use '{PLACEHOLDER}' as parameter placeholder character (replaced only once). "
_IDENTITY_HELP = (
    'The query must return at least "id" and "username"; "email", "firstName" '
    'and "lastName" are optional. Any other column is exposed as an attribute.'
)
_PARAM_HELP = " The {} is passed as query parameter. "

_SELECT_USERS = "select id, username, email, first_name as firstName, last_name as lastName from users"

CONFIG_PROPERTIES: tuple[ConfigProperty, ...] = (
    ConfigProperty("url", "Connection URL", "Database connection URL", default="postgresql://localhost:5432/directory"),
    ConfigProperty("user", "Connection user", "Database connection user", default="user"),
    ConfigProperty("password", "Connection password", "Database connection password or secret reference", type="Password"),
    ConfigProperty(
        "rdbms",
        "RDBMS",
        "Relational Database Management System",
        type="List",
        default=DEFAULT_DIALECT.desc,
        options=tuple(Dialect.descriptions()),
    ),
    ConfigProperty(
        "allowLocalDelete",
        "Allow local delete",
        "Allow deleting the host's copy of a user. The database record is never touched.",
        type="boolean",
        default=False,
    ),
    ConfigProperty(
        "allowDatabaseToOverwriteCache",
        "Allow DB attributes to overwrite the cache",
        "Let attributes returned by the queries overwrite values already stored by the host. "
        "Under a cached configuration the user is reloaded when the cached copy is older than "
        "500ms and username, email or names differ.",
        type="boolean",
        default=False,
    ),
    ConfigProperty("count", "User count SQL query", "SQL query returning the total count of users", default="select count(*) from users"),
    ConfigProperty("listAll", "List all users SQL query", _IDENTITY_HELP, default=_SELECT_USERS),
    ConfigProperty(
        "findById",
        "Find user by id SQL query",
        _IDENTITY_HELP + _PARAM_HELP.format("user id") + _PLACEHOLDER_HELP,
        default=_SELECT_USERS + " where id = ?",
    ),
    ConfigProperty(
        "findByUsername",
        "Find user by username SQL query",
        _IDENTITY_HELP + _PARAM_HELP.format("username") + _PLACEHOLDER_HELP,
        default=_SELECT_USERS + " where username = ?",
    ),
    ConfigProperty(
        "findByUsernameOrEmail",
        "Find user by username or email SQL query",
        _IDENTITY_HELP + _PARAM_HELP.format("login name") + _PLACEHOLDER_HELP,
        default=_SELECT_USERS + " cross join (select ? as login_name) c where username = login_name or email = login_name",
    ),
    ConfigProperty(
        "findBySearchTerm",
        "Find user by search term SQL query",
        _IDENTITY_HELP + _PARAM_HELP.format("search term") + _PLACEHOLDER_HELP,
        default=_SELECT_USERS + " cross join (select ? as term) c where username = term or last_name = term or email = term",
    ),
    ConfigProperty(
        "findPasswordHash",
        "Find password hash for username or email SQL query",
        "Must return the columns \"hash\" and \"salt\"." + _PARAM_HELP.format("login name") + _PLACEHOLDER_HELP,
        default="select hash, salt from users cross join (select ? as login_name) c where username = login_name or email = login_name",
    ),
    ConfigProperty(
        "findPasswordHashUsernameOnly",
        "Find password hash SQL query (username only)",
        "Must return the columns \"hash\" and \"salt\"." + _PARAM_HELP.format("username") + _PLACEHOLDER_HELP,
        default="select hash, salt from users where username = ?",
    ),
    ConfigProperty(
        "updateCredentials",
        "Update a user's credentials",
        "Bound with hash, salt and username in that order. " + _PLACEHOLDER_HELP,
        default="update users set hash = ?, salt = ? where username = ?",
    ),
    ConfigProperty(
        "updateEmailAddress",
        "Update a user's email address",
        "Bound with email and username in that order. " + _PLACEHOLDER_HELP,
        default="update users set email = ? where username = ?",
    ),
    ConfigProperty(
        "hashFunction",
        "Password hash function",
        "Hash type used to match passwords (md* and sha* use the iterative hex digest)",
        type="List",
        default=DEFAULT_HASH_ALGORITHM,
        options=tuple(HASH_ALGORITHMS),
    ),
)
