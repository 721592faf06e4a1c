"""Host-facing identity built from one identity row."""

from __future__ import annotations

from typing import Any, MutableMapping, Optional

from scripts.dbdirectory.db import IdentityRow

STORAGE_PREFIX = "f"

CORE_FIELDS = ("email", "firstName", "lastName")


def storage_id(instance_id: str, external_id: str) -> str:
    """Host-wide id for an external identity: ``f:<instance>:<external id>``."""
    return f"{STORAGE_PREFIX}:{instance_id}:{external_id}"


def external_id(identity_id: str) -> str:
    """Strip the storage prefix from a host id; plain ids pass through."""
    if identity_id.startswith(f"{STORAGE_PREFIX}:"):
        parts = identity_id.split(":", 2)
        if len(parts) == 3:
            return parts[2]
    return identity_id


class IdentityAdapter:
    """Wraps an identity row for the host.

    Values the host sets locally are kept in ``local``. When the instance
    allows the database to overwrite, any column present in the row takes
    precedence over a local value; otherwise local values stay.
    """

    def __init__(
        self,
        instance_id: str,
        row: IdentityRow,
        allow_database_overwrite: bool = False,
        local: Optional[MutableMapping[str, Any]] = None,
    ) -> None:
        self.instance_id = instance_id
        self._row = dict(row)
        self._overwrite = allow_database_overwrite
        self._local = local if local is not None else {}

    def _value(self, key: str) -> Optional[str]:
        if key in self._local and not (self._overwrite and key in self._row):
            return self._local[key]
        return self._row.get(key)

    @property
    def id(self) -> str:
        return storage_id(self.instance_id, self.external_id)

    @property
    def external_id(self) -> str:
        return str(self._row.get("id"))

    @property
    def username(self) -> Optional[str]:
        return self._row.get("username")

    @property
    def email(self) -> Optional[str]:
        return self._value("email")

    @email.setter
    def email(self, value: Optional[str]) -> None:
        self._local["email"] = value

    @property
    def first_name(self) -> Optional[str]:
        return self._value("firstName")

    @first_name.setter
    def first_name(self, value: Optional[str]) -> None:
        self._local["firstName"] = value

    @property
    def last_name(self) -> Optional[str]:
        return self._value("lastName")

    @last_name.setter
    def last_name(self, value: Optional[str]) -> None:
        self._local["lastName"] = value

    @property
    def attributes(self) -> dict[str, Optional[str]]:
        """Extension columns, i.e. everything beyond the core identity fields."""
        skip = {"id", "username", *CORE_FIELDS}
        keys = [k for k in self._row if k not in skip]
        keys += [k for k in self._local if k not in skip and k not in self._row]
        return {k: self._value(k) for k in keys}

    def get_attribute(self, name: str) -> Optional[str]:
        return self._value(name)

    def set_attribute(self, name: str, value: Optional[str]) -> None:
        self._local[name] = value

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "attributes": self.attributes,
        }

    def __repr__(self) -> str:
        return f"IdentityAdapter(id={self.id!r}, username={self.username!r})"
