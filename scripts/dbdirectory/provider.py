"""Host-facing directory API for one configured instance."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, MutableMapping, Optional

from scripts.dbdirectory.host import CachedIdentity, PasswordPolicy, Realm
from scripts.dbdirectory.identity import IdentityAdapter, external_id, storage_id
from scripts.dbdirectory.paging import Pageable
from scripts.dbdirectory.repository import IdentityRepository

logger = logging.getLogger("dbdirectory.provider")

PASSWORD = "password"

# A cached identity younger than this was most likely loaded by the current
# login flow, so it is not re-fetched.
CACHE_FRESHNESS_MS = 500


@dataclass(frozen=True)
class CredentialInput:
    type: str
    value: str


class DirectoryProvider:
    """Lookup, query and credential operations the host calls per request."""

    def __init__(
        self,
        instance_id: str,
        repository: IdentityRepository,
        password_policy: Optional[PasswordPolicy] = None,
        local_values: Optional[MutableMapping[str, dict]] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.instance_id = instance_id
        self.repository = repository
        self.allow_database_overwrite = repository.templates.allow_database_overwrite
        self._password_policy = password_policy
        self._local_values = local_values
        self._clock = clock

    def _adapt(self, row) -> IdentityAdapter:
        local = None
        if self._local_values is not None:
            local = self._local_values.setdefault(storage_id(self.instance_id, row.get("id")), {})
        return IdentityAdapter(self.instance_id, row, self.allow_database_overwrite, local)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def lookup_by_id(self, realm: Realm, identity_id: str) -> Optional[IdentityAdapter]:
        logger.debug("lookup user by id: realm=%s userId=%s", realm.name, identity_id)
        row = self.repository.find_by_id(external_id(identity_id))
        if row is None:
            logger.debug("findById returned nothing for %s, expect login error", identity_id)
            return None
        return self._adapt(row)

    def lookup_by_username(self, realm: Realm, username: str) -> Optional[IdentityAdapter]:
        logger.debug("lookup user by username: realm=%s username=%s", realm.name, username)
        row = self.repository.find_by_login_name(username, realm.login_with_email_allowed)
        return None if row is None else self._adapt(row)

    def lookup_by_email(self, realm: Realm, email: str) -> Optional[IdentityAdapter]:
        # Email lookup goes through the login-name path on purpose.
        return self.lookup_by_username(realm, email)

    def count(self, realm: Realm, *filters: Any) -> int:
        # Group, attribute and service-account variants all report the full count.
        return self.repository.count_all()

    def list_all(self) -> list[dict]:
        """Full listing for reconciliation; raises ``DirectoryUnavailable`` on a failed query."""
        return self.repository.fetch_all()

    def search(
        self,
        realm: Realm,
        search: Optional[str] = None,
        first_result: Optional[int] = None,
        max_results: Optional[int] = None,
    ) -> list[IdentityAdapter]:
        logger.debug(
            "search for users: realm=%s search=%s first=%s max=%s",
            realm.name, search, first_result, max_results,
        )
        pageable = Pageable.of(first_result, max_results)
        return [self._adapt(row) for row in self.repository.search(search, pageable)]

    def search_by_attribute(self, realm: Realm, name: str, value: str) -> list[IdentityAdapter]:
        return []

    def group_members(self, realm: Realm, group_id: str, first_result: Optional[int] = None,
                      max_results: Optional[int] = None) -> list[IdentityAdapter]:
        return []

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    def supports_credential_type(self, credential_type: str) -> bool:
        return credential_type == PASSWORD

    def is_configured_for(self, realm: Realm, identity: Any, credential_type: str) -> bool:
        return self.supports_credential_type(credential_type)

    def validate_credential(self, realm: Realm, identity: Any, credential: CredentialInput) -> bool:
        logger.info("User %s is trying to log in", identity.username, extra={"username": identity.username})
        if not self.supports_credential_type(credential.type):
            return False

        if self.allow_database_overwrite and isinstance(identity, CachedIdentity):
            age_ms = self._clock() * 1000 - identity.cache_timestamp
            if age_ms > CACHE_FRESHNESS_MS:
                current = self.lookup_by_id(realm, identity.id)
                if current is None:
                    identity.invalidate()
                    return False
                if _differs(identity, current):
                    identity.invalidate()

        return self.repository.validate_credential(
            identity.username, credential.value, realm.login_with_email_allowed
        )

    def rotate_credential(self, realm: Realm, identity: Any, credential: CredentialInput) -> bool:
        logger.info("updating credential: realm=%s user=%s", realm.id, identity.username)
        if not self.supports_credential_type(credential.type):
            return False
        if self._password_policy is not None:
            error = self._password_policy.validate(realm, identity, credential.value)
            if error:
                logger.info("Password policy rejected new credential: %s", error)
                return False
        return self.repository.rotate_credential(identity.username, credential.value)

    def disable_credential(self, realm: Realm, identity: Any, credential_type: str) -> None:
        pass

    def disableable_credential_types(self, realm: Realm, identity: Any) -> list[str]:
        return []

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_identity(self, realm: Realm, username: str) -> None:
        # Declining lets the host fall through to the next provider.
        return None

    def remove_identity(self, realm: Realm, identity: Any) -> bool:
        removed = self.repository.allows_local_delete()
        if removed:
            logger.info(
                "deleted local user: realm=%s userId=%s username=%s",
                realm.name, identity.id, identity.username,
            )
        return removed

    def close(self) -> None:
        logger.debug("closing")


def _differs(cached: Any, current: IdentityAdapter) -> bool:
    return any(
        getattr(cached, attr, None) != getattr(current, attr)
        for attr in ("username", "email", "first_name", "last_name")
    )
