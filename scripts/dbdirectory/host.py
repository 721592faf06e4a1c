"""Interfaces the hosting identity server provides to the directory.

The host owns realms, its own copy of imported identities, the identity
cache and transactions. These protocols describe only what this package
calls.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Mapping, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from scripts.dbdirectory.provider import DirectoryProvider


class Realm(Protocol):
    id: str
    name: str
    login_with_email_allowed: bool


class LocalIdentity(Protocol):
    """An identity as the host currently holds it."""

    id: str
    username: Optional[str]
    email: Optional[str]
    first_name: Optional[str]
    last_name: Optional[str]


@runtime_checkable
class CachedIdentity(Protocol):
    """A host identity served from cache."""

    # epoch milliseconds when the entry was loaded
    cache_timestamp: int

    def invalidate(self) -> None: ...


class IdentityCache(Protocol):
    def clear(self) -> None: ...


class PasswordPolicy(Protocol):
    def validate(self, realm: Realm, identity: Any, password: str) -> Optional[str]:
        """Return an error message when ``password`` violates the realm policy."""


class ProfileEvent(Protocol):
    type: str
    realm_id: Optional[str]
    user_id: Optional[str]
    details: Optional[Mapping[str, str]]


class HostSession(Protocol):
    """A unit of work against the host, used by reconciliation and events."""

    identity_cache: Optional[IdentityCache]

    def realm(self, realm_id: str) -> Realm: ...

    def provider(self, instance_id: str) -> "DirectoryProvider": ...

    def local_identity(self, realm: Realm, username: str) -> Optional[LocalIdentity]: ...

    def identity_by_id(self, realm: Realm, identity_id: str) -> Optional[LocalIdentity]: ...

    def transaction(self) -> AbstractContextManager: ...

    def close(self) -> None: ...
