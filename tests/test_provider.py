"""Tests for the host-facing DirectoryProvider."""

import dataclasses
from types import SimpleNamespace

import pytest

from scripts.dbdirectory.identity import storage_id
from scripts.dbdirectory.provider import CACHE_FRESHNESS_MS, PASSWORD, CredentialInput, DirectoryProvider
from scripts.dbdirectory.repository import IdentityRepository
from tests.conftest import JDOE_PASSWORD

NOW = 1_700_000_000.0
NOW_MS = int(NOW * 1000)


@pytest.fixture
def realm():
    return SimpleNamespace(id="realm-1", name="acme", login_with_email_allowed=True)


@pytest.fixture
def provider(repository):
    return DirectoryProvider("inst-1", repository, clock=lambda: NOW)


@pytest.fixture
def overwriting_provider(db, templates):
    templates = dataclasses.replace(templates, allow_database_overwrite=True)
    return DirectoryProvider("inst-1", IdentityRepository(db, templates), clock=lambda: NOW)


class CachedUser:
    """Host cache entry double."""

    def __init__(self, external, username, email, first_name, last_name, age_ms):
        self.id = storage_id("inst-1", external)
        self.username = username
        self.email = email
        self.first_name = first_name
        self.last_name = last_name
        self.cache_timestamp = NOW_MS - age_ms
        self.invalidated = False

    def invalidate(self):
        self.invalidated = True


def _password(value=JDOE_PASSWORD):
    return CredentialInput(type=PASSWORD, value=value)


class TestLookups:
    def test_lookup_by_id_accepts_storage_and_plain_ids(self, provider, realm):
        by_storage = provider.lookup_by_id(realm, "f:inst-1:900")
        by_plain = provider.lookup_by_id(realm, "900")

        assert by_storage.username == by_plain.username == "jdoe"
        assert by_storage.id == "f:inst-1:900"

    def test_lookup_missing_is_none(self, provider, realm):
        assert provider.lookup_by_id(realm, "f:inst-1:404") is None
        assert provider.lookup_by_username(realm, "ghost") is None

    def test_lookup_by_email_uses_login_name_path(self, provider, realm):
        assert provider.lookup_by_email(realm, "jdoe@example.com").username == "jdoe"

        realm.login_with_email_allowed = False
        assert provider.lookup_by_email(realm, "jdoe@example.com") is None
        assert provider.lookup_by_email(realm, "jdoe").username == "jdoe"

    def test_extension_columns_become_attributes(self, provider, realm):
        identity = provider.lookup_by_username(realm, "jdoe")

        assert identity.attributes == {"locale": "de"}
        assert identity.first_name == "John"

    def test_count_and_search(self, provider, realm):
        assert provider.count(realm) == 101
        assert provider.count(realm, {"lastName": "Last3"}, {"g1"}) == 101
        assert len(provider.search(realm)) == 101
        page = provider.search(realm, "Last3", first_result=2, max_results=3)
        assert [i.external_id for i in page] == ["023", "033", "043"]

    def test_unsupported_queries_are_empty(self, provider, realm):
        assert provider.search_by_attribute(realm, "locale", "de") == []
        assert provider.group_members(realm, "g1") == []


class TestValidateCredential:
    def test_valid_password(self, provider, realm):
        identity = provider.lookup_by_username(realm, "jdoe")

        assert provider.validate_credential(realm, identity, _password())
        assert not provider.validate_credential(realm, identity, _password("wrong"))

    def test_other_credential_types_are_rejected(self, provider, realm):
        identity = provider.lookup_by_username(realm, "jdoe")

        assert not provider.validate_credential(realm, identity, CredentialInput("otp", JDOE_PASSWORD))
        assert not provider.supports_credential_type("otp")
        assert provider.is_configured_for(realm, identity, PASSWORD)

    def test_stale_cache_entry_deleted_externally(self, overwriting_provider, realm):
        cached = CachedUser("404", "jdoe", "jdoe@example.com", "John", "Doe", age_ms=CACHE_FRESHNESS_MS + 1)

        assert overwriting_provider.validate_credential(realm, cached, _password()) is False
        assert cached.invalidated

    def test_stale_cache_entry_with_changed_email(self, overwriting_provider, realm):
        cached = CachedUser("900", "jdoe", "old@example.com", "John", "Doe", age_ms=5_000)

        assert overwriting_provider.validate_credential(realm, cached, _password()) is True
        assert cached.invalidated

    def test_stale_but_unchanged_entry_is_kept(self, overwriting_provider, realm):
        cached = CachedUser("900", "jdoe", "jdoe@example.com", "John", "Doe", age_ms=5_000)

        assert overwriting_provider.validate_credential(realm, cached, _password())
        assert not cached.invalidated

    def test_fresh_cache_entry_is_not_refetched(self, overwriting_provider, realm):
        cached = CachedUser("404", "jdoe", "old@example.com", "John", "Doe", age_ms=100)

        assert overwriting_provider.validate_credential(realm, cached, _password())
        assert not cached.invalidated

    def test_without_overwrite_cache_is_left_alone(self, provider, realm):
        cached = CachedUser("404", "jdoe", "old@example.com", "John", "Doe", age_ms=5_000)

        assert provider.validate_credential(realm, cached, _password())
        assert not cached.invalidated


class TestRotateCredential:
    def test_rotate_then_validate(self, provider, realm):
        identity = provider.lookup_by_username(realm, "jdoe")

        assert provider.rotate_credential(realm, identity, _password("next-Pass-1"))
        assert provider.validate_credential(realm, identity, _password("next-Pass-1"))

    def test_password_policy_rejection(self, repository, realm):
        policy = SimpleNamespace(validate=lambda realm, identity, password: "too short")
        provider = DirectoryProvider("inst-1", repository, password_policy=policy)
        identity = provider.lookup_by_username(realm, "jdoe")

        assert not provider.rotate_credential(realm, identity, _password("x"))
        assert provider.validate_credential(realm, identity, _password())

    def test_disable_is_unsupported(self, provider, realm):
        identity = provider.lookup_by_username(realm, "jdoe")

        assert provider.disable_credential(realm, identity, PASSWORD) is None
        assert provider.disableable_credential_types(realm, identity) == []


class TestRegistration:
    def test_add_identity_declines(self, provider, realm):
        assert provider.add_identity(realm, "newbie") is None

    def test_remove_identity_follows_flag(self, provider, db, templates, realm):
        identity = provider.lookup_by_username(realm, "jdoe")
        assert provider.remove_identity(realm, identity) is False

        allowing = DirectoryProvider(
            "inst-1", IdentityRepository(db, dataclasses.replace(templates, allow_local_delete=True))
        )
        assert allowing.remove_identity(realm, identity) is True


def test_local_values_survive_between_lookups(repository, realm):
    store = {}
    provider = DirectoryProvider("inst-1", repository, local_values=store)

    provider.lookup_by_username(realm, "jdoe").email = "local@example.com"

    assert provider.lookup_by_username(realm, "jdoe").email == "local@example.com"
    assert store["f:inst-1:900"] == {"email": "local@example.com"}
