"""Tests for the iterative salted digest and the bcrypt scheme."""

import base64
import hashlib

import pytest

from scripts.dbdirectory import credentials
from scripts.dbdirectory.credentials import BcryptScheme, IterativeDigestScheme, scheme_for
from scripts.dbdirectory.errors import UnsupportedAlgorithm

DIGESTS = ["MD5", "SHA-1", "SHA-256", "SHA-384", "SHA-512", "SHA3-256", "SHA3-512"]


@pytest.mark.parametrize("algorithm", DIGESTS)
def test_generated_hash_validates(algorithm):
    record = credentials.generate("correct horse", algorithm)

    assert credentials.validate("correct horse", record.salt, record.hash, algorithm)


@pytest.mark.parametrize("algorithm", DIGESTS)
def test_single_character_mutation_fails(algorithm):
    record = credentials.generate("correct horse", algorithm)

    assert not credentials.validate("correct hors3", record.salt, record.hash, algorithm)
    assert not credentials.validate("Correct horse", record.salt, record.hash, algorithm)


def test_derivation_matches_reference_loop():
    """1 initial digest plus 1024 re-hashes, UTF-8 input, uppercase hex."""
    password, salt = "pässword", "c2FsdHNhbHRzYWx0c2FsdA=="
    expected = hashlib.sha512((password + salt).encode("utf-8")).hexdigest().upper()
    for _ in range(1024):
        expected = hashlib.sha512((expected + salt).encode("utf-8")).hexdigest().upper()

    assert credentials.derive(password, salt, "SHA-512") == expected


def test_hash_is_uppercase_hex():
    record = credentials.generate("pw", "SHA-256")

    assert record.hash == record.hash.upper()
    assert len(record.hash) == 64
    int(record.hash, 16)


def test_validation_is_case_sensitive():
    record = credentials.generate("pw", "SHA-256")

    assert not credentials.validate("pw", record.salt, record.hash.lower(), "SHA-256")


def test_salt_is_16_random_bytes_base64():
    salt = credentials.generate_salt()

    assert len(base64.b64decode(salt)) == 16


def test_salts_never_repeat():
    salts = {credentials.generate_salt() for _ in range(10_000)}

    assert len(salts) == 10_000


def test_empty_or_missing_stored_hash_never_validates():
    assert not credentials.validate("pw", "salt", "", "SHA-256")
    assert not credentials.validate("pw", "salt", None, "SHA-256")


def test_unknown_algorithm_raises():
    with pytest.raises(UnsupportedAlgorithm):
        credentials.generate("pw", "WHIRLPOOL-9000")
    with pytest.raises(UnsupportedAlgorithm):
        credentials.validate("pw", "salt", "ABC", "WHIRLPOOL-9000")


def test_scheme_selection_by_bcrypt_marker():
    assert isinstance(scheme_for("Blowfish (bcrypt)"), BcryptScheme)
    assert isinstance(scheme_for("BCRYPT"), BcryptScheme)
    assert isinstance(scheme_for("SHA-512"), IterativeDigestScheme)


def test_bcrypt_scheme_round_trip():
    scheme = BcryptScheme(algorithm="Blowfish (bcrypt)", rounds=4)
    record = scheme.generate("hunter2")

    assert record.hash.startswith("$2")
    assert record.hash.startswith(record.salt)
    assert scheme.validate("hunter2", None, record.hash)
    assert not scheme.validate("hunter3", None, record.hash)


def test_bcrypt_scheme_rejects_malformed_hash():
    scheme = BcryptScheme(algorithm="Blowfish (bcrypt)")

    assert not scheme.validate("pw", None, "not-a-bcrypt-hash")
    assert not scheme.validate("pw", None, None)


def test_bcrypt_scheme_refuses_passwords_over_72_bytes(caplog):
    scheme = BcryptScheme(algorithm="Blowfish (bcrypt)", rounds=4)
    stored = scheme.generate("x" * 72).hash

    assert scheme.accepts("x" * 72)
    assert not scheme.accepts("x" * 73)
    # multi-byte characters count by encoded length
    assert not scheme.accepts("ä" * 37)
    with pytest.raises(ValueError, match="72 bytes"):
        scheme.generate("x" * 80)

    with caplog.at_level("INFO", logger="dbdirectory.credentials"):
        assert not scheme.validate("x" * 80, None, stored)
    assert "72-byte bcrypt limit" in caplog.text
    assert "malformed" not in caplog.text


def test_iterative_scheme_delegates():
    scheme = IterativeDigestScheme(algorithm="MD5")
    record = scheme.generate("pw")

    assert scheme.validate("pw", record.salt, record.hash)
    assert scheme.accepts("x" * 500)
