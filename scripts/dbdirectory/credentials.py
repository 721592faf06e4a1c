"""Credential hashing: the legacy iterative salted digest and bcrypt.

The iterative scheme must stay bit-for-bit compatible with hashes already
stored in operator databases:

    hash = HEX(digest(password + salt))
    repeat 1024 times: hash = HEX(digest(hash + salt))

with UTF-8 input and uppercase hex output.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Optional, Union

import bcrypt

from scripts.dbdirectory.errors import UnsupportedAlgorithm

logger = logging.getLogger("dbdirectory.credentials")

ITERATIONS = 1024
SALT_BYTES = 16
BCRYPT_MARKER = "bcrypt"
BCRYPT_MAX_BYTES = 72

HASH_ALGORITHMS = [
    "Blowfish (bcrypt)",
    "MD2",
    "MD5",
    "SHA-1",
    "SHA-256",
    "SHA3-224",
    "SHA3-256",
    "SHA3-384",
    "SHA3-512",
    "SHA-384",
    "SHA-512/224",
    "SHA-512/256",
    "SHA-512",
]
DEFAULT_HASH_ALGORITHM = "SHA-512"

# Configuration names -> hashlib names
_HASHLIB_NAMES = {
    "MD2": "md2",
    "MD5": "md5",
    "SHA-1": "sha1",
    "SHA-256": "sha256",
    "SHA3-224": "sha3_224",
    "SHA3-256": "sha3_256",
    "SHA3-384": "sha3_384",
    "SHA3-512": "sha3_512",
    "SHA-384": "sha384",
    "SHA-512/224": "sha512_224",
    "SHA-512/256": "sha512_256",
    "SHA-512": "sha512",
}


@dataclass(frozen=True)
class CredentialRecord:
    hash: str
    salt: str


def generate_salt() -> str:
    return base64.b64encode(secrets.token_bytes(SALT_BYTES)).decode("ascii")


def _hex_digest(data: str, algorithm: str) -> str:
    name = _HASHLIB_NAMES.get(algorithm.upper(), algorithm.lower())
    try:
        md = hashlib.new(name)
    except (ValueError, TypeError) as exc:
        raise UnsupportedAlgorithm(algorithm) from exc
    md.update(data.encode("utf-8"))
    return md.hexdigest().upper()


def derive(password: str, salt: str, algorithm: str) -> str:
    """Run the full iterative derivation for one password/salt pair."""
    digest = _hex_digest(password + salt, algorithm)
    for _ in range(ITERATIONS):
        digest = _hex_digest(digest + salt, algorithm)
    return digest


def generate(password: str, algorithm: str) -> CredentialRecord:
    salt = generate_salt()
    return CredentialRecord(hash=derive(password, salt, algorithm), salt=salt)


def validate(password: str, salt: Optional[str], stored_hash: Optional[str], algorithm: str) -> bool:
    if not stored_hash:
        return False
    return derive(password, salt or "", algorithm) == stored_hash


def is_bcrypt(algorithm: str) -> bool:
    return BCRYPT_MARKER in algorithm.lower()


# ----------------------------------------------------------------------
# Scheme selection, done once per configured instance
# ----------------------------------------------------------------------


@dataclass(frozen=True)
class IterativeDigestScheme:
    algorithm: str

    def accepts(self, password: str) -> bool:
        return True

    def generate(self, password: str) -> CredentialRecord:
        return generate(password, self.algorithm)

    def validate(self, password: str, salt: Optional[str], stored_hash: Optional[str]) -> bool:
        return validate(password, salt, stored_hash, self.algorithm)


@dataclass(frozen=True)
class BcryptScheme:
    """Self-salting scheme; the salt column is informational only.

    bcrypt only reads the first 72 bytes of a password. Longer passwords are
    refused on both paths rather than silently truncated.
    """

    algorithm: str
    rounds: int = 12

    def accepts(self, password: str) -> bool:
        return len(password.encode("utf-8")) <= BCRYPT_MAX_BYTES

    def generate(self, password: str) -> CredentialRecord:
        if not self.accepts(password):
            raise ValueError(f"bcrypt passwords are limited to {BCRYPT_MAX_BYTES} bytes")
        hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=self.rounds))
        text = hashed.decode("ascii")
        # $2b$12$ + 22 chars of encoded salt
        return CredentialRecord(hash=text, salt=text[:29])

    def validate(self, password: str, salt: Optional[str], stored_hash: Optional[str]) -> bool:
        if not stored_hash:
            return False
        if not self.accepts(password):
            logger.info("Password exceeds the %d-byte bcrypt limit", BCRYPT_MAX_BYTES)
            return False
        try:
            return bcrypt.checkpw(password.encode("utf-8"), stored_hash.encode("utf-8"))
        except ValueError:
            logger.warning("Stored bcrypt hash is malformed")
            return False


CredentialScheme = Union[IterativeDigestScheme, BcryptScheme]


def scheme_for(algorithm: str) -> CredentialScheme:
    if is_bcrypt(algorithm):
        return BcryptScheme(algorithm=algorithm)
    return IterativeDigestScheme(algorithm=algorithm)
