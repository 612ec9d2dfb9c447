"""Password salting, hashing and verification.

Hashes are scrypt derivations (N=16384, r=8, p=1) keyed by the hex salt
string, stored hex-encoded next to the salt. Records written with a
different hash length stay verifiable: when no explicit length is passed,
the length is read back from the stored hex value.
"""
from __future__ import annotations

import hashlib
import hmac
import secrets
from dataclasses import dataclass

from authgate.core.config import settings

SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
# scrypt needs 128 * N * r bytes; leave headroom over OpenSSL's 32 MiB default.
_SCRYPT_MAXMEM = 64 * 1024 * 1024


@dataclass(frozen=True)
class PasswordHash:
    salt: str
    hash: str


def generate_salt(length: int | None = None) -> str:
    return secrets.token_hex(int(length or settings.PASSWORD_SALT_LENGTH))


def derive_hash(password: str, salt: str, length: int) -> str:
    digest = hashlib.scrypt(
        str(password).encode("utf-8"),
        salt=str(salt).encode("utf-8"),
        n=SCRYPT_N,
        r=SCRYPT_R,
        p=SCRYPT_P,
        maxmem=_SCRYPT_MAXMEM,
        dklen=int(length),
    )
    return digest.hex()


def hash_password(password: str) -> PasswordHash:
    salt = generate_salt(settings.PASSWORD_SALT_LENGTH)
    return PasswordHash(salt=salt, hash=derive_hash(password, salt, settings.PASSWORD_HASH_LENGTH))


def verify_password(password: str, salt: str | None, expected_hash: str | None, hash_length: int | None = None) -> bool:
    if not salt or not expected_hash:
        return False
    length = int(hash_length or len(expected_hash) // 2)
    if length <= 0:
        return False
    candidate = derive_hash(password, salt, length)
    return hmac.compare_digest(candidate, str(expected_hash).lower())
