"""Service-to-service keys for the XP award endpoints, hashed with argon2id.

Content and quiz services authenticate with a shared key sent in the
``X-Service-Key`` header. Only the argon2 hash is configured here
(``PGLMS_SERVICE_API_KEY_HASH``).
"""

from __future__ import annotations

import secrets

import argon2

KEY_PREFIX = "sk-pglms-"

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=argon2.Type.ID,
)


def hash_service_key(full_key: str) -> str:
    return _hasher.hash(full_key)


def generate_service_key() -> tuple[str, str]:
    """
    Generate a new service key.

    Returns:
        (full_key, argon2_hash). The full key is handed to the calling
        service once and never stored.
    """
    full_key = f"{KEY_PREFIX}{secrets.token_hex(32)}"
    return full_key, hash_service_key(full_key)


def verify_service_key(full_key: str, stored_hash: str) -> bool:
    """Verify a service key against its stored argon2 hash."""
    if not full_key or not stored_hash:
        return False
    try:
        return _hasher.verify(stored_hash, full_key)
    except argon2.exceptions.VerificationError:
        return False
    except argon2.exceptions.InvalidHashError:
        return False
