"""
Random identifier and capability key generation.

All values come from the secrets module (OS CSPRNG), rendered in the
URL-safe base64 alphabet and prefixed with a role tag so that a key's
kind is visible at a glance.
"""

from __future__ import annotations

import secrets

from ..errors import GenerationFailureError

TENANT_ID_PREFIX = "db_"
WRITE_KEY_PREFIX = "wk_"
READ_KEY_PREFIX = "rk_"
DOCUMENT_ID_PREFIX = "doc_"

TENANT_ID_LENGTH = 16
KEY_LENGTH = 32  # 192 bits
DOCUMENT_ID_LENGTH = 16


def _random_string(length: int) -> str:
    # token_urlsafe(n) yields ~1.3 chars per byte, so n == length is always enough
    try:
        token = secrets.token_urlsafe(length)
    except (OSError, NotImplementedError) as e:
        raise GenerationFailureError(f"random source unavailable: {e}") from e
    return token[:length]


def generate_tenant_id() -> str:
    """Generate a tenant id with the db_ prefix."""
    return TENANT_ID_PREFIX + _random_string(TENANT_ID_LENGTH)


def generate_write_key() -> str:
    """Generate a full-access capability key with the wk_ prefix."""
    return WRITE_KEY_PREFIX + _random_string(KEY_LENGTH)


def generate_read_key() -> str:
    """Generate a read-only capability key with the rk_ prefix."""
    return READ_KEY_PREFIX + _random_string(KEY_LENGTH)


def generate_document_id() -> str:
    """Generate a document id with the doc_ prefix."""
    return DOCUMENT_ID_PREFIX + _random_string(DOCUMENT_ID_LENGTH)
