"""
Unit tests for key and id generation.

Tests cover:
- Prefixes and lengths
- Alphabet
- Uniqueness
- Random source failure
"""

import re

import pytest

from dbaas.jsondrop_server.errors import GenerationFailureError
from dbaas.jsondrop_server.store import keygen

URL_SAFE = re.compile(r"^[A-Za-z0-9_-]+$")


class TestKeygen:
    """Tests for identifier generators."""

    @pytest.mark.parametrize(
        "generate,prefix,length",
        [
            (keygen.generate_tenant_id, "db_", 16),
            (keygen.generate_write_key, "wk_", 32),
            (keygen.generate_read_key, "rk_", 32),
            (keygen.generate_document_id, "doc_", 16),
        ],
    )
    def test_prefix_and_length(self, generate, prefix, length):
        """Each generator uses its role prefix and fixed length."""
        value = generate()
        assert value.startswith(prefix)
        suffix = value[len(prefix):]
        assert len(suffix) == length
        assert URL_SAFE.match(suffix)

    def test_values_are_unique(self):
        """Repeated calls do not collide."""
        keys = {keygen.generate_write_key() for _ in range(500)}
        assert len(keys) == 500

    def test_write_and_read_keys_differ(self):
        assert keygen.generate_write_key()[3:] != keygen.generate_read_key()[3:]

    def test_random_source_failure(self, monkeypatch):
        """An unavailable random source surfaces as GenerationFailureError."""

        def broken(nbytes=None):
            raise OSError("no entropy")

        monkeypatch.setattr(keygen.secrets, "token_urlsafe", broken)

        with pytest.raises(GenerationFailureError, match="random source unavailable"):
            keygen.generate_tenant_id()
