"""
Shared fixtures for JSONDrop unit tests.
"""

import os
import tempfile

import pytest

from dbaas.jsondrop_server.store import DocumentStore, TenantCatalog


class RecordingPublisher:
    """EventPublisher that keeps every published event."""

    def __init__(self):
        self.events = []

    def publish(self, event):
        self.events.append(event)

    def kinds(self):
        return [event.kind.value for event in self.events]


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def catalog(data_dir, publisher):
    """Catalog with a 1 KiB default quota."""
    catalog = TenantCatalog(
        catalog_path=os.path.join(data_dir, "catalog.db"),
        data_dir=os.path.join(data_dir, "tenants"),
        default_quota_bytes=1024,
        publisher=publisher,
        wal_mode=False,
    )
    catalog.initialize()
    return catalog


@pytest.fixture
def store(catalog, publisher):
    return DocumentStore(catalog, publisher=publisher)
