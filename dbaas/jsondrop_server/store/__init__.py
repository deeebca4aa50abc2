"""
Storage module for JSONDrop - tenant catalog and document collections.

This module handles:
- The catalog database (tenants, capability keys, schemas, quota)
- Per-tenant SQLite files holding one table per collection
- Identifier sanitizing for dynamically named collection tables
- Capability key and document id generation

Invariants:
    - One SQLite file per tenant, named by tenant id
    - Mutations for one tenant are serialized by TenantLocks
    - quota_used moves together with every document write

How to change safely:
    - Never interpolate a collection name that has not been through
      safe_identifier
    - Keep the quota reservation and the document write in the same
      per-tenant critical section
"""

from .catalog import TenantCatalog
from .documents import DocumentStore
from .identifiers import quote_identifier, safe_identifier, validate_identifier
from .locks import TenantLocks
from .models import (
    Capability,
    Document,
    FieldType,
    ResolvedTenant,
    Schema,
    Tenant,
    TenantCredentials,
    TenantInfo,
)

__all__ = [
    "TenantCatalog",
    "DocumentStore",
    "TenantLocks",
    "quote_identifier",
    "safe_identifier",
    "validate_identifier",
    "Capability",
    "Document",
    "FieldType",
    "ResolvedTenant",
    "Schema",
    "Tenant",
    "TenantCredentials",
    "TenantInfo",
]
