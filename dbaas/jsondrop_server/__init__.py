"""
JSONDrop Server - anonymous multi-tenant JSON document store.

This package implements a small database-as-a-service built on:
- A catalog SQLite database mapping capability keys to tenants and schemas
- One SQLite file per tenant holding its schema-bound collections
- An in-process change broadcaster streaming events over Server-Sent Events

Architecture:
    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Client    │────▶│  HTTP API   │────▶│  TenantCatalog  │
    │ (key auth)  │     │  (FastAPI)  │     │  (catalog.db)   │
    └─────────────┘     └──────┬──────┘     └─────────────────┘
                               │
                               ▼
                        ┌─────────────┐     ┌─────────────────┐
                        │DocumentStore│────▶│  <tenant>.db    │
                        └──────┬──────┘     └─────────────────┘
                               │ change events
                               ▼
                        ┌─────────────┐
                        │ Broadcaster │────▶ SSE listeners
                        └─────────────┘

Invariants:
    - quota_used never exceeds quota_limit for any tenant
    - Every caller-supplied collection name passes identifier validation
      before it reaches a SQL statement
    - Write and read keys are distinct and never shared across tenants
    - Change events are best-effort and never block writers

How to change safely:
    - Keep quota accounting inside the per-tenant critical section
    - Route new dynamic SQL names through store.identifiers.safe_identifier
"""

from ._version import __version__

__all__ = ["__version__"]
