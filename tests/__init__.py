"""
JSONDrop Test Suite.

This package contains:
- unit/: Unit tests (temporary SQLite files, no network)
- integration/: HTTP API tests (in-process ASGI app)
"""
