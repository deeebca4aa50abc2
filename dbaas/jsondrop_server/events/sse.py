"""
Server-Sent Events wire formatting.

Change events go out as a two-line `event: change` / `data: <json>`
block; heartbeats are a comment line that clients ignore.
"""

from __future__ import annotations

import json
import time
from typing import Any

from .types import ChangeEvent


def format_sse(event: ChangeEvent) -> str:
    """Format a change event as an SSE block."""
    data = json.dumps(event.to_dict(), separators=(",", ":"))
    return f"event: change\ndata: {data}\n\n"


def format_ping() -> str:
    """Format a heartbeat comment."""
    return ": ping\n\n"


def format_connected(tenant_id: str, collection: str | None = None) -> str:
    """Format the preamble sent when a stream opens."""
    payload: dict[str, Any] = {"database_id": tenant_id}
    if collection is not None:
        payload["collection"] = collection
    payload["timestamp"] = int(time.time() * 1000)
    return f"event: connected\ndata: {json.dumps(payload, separators=(',', ':'))}\n\n"
