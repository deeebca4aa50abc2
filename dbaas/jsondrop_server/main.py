"""
JSONDrop Server - Main entry point.

Starts the HTTP API with uvicorn. The FastAPI lifespan initializes the
catalog and runs the background loops:
- Tenant expiry sweep (idle tenants are deleted)
- Stale listener sweep (dead SSE subscribers are evicted)

Usage:
    python -m dbaas.jsondrop_server.main

Configuration is entirely via JSONDROP_ environment variables.
See config.py for all available settings.

Invariants:
    - Configuration errors abort startup with exit code 1
    - Logging is configured before any component is built
"""

from __future__ import annotations

import logging
import sys

import json_log_formatter
import uvicorn
from pydantic import ValidationError

from .api import create_app
from .config import Settings

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """Configure logging based on configuration.

    Args:
        settings: Server configuration
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    if settings.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    try:
        settings = Settings()
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(settings)
    settings.log_config()

    app = create_app(settings)
    logger.info(f"Starting JSONDrop server on {settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
