"""
HTTP adapter for JSONDrop.

A thin FastAPI layer over JsonDropService: it extracts capability keys,
maps JsonDropError codes to HTTP statuses and streams change events as
Server-Sent Events. No business rules live here.
"""

from .app import create_app
from .routes import router

__all__ = ["create_app", "router"]
