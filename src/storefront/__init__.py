"""
Storefront - HTTP Server
HTTP layer

This module implements the FastAPI server for the Bookstore inventory service.

The Storefront provides:
- Liveness, readiness and metrics endpoints
- Book CRUD endpoints backed by the store with a Redis read cache
- Request logging with request IDs
- A uniform ``{"error": ...}`` body for every failure
"""

from .app import app, create_app, run_server

__all__ = [
    'app',
    'create_app',
    'run_server'
]
