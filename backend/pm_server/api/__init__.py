"""
HTTP transport for PM Server.

- app: FastAPI application factory, CORS and error mapping
- routes: /api route table
"""

from .app import create_app, status_for

__all__ = [
    "create_app",
    "status_for",
]
