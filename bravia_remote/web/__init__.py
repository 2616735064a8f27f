"""
bravia_remote Web Layer.

This package provides the HTTP REST API for reading and changing
television state.

Components:
- WebServer: FastAPI application with all routes
"""

from bravia_remote.web.server import WebServer

__all__ = [
    "WebServer",
]
