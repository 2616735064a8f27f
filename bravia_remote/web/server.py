"""
Web Server Module for bravia_remote.

This module provides the WebServer class that creates and manages the
FastAPI application and serves it with uvicorn.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bravia_remote import __version__
from bravia_remote.web.routes.api import register_api_routes

if TYPE_CHECKING:
    from bravia_remote.device.registry import DiscoveryRegistry

logger = logging.getLogger(__name__)


class WebServer:
    """
    FastAPI-based HTTP control surface.

    Exposes the televisions held by a DiscoveryRegistry over a small REST
    API.
    """

    def __init__(self, registry: DiscoveryRegistry) -> None:
        """
        Initialize the WebServer.

        Args:
            registry: Registry of discovered televisions
        """
        self.registry = registry

        self.app = FastAPI(
            title="Bravia Remote",
            description="Remote control for Sony Bravia televisions",
            version=__version__,
        )

        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        # Server state
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._host = "0.0.0.0"
        self._port = 8060

        self._register_routes()

    def _register_routes(self) -> None:
        """Register all routes with the FastAPI app."""

        @self.app.get("/health")
        async def health_check() -> dict[str, str]:
            """Health check endpoint."""
            return {"status": "ok", "server": "bravia-remote"}

        register_api_routes(self.app, registry=self.registry)

    async def start(self, host: str = "0.0.0.0", port: int = 8060) -> None:
        """
        Start the web server.

        Args:
            host: Host address to bind to
            port: Port to listen on
        """
        self._host = host
        self._port = port

        config = uvicorn.Config(
            self.app,
            host=host,
            port=port,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)

        # Start server in background
        self._serve_task = asyncio.create_task(self._server.serve())

        logger.info("Web server started on http://%s:%d", host, port)

    async def stop(self) -> None:
        """Stop the web server."""
        if self._server is not None:
            self._server.should_exit = True
            self._server = None

        if self._serve_task is not None:
            try:
                await self._serve_task
            except Exception as e:
                logger.warning("Web server exited with error: %s", e)
            self._serve_task = None

        logger.info("Web server stopped")
