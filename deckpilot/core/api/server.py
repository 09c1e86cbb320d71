"""
API Server - aiohttp-based REST server for DeckPilot.

Runs on the service's event loop next to the status poller, the
show-control gateway and the hub link.
"""

import weakref
from typing import Optional

from aiohttp import WSCloseCode, web

from deckpilot.core.logging_utils import get_module_logger

from .controller import APIController
from .middleware import (
    localhost_only_middleware,
    error_handling_middleware,
    request_logging_middleware,
    set_debug_mode,
)
from .routes import setup_all_routes


logger = get_module_logger("APIServer")

DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8090


class APIServer:
    """REST API server exposing the DeckPilot operation surface."""

    def __init__(
        self,
        controller: APIController,
        host: str = DEFAULT_API_HOST,
        port: int = DEFAULT_API_PORT,
        localhost_only: bool = True,
        debug: bool = False,
    ):
        """
        Initialize the API server.

        Args:
            controller: APIController instance wrapping DeckPilotSystem
            host: Host to bind to (default: localhost only)
            port: Port to bind to (default: 8090)
            localhost_only: If True, reject requests from non-localhost
            debug: If True, enable verbose error responses and request logging
        """
        self.controller = controller
        self.host = host
        self.port = port
        self.localhost_only = localhost_only
        self.debug = debug

        self._app: Optional[web.Application] = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._running = False

        set_debug_mode(debug)

    def create_app(self) -> web.Application:
        """Create and configure the aiohttp application."""
        # localhost check -> request logging -> error handling
        middlewares = [request_logging_middleware, error_handling_middleware]
        if self.localhost_only:
            middlewares.insert(0, localhost_only_middleware)

        app = web.Application(middlewares=middlewares)
        app["controller"] = self.controller
        app["event_sockets"] = weakref.WeakSet()
        app.on_shutdown.append(_close_event_sockets)
        setup_all_routes(app, self.controller)
        return app

    async def start(self) -> None:
        """Start the API server (non-blocking)."""
        if self._running:
            logger.warning("API server already running")
            return

        self._app = self.create_app()
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()

        self._site = web.TCPSite(self._runner, self.host, self.port)
        await self._site.start()

        self._running = True
        mode_info = " (debug mode)" if self.debug else ""
        logger.info("API server started on http://%s:%d%s", self.host, self.port, mode_info)

    async def stop(self) -> None:
        """Stop the API server gracefully."""
        if not self._running:
            return

        logger.info("Stopping API server...")

        if self._site:
            await self._site.stop()
            self._site = None

        if self._runner:
            await self._runner.cleanup()
            self._runner = None

        self._app = None
        self._running = False

        logger.info("API server stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


async def _close_event_sockets(app: web.Application) -> None:
    """Close open event streams so runner cleanup does not wait on them."""
    sockets = list(app["event_sockets"])
    if sockets:
        logger.debug("Closing %d event stream(s)", len(sockets))
    for ws in sockets:
        await ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")
