"""
System Routes - Health, status, host info, shutdown endpoints.
"""

from aiohttp import web

from ..controller import APIController


def setup_system_routes(app: web.Application, controller: APIController) -> None:
    """Register system routes."""
    app.router.add_get("/api/v1/health", health_handler)
    app.router.add_get("/api/v1/status", status_handler)
    app.router.add_get("/api/v1/info/system", system_info_handler)
    app.router.add_get("/api/v1/state", state_handler)
    app.router.add_post("/api/v1/status/refresh", refresh_handler)
    app.router.add_post("/api/v1/shutdown", shutdown_handler)


async def health_handler(request: web.Request) -> web.Response:
    """GET /api/v1/health - Health check."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.health_check())


async def status_handler(request: web.Request) -> web.Response:
    """GET /api/v1/status - Recorder counts and link status."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.get_status())


async def system_info_handler(request: web.Request) -> web.Response:
    """GET /api/v1/info/system - Host platform, CPU and memory."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.get_system_info())


async def state_handler(request: web.Request) -> web.Response:
    """GET /api/v1/state - Full state snapshot."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.get_state())


async def refresh_handler(request: web.Request) -> web.Response:
    """POST /api/v1/status/refresh - Poll every recorder now."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.refresh_status())


async def shutdown_handler(request: web.Request) -> web.Response:
    """POST /api/v1/shutdown - Initiate graceful shutdown."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.shutdown())
