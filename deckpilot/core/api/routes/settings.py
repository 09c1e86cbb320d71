"""Settings Routes - Show-control and hub settings."""

from aiohttp import web

from ..controller import APIController
from ..middleware import parse_json_body


def setup_settings_routes(app: web.Application, controller: APIController) -> None:
    """Register settings routes."""
    app.router.add_get("/api/v1/settings", get_settings_handler)
    app.router.add_put("/api/v1/settings/show-control", show_control_settings_handler)
    app.router.add_put("/api/v1/settings/hub", hub_settings_handler)


async def get_settings_handler(request: web.Request) -> web.Response:
    """GET /api/v1/settings - Both settings groups."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.get_settings())


async def show_control_settings_handler(request: web.Request) -> web.Response:
    """PUT /api/v1/settings/show-control - Merge and rebind the gateway."""
    controller: APIController = request.app["controller"]
    body, err = await parse_json_body(request)
    if err:
        return err
    return web.json_response(await controller.update_show_control_settings(body))


async def hub_settings_handler(request: web.Request) -> web.Response:
    """PUT /api/v1/settings/hub - Merge and reconnect the hub link."""
    controller: APIController = request.app["controller"]
    body, err = await parse_json_body(request)
    if err:
        return err
    return web.json_response(await controller.update_hub_settings(body))
