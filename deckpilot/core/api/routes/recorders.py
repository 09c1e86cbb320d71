"""Recorder Routes - Registry management endpoints."""

from aiohttp import web

from ..controller import APIController
from ..middleware import parse_json_body, result_to_response


def setup_recorder_routes(app: web.Application, controller: APIController) -> None:
    """Register recorder routes."""
    app.router.add_get("/api/v1/recorders", list_recorders_handler)
    app.router.add_post("/api/v1/recorders", add_recorder_handler)
    app.router.add_get("/api/v1/recorders/{recorder_id}", get_recorder_handler)
    app.router.add_put("/api/v1/recorders/{recorder_id}", update_recorder_handler)
    app.router.add_delete("/api/v1/recorders/{recorder_id}", remove_recorder_handler)
    app.router.add_post("/api/v1/recorders/{recorder_id}/refresh", refresh_recorder_handler)


async def list_recorders_handler(request: web.Request) -> web.Response:
    """GET /api/v1/recorders - List all recorders."""
    controller: APIController = request.app["controller"]
    return web.json_response({"recorders": await controller.list_recorders()})


async def add_recorder_handler(request: web.Request) -> web.Response:
    """POST /api/v1/recorders - Add a recorder."""
    controller: APIController = request.app["controller"]
    body, err = await parse_json_body(request)
    if err:
        return err
    return web.json_response(await controller.add_recorder(body), status=201)


async def get_recorder_handler(request: web.Request) -> web.Response:
    """GET /api/v1/recorders/{recorder_id} - Get one recorder."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.get_recorder(request.match_info["recorder_id"]))


async def update_recorder_handler(request: web.Request) -> web.Response:
    """PUT /api/v1/recorders/{recorder_id} - Update recorder fields."""
    controller: APIController = request.app["controller"]
    body, err = await parse_json_body(request)
    if err:
        return err
    result = await controller.update_recorder(request.match_info["recorder_id"], body)
    return web.json_response(result)


async def remove_recorder_handler(request: web.Request) -> web.Response:
    """DELETE /api/v1/recorders/{recorder_id} - Remove a recorder."""
    controller: APIController = request.app["controller"]
    return result_to_response(await controller.remove_recorder(request.match_info["recorder_id"]))


async def refresh_recorder_handler(request: web.Request) -> web.Response:
    """POST /api/v1/recorders/{recorder_id}/refresh - Poll one recorder now."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.refresh_recorder(request.match_info["recorder_id"]))
