"""Show Routes - Show name, date format, new show, export and import."""

from aiohttp import web

from ..controller import APIController
from ..middleware import create_error_response, parse_json_body, result_to_response


def setup_show_routes(app: web.Application, controller: APIController) -> None:
    """Register show routes."""
    app.router.add_get("/api/v1/show", get_show_handler)
    app.router.add_put("/api/v1/show", set_show_handler)
    app.router.add_post("/api/v1/show/new", new_show_handler)
    app.router.add_post("/api/v1/show/export", export_show_handler)
    app.router.add_post("/api/v1/show/import", import_show_handler)


async def get_show_handler(request: web.Request) -> web.Response:
    """GET /api/v1/show - Show name, date format, formatted date, templates."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.get_show())


async def set_show_handler(request: web.Request) -> web.Response:
    """PUT /api/v1/show - Set show name and/or date format."""
    controller: APIController = request.app["controller"]
    body, err = await parse_json_body(request)
    if err:
        return err
    return web.json_response(await controller.set_show(body))


async def new_show_handler(request: web.Request) -> web.Response:
    """POST /api/v1/show/new - Clear recorders, takes and show name."""
    controller: APIController = request.app["controller"]
    return result_to_response(await controller.new_show())


async def export_show_handler(request: web.Request) -> web.Response:
    """POST /api/v1/show/export - Write the show to a file."""
    controller: APIController = request.app["controller"]
    body, err = await parse_json_body(request, required=False)
    if err:
        return err
    return result_to_response(await controller.export_show(body.get("filePath")))


async def import_show_handler(request: web.Request) -> web.Response:
    """POST /api/v1/show/import - Replace the show with an exported file."""
    controller: APIController = request.app["controller"]
    body, err = await parse_json_body(request)
    if err:
        return err
    if not body.get("filePath"):
        return create_error_response("MISSING_FILE_PATH", "'filePath' field is required", status=400)
    return result_to_response(await controller.import_show(str(body["filePath"])))
