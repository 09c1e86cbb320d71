"""Take Routes - Take names, numbering and history."""

from aiohttp import web

from ..controller import APIController
from ..middleware import create_error_response, parse_json_body, result_to_response


def setup_take_routes(app: web.Application, controller: APIController) -> None:
    """Register take and numbering routes."""
    app.router.add_get("/api/v1/takes/history", history_handler)
    app.router.add_post("/api/v1/takes/trigger-all", trigger_all_handler)
    app.router.add_get("/api/v1/recorders/{recorder_id}/take", preview_handler)
    app.router.add_put("/api/v1/recorders/{recorder_id}/take", set_take_name_handler)
    app.router.add_post("/api/v1/recorders/{recorder_id}/take/trigger", trigger_take_handler)
    app.router.add_put("/api/v1/recorders/{recorder_id}/numbers", set_numbers_handler)
    app.router.add_post("/api/v1/recorders/{recorder_id}/shot/increment", increment_shot_handler)
    app.router.add_post("/api/v1/recorders/{recorder_id}/take/increment", increment_take_handler)
    app.router.add_put("/api/v1/recorders/{recorder_id}/template", template_settings_handler)


async def history_handler(request: web.Request) -> web.Response:
    """GET /api/v1/takes/history - Take history, newest first."""
    controller: APIController = request.app["controller"]
    return web.json_response({"history": await controller.get_take_history()})


async def trigger_all_handler(request: web.Request) -> web.Response:
    """POST /api/v1/takes/trigger-all - Generate takes for every enabled recorder."""
    controller: APIController = request.app["controller"]
    return result_to_response(await controller.trigger_all())


async def preview_handler(request: web.Request) -> web.Response:
    """GET /api/v1/recorders/{recorder_id}/take - Current and next take names."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.get_preview(request.match_info["recorder_id"]))


async def set_take_name_handler(request: web.Request) -> web.Response:
    """PUT /api/v1/recorders/{recorder_id}/take - Set a manual take name."""
    controller: APIController = request.app["controller"]
    body, err = await parse_json_body(request)
    if err:
        return err
    take_name = str(body.get("takeName") or "").strip()
    if not take_name:
        return create_error_response("MISSING_TAKE_NAME", "'takeName' field is required", status=400)
    result = await controller.set_take_name(request.match_info["recorder_id"], take_name)
    return result_to_response(result)


async def trigger_take_handler(request: web.Request) -> web.Response:
    """POST /api/v1/recorders/{recorder_id}/take/trigger - Generate and commit the next take."""
    controller: APIController = request.app["controller"]
    return result_to_response(await controller.trigger_take(request.match_info["recorder_id"]))


async def set_numbers_handler(request: web.Request) -> web.Response:
    """PUT /api/v1/recorders/{recorder_id}/numbers - Set shot and/or take number."""
    controller: APIController = request.app["controller"]
    body, err = await parse_json_body(request)
    if err:
        return err
    return web.json_response(await controller.set_numbers(request.match_info["recorder_id"], body))


async def increment_shot_handler(request: web.Request) -> web.Response:
    """POST /api/v1/recorders/{recorder_id}/shot/increment - Next shot, take back to 1."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.increment_shot(request.match_info["recorder_id"]))


async def increment_take_handler(request: web.Request) -> web.Response:
    """POST /api/v1/recorders/{recorder_id}/take/increment - Next take."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.increment_take(request.match_info["recorder_id"]))


async def template_settings_handler(request: web.Request) -> web.Response:
    """PUT /api/v1/recorders/{recorder_id}/template - Update template toggles."""
    controller: APIController = request.app["controller"]
    body, err = await parse_json_body(request)
    if err:
        return err
    result = await controller.set_template_settings(request.match_info["recorder_id"], body)
    return web.json_response(result)
