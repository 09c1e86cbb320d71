"""Transport Routes - Deck transport, clips, timecode and video input."""

from aiohttp import web

from ..controller import APIController
from ..middleware import create_error_response, parse_json_body, result_to_response


def setup_transport_routes(app: web.Application, controller: APIController) -> None:
    """Register transport routes."""
    app.router.add_post("/api/v1/recorders/{recorder_id}/transport/{action}", transport_handler)
    app.router.add_get("/api/v1/recorders/{recorder_id}/clips", clips_handler)
    app.router.add_post("/api/v1/recorders/{recorder_id}/clips/{clip_id}/goto", goto_clip_handler)
    app.router.add_post("/api/v1/recorders/{recorder_id}/clips/{clip_id}/play", play_clip_handler)
    app.router.add_post("/api/v1/recorders/{recorder_id}/timecode", timecode_handler)
    app.router.add_put("/api/v1/recorders/{recorder_id}/video-input", video_input_handler)


def _clip_id(request: web.Request) -> int:
    raw = request.match_info["clip_id"]
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid clip id: {raw}") from None


async def transport_handler(request: web.Request) -> web.Response:
    """POST /api/v1/recorders/{recorder_id}/transport/{action} - play|stop|record|prev|next."""
    controller: APIController = request.app["controller"]
    result = await controller.transport(request.match_info["recorder_id"], request.match_info["action"])
    return result_to_response(result)


async def clips_handler(request: web.Request) -> web.Response:
    """GET /api/v1/recorders/{recorder_id}/clips - Clip list from the deck."""
    controller: APIController = request.app["controller"]
    return web.json_response(await controller.get_clips(request.match_info["recorder_id"]))


async def goto_clip_handler(request: web.Request) -> web.Response:
    """POST /api/v1/recorders/{recorder_id}/clips/{clip_id}/goto - Cue a clip."""
    controller: APIController = request.app["controller"]
    result = await controller.goto_clip(request.match_info["recorder_id"], _clip_id(request))
    return result_to_response(result)


async def play_clip_handler(request: web.Request) -> web.Response:
    """POST /api/v1/recorders/{recorder_id}/clips/{clip_id}/play - Play a clip."""
    controller: APIController = request.app["controller"]
    result = await controller.goto_clip(request.match_info["recorder_id"], _clip_id(request), play=True)
    return result_to_response(result)


async def timecode_handler(request: web.Request) -> web.Response:
    """POST /api/v1/recorders/{recorder_id}/timecode - Jump to HH:MM:SS:FF."""
    controller: APIController = request.app["controller"]
    body, err = await parse_json_body(request)
    if err:
        return err
    if not body.get("timecode"):
        return create_error_response("MISSING_TIMECODE", "'timecode' field is required", status=400)
    result = await controller.goto_timecode(request.match_info["recorder_id"], str(body["timecode"]))
    return result_to_response(result)


async def video_input_handler(request: web.Request) -> web.Response:
    """PUT /api/v1/recorders/{recorder_id}/video-input - Select SDI, HDMI or component."""
    controller: APIController = request.app["controller"]
    body, err = await parse_json_body(request)
    if err:
        return err
    if not body.get("videoInput"):
        return create_error_response("MISSING_VIDEO_INPUT", "'videoInput' field is required", status=400)
    result = await controller.set_video_input(request.match_info["recorder_id"], str(body["videoInput"]))
    return result_to_response(result)
