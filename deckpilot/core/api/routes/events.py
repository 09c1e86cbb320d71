"""
Event Routes - Websocket push of state changes to the operator front end.

Each client gets a snapshot on connect, then every ``state-updated`` and
``show-control-triggered`` event in order. A client that falls too far
behind loses its oldest queued events rather than stalling the others.
"""

import asyncio
from typing import Any, Dict

from aiohttp import WSMsgType, web

from deckpilot.core.asyncio_utils import cancel_and_wait, create_logged_task
from deckpilot.core.logging_utils import get_module_logger

from ..controller import APIController

logger = get_module_logger("APIEvents")

EVENT_QUEUE_SIZE = 100


def setup_event_routes(app: web.Application, controller: APIController) -> None:
    """Register the event stream route."""
    app.router.add_get("/api/v1/events", events_handler)


async def events_handler(request: web.Request) -> web.WebSocketResponse:
    """GET /api/v1/events - Websocket stream of state events."""
    controller: APIController = request.app["controller"]
    ws = web.WebSocketResponse(heartbeat=20)
    await ws.prepare(request)
    request.app["event_sockets"].add(ws)

    queue: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue(maxsize=EVENT_QUEUE_SIZE)

    def _enqueue(event: Dict[str, Any]) -> None:
        if queue.full():
            queue.get_nowait()
        queue.put_nowait(event)

    remove_listener = controller.system.add_event_listener(_enqueue)
    await ws.send_json({"type": "state-updated", "state": controller.system.get_state()})

    async def _pump() -> None:
        while True:
            event = await queue.get()
            await ws.send_json(event)

    pump = create_logged_task(_pump(), logger=logger, context="APIEvents.pump")
    logger.debug("Event client connected (%s)", request.remote)
    try:
        async for msg in ws:
            if msg.type == WSMsgType.ERROR:
                logger.warning("Event socket error: %s", ws.exception())
                break
            if pump.done():
                break
    finally:
        remove_listener()
        await cancel_and_wait(pump)
        logger.debug("Event client disconnected (%s)", request.remote)

    return ws
