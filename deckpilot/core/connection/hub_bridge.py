"""
Remote Hub Bridge - persistent websocket link to the monitoring hub.

State machine:

    DISCONNECTED -> CONNECTING -> AUTHENTICATING -> AUTHENTICATED
         ^                                               |
         +--------------- close / error -----------------+

On open the auth frame is sent immediately. ``auth_ok`` starts the heartbeat
and metrics timers (metrics are also sent once right away); any disconnect
stops both and, while the feature stays enabled, schedules a reconnect five
seconds later. There is no terminal failure state.

Inbound commands run as their own tasks so a slow command never stalls the
receive loop; each outcome is answered with a ``command_result`` frame
carrying the same ``command_id``.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set

import aiohttp

from ..asyncio_utils import cancel_and_wait, create_logged_task, run_periodically
from ..errors import DeckPilotError
from ..logging_utils import get_module_logger
from ..models import HubSettings, Recorder
from .hub_frames import (
    AuthOk,
    HubCommand,
    HubFrameError,
    auth_frame,
    command_result_frame,
    heartbeat_frame,
    metrics_frame,
    parse_frame,
)
from .hub_commands import HubCommandError

HEARTBEAT_INTERVAL = 30.0
METRICS_INTERVAL = 30.0
RECONNECT_DELAY = 5.0
ENDPOINT_CHANGE_DELAY = 1.0
CONNECT_TIMEOUT = 10.0

CommandHandler = Callable[[HubCommand], Awaitable[Any]]
RecordersProvider = Callable[[], Iterable[Recorder]]


class HubState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"


class HubBridge:

    def __init__(
        self,
        settings: HubSettings,
        *,
        node_id: str,
        version: str,
        recorders_provider: RecordersProvider,
        command_handler: CommandHandler,
        heartbeat_interval: float = HEARTBEAT_INTERVAL,
        metrics_interval: float = METRICS_INTERVAL,
        reconnect_delay: float = RECONNECT_DELAY,
        endpoint_change_delay: float = ENDPOINT_CHANGE_DELAY,
        on_state_change: Optional[Callable[[HubState], None]] = None,
    ):
        self.logger = get_module_logger("HubBridge")
        self.settings = settings
        self.node_id = node_id
        self.version = version
        self.recorders_provider = recorders_provider
        self.command_handler = command_handler
        self.heartbeat_interval = heartbeat_interval
        self.metrics_interval = metrics_interval
        self.reconnect_delay = reconnect_delay
        self.endpoint_change_delay = endpoint_change_delay
        self.on_state_change = on_state_change

        self._state = HubState.DISCONNECTED
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._connection_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._metrics_task: Optional[asyncio.Task] = None
        self._command_tasks: Set[asyncio.Task] = set()
        self._wants_connection = False
        self._reconnect_scheduled = False

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def state(self) -> HubState:
        return self._state

    @property
    def heartbeat_active(self) -> bool:
        return self._heartbeat_task is not None and not self._heartbeat_task.done()

    @property
    def metrics_active(self) -> bool:
        return self._metrics_task is not None and not self._metrics_task.done()

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_scheduled

    def _set_state(self, state: HubState) -> None:
        if state is self._state:
            return
        self.logger.debug("Hub state %s -> %s", self._state.value, state.value)
        self._state = state
        if self.on_state_change is not None:
            self.on_state_change(state)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        if self.settings.enabled:
            self._connect()
        else:
            self.logger.info("Hub integration disabled")

    async def stop(self) -> None:
        await self._disconnect()
        for task in list(self._command_tasks):
            await cancel_and_wait(task)
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def apply_settings(self, settings: HubSettings) -> None:
        was_enabled = self.settings.enabled
        endpoint_changed = settings.hub_url != self.settings.hub_url
        self.settings = settings
        self.node_id = settings.node_id or self.node_id

        if settings.enabled and not was_enabled:
            self.logger.info("Hub integration enabled")
            self._connect()
        elif was_enabled and not settings.enabled:
            self.logger.info("Hub integration disabled")
            await self._disconnect()
        elif settings.enabled and endpoint_changed:
            self.logger.info("Hub endpoint changed to %s, reconnecting", settings.hub_url)
            await self._disconnect()
            self._connect(delay=self.endpoint_change_delay)

    def _connect(self, delay: float = 0.0) -> None:
        self._wants_connection = True
        if self._connection_task is not None and not self._connection_task.done():
            return
        self._connection_task = create_logged_task(
            self._connection_loop(delay),
            logger=self.logger,
            context="HubBridge.connection",
        )

    async def _disconnect(self) -> None:
        self._wants_connection = False
        task, self._connection_task = self._connection_task, None
        await cancel_and_wait(task)
        await self._stop_timers()
        self._reconnect_scheduled = False
        self._set_state(HubState.DISCONNECTED)

    # =========================================================================
    # Connection loop
    # =========================================================================

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=None, sock_connect=CONNECT_TIMEOUT),
            )
        return self._session

    async def _connection_loop(self, initial_delay: float) -> None:
        if initial_delay > 0:
            await asyncio.sleep(initial_delay)
        while self._wants_connection:
            await self._run_connection()
            if not self._wants_connection:
                break
            self.logger.info("Reconnecting to hub in %.0fs", self.reconnect_delay)
            self._reconnect_scheduled = True
            try:
                await asyncio.sleep(self.reconnect_delay)
            finally:
                self._reconnect_scheduled = False

    async def _run_connection(self) -> None:
        url = self.settings.hub_url
        self._set_state(HubState.CONNECTING)
        self.logger.info("Connecting to hub %s", url)
        try:
            async with self._get_session().ws_connect(url) as ws:
                self._ws = ws
                self._set_state(HubState.AUTHENTICATING)
                await self._send(auth_frame(self.settings, self.node_id, self.version))

                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        self._handle_text(msg.data)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        self.logger.warning("Hub websocket error: %s", ws.exception())
                        break
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            self.logger.warning("Hub connection to %s failed: %s", url, e)
        finally:
            self._ws = None
            await self._stop_timers()
            if self._state is not HubState.DISCONNECTED:
                self.logger.info("Disconnected from hub")
            self._set_state(HubState.DISCONNECTED)

    # =========================================================================
    # Inbound
    # =========================================================================

    def _handle_text(self, text: str) -> None:
        try:
            frame = parse_frame(text)
        except HubFrameError as e:
            self.logger.warning("Dropped hub frame: %s", e)
            return

        if isinstance(frame, AuthOk):
            self._on_auth_ok(frame)
        elif isinstance(frame, HubCommand):
            self.logger.info("Hub command %s (%s)", frame.command, frame.command_id)
            create_logged_task(
                self._execute_command(frame),
                logger=self.logger,
                context=f"HubBridge.command[{frame.command}]",
                pending=self._command_tasks,
            )
        else:
            self.logger.debug("Ignoring hub frame type '%s'", frame.type)

    def _on_auth_ok(self, frame: AuthOk) -> None:
        self._set_state(HubState.AUTHENTICATED)
        self.logger.info("Authenticated with hub%s", f": {frame.message}" if frame.message else "")
        self._start_timers()

    async def _execute_command(self, command: HubCommand) -> None:
        try:
            result = await self.command_handler(command)
        except (HubCommandError, DeckPilotError) as e:
            self.logger.warning("Hub command %s failed: %s", command.command, e)
            reply = command_result_frame(command.command_id, self.node_id, success=False, error=str(e))
        except Exception as e:
            self.logger.exception("Hub command %s raised", command.command)
            reply = command_result_frame(command.command_id, self.node_id, success=False, error=str(e))
        else:
            reply = command_result_frame(command.command_id, self.node_id, success=True, result=result)

        if not await self._send(reply):
            self.logger.warning("Result for hub command %s was not delivered", command.command_id)

    # =========================================================================
    # Outbound
    # =========================================================================

    async def _send(self, frame: Dict[str, Any]) -> bool:
        ws = self._ws
        if ws is None or ws.closed:
            return False
        try:
            await ws.send_json(frame)
        except (aiohttp.ClientError, ConnectionResetError, RuntimeError) as e:
            self.logger.warning("Failed to send %s frame: %s", frame.get("type"), e)
            return False
        return True

    async def send_heartbeat(self) -> None:
        await self._send(heartbeat_frame(self.node_id))

    async def send_metrics(self) -> None:
        await self._send(metrics_frame(self.node_id, self.recorders_provider()))

    def _start_timers(self) -> None:
        if not self.heartbeat_active:
            self._heartbeat_task = create_logged_task(
                run_periodically(self.heartbeat_interval, self.send_heartbeat),
                logger=self.logger,
                context="HubBridge.heartbeat",
            )
        if not self.metrics_active:
            self._metrics_task = create_logged_task(
                run_periodically(self.metrics_interval, self.send_metrics, immediate=True),
                logger=self.logger,
                context="HubBridge.metrics",
            )

    async def _stop_timers(self) -> None:
        heartbeat, self._heartbeat_task = self._heartbeat_task, None
        metrics, self._metrics_task = self._metrics_task, None
        await cancel_and_wait(heartbeat)
        await cancel_and_wait(metrics)
