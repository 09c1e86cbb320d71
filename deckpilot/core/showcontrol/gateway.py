"""
UDP bridge to the show-control surface.

The listener decodes inbound OSC datagrams into ``ShowControlCommand``
variants and hands them to ``on_command``. The sender emits one datagram per
take commit to a single destination. Both are fire-and-forget: socket errors
are logged, the listener rebinds five seconds after an error and nothing is
retried or acknowledged.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Iterable, Optional, Set, Tuple

from ..asyncio_utils import cancel_and_wait, create_logged_task, run_periodically
from ..logging_utils import get_module_logger
from ..models import Recorder, ShowControlSettings
from .messages import (
    ShowControlCommand,
    ShowControlMessageError,
    build_take_message,
    decode_datagram,
    parse_command,
    take_address,
)

LISTENER_RESTART_DELAY = 5.0
REBROADCAST_DELAY = 2.0
REBROADCAST_INTERVAL = 10.0

CommandHandler = Callable[[ShowControlCommand], Any]
BroadcastSource = Callable[[], Iterable[Tuple[Recorder, str]]]


class _ListenerProtocol(asyncio.DatagramProtocol):

    def __init__(self, gateway: "ShowControlGateway"):
        self.gateway = gateway

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        self.gateway.handle_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        self.gateway._on_listener_error(exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None:
            self.gateway._on_listener_error(exc)


class _SenderProtocol(asyncio.DatagramProtocol):

    def __init__(self, logger):
        self.logger = logger

    def error_received(self, exc: Exception) -> None:
        self.logger.warning("Show-control send error: %s", exc)


class ShowControlGateway:

    def __init__(
        self,
        settings: ShowControlSettings,
        *,
        on_command: CommandHandler,
        broadcast_source: BroadcastSource,
        rebroadcast_delay: float = REBROADCAST_DELAY,
        rebroadcast_interval: float = REBROADCAST_INTERVAL,
        restart_delay: float = LISTENER_RESTART_DELAY,
    ):
        self.logger = get_module_logger("ShowControl")
        self.settings = settings
        self.on_command = on_command
        self.broadcast_source = broadcast_source
        self.rebroadcast_delay = rebroadcast_delay
        self.rebroadcast_interval = rebroadcast_interval
        self.restart_delay = restart_delay

        self._listener: Optional[asyncio.DatagramTransport] = None
        self._sender: Optional[asyncio.DatagramTransport] = None
        self._restart_task: Optional[asyncio.Task] = None
        self._broadcast_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._running = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def listener_address(self) -> Optional[Tuple[str, int]]:
        if self._listener is None:
            return None
        sockname = self._listener.get_extra_info("sockname")
        return (sockname[0], sockname[1]) if sockname else None

    @property
    def sender_ready(self) -> bool:
        return self._sender is not None

    async def start(self) -> None:
        self._running = True
        await self._open_sender()
        await self._open_listener()
        if self._broadcast_task is None:
            self._broadcast_task = create_logged_task(
                self._rebroadcast_loop(),
                logger=self.logger,
                context="ShowControl.rebroadcast",
            )

    async def stop(self) -> None:
        self._running = False
        await cancel_and_wait(self._broadcast_task)
        self._broadcast_task = None
        await cancel_and_wait(self._restart_task)
        self._restart_task = None
        for task in list(self._pending):
            await cancel_and_wait(task)
        self._close_listener()
        self._close_sender()

    async def apply_settings(self, settings: ShowControlSettings) -> None:
        """Swap in new settings and rebind both sockets."""
        self.settings = settings
        if not self._running:
            return
        await cancel_and_wait(self._restart_task)
        self._restart_task = None
        self._close_listener()
        self._close_sender()
        await self._open_sender()
        await self._open_listener()

    # =========================================================================
    # Sender
    # =========================================================================

    async def _open_sender(self) -> None:
        if not self.settings.enabled or self._sender is not None:
            return
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _SenderProtocol(self.logger),
                local_addr=("0.0.0.0", 0),
            )
        except OSError as e:
            self.logger.error("Could not open show-control sender: %s", e)
            return
        self._sender = transport
        self.logger.info(
            "Sending take updates to %s:%d", self.settings.send_host, self.settings.send_port
        )

    def _close_sender(self) -> None:
        if self._sender is not None:
            self._sender.close()
            self._sender = None

    def send_take(self, recorder: Recorder, take_name: str) -> bool:
        """Emit one take update for ``recorder``. Returns whether it was handed to the socket."""
        if self._sender is None or not self.settings.enabled:
            return False
        try:
            payload = build_take_message(self.settings.address_prefix, recorder, take_name)
            self._sender.sendto(payload, (self.settings.send_host, self.settings.send_port))
        except (OSError, ValueError) as e:
            self.logger.warning("Failed to send take for %s: %s", recorder.name, e)
            return False
        self.logger.debug(
            "Sent %s -> %s (S%d T%d)",
            take_address(self.settings.address_prefix, recorder),
            take_name, recorder.shot_number, recorder.take_number,
        )
        return True

    def broadcast_all(self, source: Optional[BroadcastSource] = None) -> int:
        sent = 0
        for recorder, take_name in (source or self.broadcast_source)():
            if self.send_take(recorder, take_name):
                sent += 1
        return sent

    def broadcast_later(self, source: Optional[BroadcastSource] = None, delay: float = 0.1) -> None:
        """Broadcast ``source`` (default: every recorder) after ``delay`` seconds."""
        async def _later() -> None:
            await asyncio.sleep(delay)
            self.broadcast_all(source)

        create_logged_task(_later(), logger=self.logger, context="ShowControl.broadcast", pending=self._pending)

    async def _rebroadcast_loop(self) -> None:
        await asyncio.sleep(self.rebroadcast_delay)

        async def _broadcast() -> None:
            count = self.broadcast_all()
            if count:
                self.logger.debug("Re-broadcast %d recorders", count)

        await run_periodically(self.rebroadcast_interval, _broadcast, immediate=True)

    # =========================================================================
    # Listener
    # =========================================================================

    async def _open_listener(self) -> None:
        if not self.settings.listener_enabled or self._listener is not None:
            return
        host, port = self.settings.listener_host, self.settings.listener_port
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _ListenerProtocol(self),
                local_addr=(host, port),
            )
        except OSError as e:
            self.logger.error("Could not bind show-control listener on %s:%d: %s", host, port, e)
            self._schedule_restart()
            return
        self._listener = transport
        self.logger.info("Show-control listener on %s:%d", *self.listener_address)

    def _close_listener(self) -> None:
        if self._listener is not None:
            transport, self._listener = self._listener, None
            transport.close()

    def _on_listener_error(self, exc: Exception) -> None:
        self.logger.error("Show-control listener error: %s", exc)
        self._close_listener()
        self._schedule_restart()

    def _schedule_restart(self) -> None:
        if not self._running or (self._restart_task is not None and not self._restart_task.done()):
            return

        async def _restart() -> None:
            await asyncio.sleep(self.restart_delay)
            self._restart_task = None
            self.logger.info("Restarting show-control listener")
            await self._open_listener()

        self._restart_task = create_logged_task(_restart(), logger=self.logger, context="ShowControl.restart")

    def handle_datagram(self, data: bytes, addr: Tuple[str, int] = ("?", 0)) -> None:
        try:
            messages = decode_datagram(data)
        except ShowControlMessageError as e:
            self.logger.warning("Dropped datagram from %s: %s", addr[0], e)
            return

        for address, params in messages:
            try:
                command = parse_command(address, self.settings.address_prefix)
            except ShowControlMessageError as e:
                self.logger.info("Ignored %s from %s: %s", address, addr[0], e)
                continue
            self.logger.info("Received %s from %s", address, addr[0])
            self._dispatch(command)

    def _dispatch(self, command: ShowControlCommand) -> None:
        result = self.on_command(command)
        if asyncio.iscoroutine(result):
            create_logged_task(result, logger=self.logger, context="ShowControl.command", pending=self._pending)


__all__ = ["ShowControlGateway", "LISTENER_RESTART_DELAY", "REBROADCAST_DELAY", "REBROADCAST_INTERVAL"]
