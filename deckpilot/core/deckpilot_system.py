"""
DeckPilot System - Main coordinator for recorder control.

This is the facade the local API, the show-control gateway and the hub
bridge all call into. It owns:

- StateStore: recorder registry, takes and settings
- StatePersistence: the state document, saved after every user change
- DeckClient / StatusReconciler: deck control and periodic status polling
- ShowControlGateway: OSC triggers in, take updates out
- HubBridge: monitoring hub link and its command dispatcher

Unknown recorder ids raise ``RecorderNotFoundError`` and invalid values raise
``ValidationError``; network outcomes are returned as plain success values.
"""

import asyncio
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from . import __version__
from .asyncio_utils import cancel_and_wait, create_logged_task
from .connection.hub_bridge import HubBridge, HubState
from .connection.hub_commands import HubCommandDispatcher
from .connection.hub_frames import HubCommand
from .devices.deck_client import DeckClient
from .devices.deck_protocol import TIMECODE_PATTERN, VIDEO_INPUTS, codec_token
from .devices.status_reconciler import DEFAULT_STATUS_INTERVAL, StatusReconciler
from .errors import DeckPilotError, ValidationError
from .logging_utils import get_module_logger
from .models import Clip, HubSettings, Recorder, ShowControlSettings, TakeRecord, now_ms
from .paths import USER_STATE_DIR
from .showcontrol.gateway import ShowControlGateway
from .showcontrol.messages import ALL_TARGET, SetAllCommand, SetTakeCommand, ShowControlCommand
from .state_persistence import StatePersistence, default_export_name
from .state_store import StateStore, StoreEvent, StoreEventKind
from .take_names import format_date, generate_take_name

EventListener = Callable[[Dict[str, Any]], None]

TRANSPORT_ACTIONS = ("play", "stop", "record", "prev", "next")


class DeckPilotSystem:

    def __init__(
        self,
        state_file: Path,
        *,
        status_interval: float = DEFAULT_STATUS_INTERVAL,
        deck_client: Optional[DeckClient] = None,
    ):
        self.logger = get_module_logger("DeckPilotSystem")
        self.persistence = StatePersistence(state_file)
        self.store = StateStore()
        self.client = deck_client or DeckClient()
        self.reconciler = StatusReconciler(self.store, self.client, interval=status_interval)
        self.hub_dispatcher = HubCommandDispatcher(self)

        self.gateway = ShowControlGateway(
            self.store.state.show_control,
            on_command=self.handle_show_control,
            broadcast_source=self._broadcast_items,
        )
        self.hub: Optional[HubBridge] = None

        self._listeners: List[EventListener] = []
        self._pending: Set[asyncio.Task] = set()
        self._persist = False
        self._started = False
        self.store.subscribe(self._on_store_event)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def async_init(self) -> None:
        """Load persisted state and build the network components."""
        state = await self.persistence.load()
        generated_node_id = not state.hub.node_id
        if generated_node_id:
            state.hub.node_id = str(uuid.uuid4())
        self.store.replace_state(state)

        self.gateway.settings = state.show_control
        self.hub = HubBridge(
            state.hub,
            node_id=state.hub.node_id,
            version=__version__,
            recorders_provider=lambda: self.store.recorders,
            command_handler=self.handle_hub_command,
        )

        self._persist = True
        if generated_node_id:
            self._request_save()
        self.logger.info("DeckPilot initialized with %d recorders", len(state.recorders))

    async def start(self) -> None:
        if self.hub is None:
            await self.async_init()
        self.reconciler.start()
        await self.gateway.start()
        await self.hub.start()
        self._started = True
        self.logger.info("DeckPilot started")

    async def stop(self) -> None:
        self.logger.info("Stopping DeckPilot")
        self._started = False
        if self.hub is not None:
            await self.hub.stop()
        await self.gateway.stop()
        await self.reconciler.stop()
        for task in list(self._pending):
            await cancel_and_wait(task)
        await self.persistence.flush()
        if self._persist:
            await self.persistence.save(self.store.state)

    # =========================================================================
    # Events
    # =========================================================================

    def add_event_listener(self, listener: EventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _emit(self, event: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                self.logger.exception("Event listener failed on %s", event.get("type"))

    def _request_save(self) -> None:
        if self._persist:
            self.persistence.request_save(lambda: self.store.state)

    def _on_store_event(self, event: StoreEvent) -> None:
        if event.kind.persistent:
            self._request_save()
        if event.kind is not StoreEventKind.DEVICE_STATUS:
            self._emit({"type": "state-updated", "state": self.store.snapshot()})

    def _spawn(self, coro, context: str) -> asyncio.Task:
        return create_logged_task(coro, logger=self.logger, context=context, pending=self._pending)

    # =========================================================================
    # State queries
    # =========================================================================

    def get_state(self) -> Dict[str, Any]:
        return self.store.snapshot()

    def get_status_summary(self) -> Dict[str, int]:
        recorders = self.store.recorders
        return {
            "recorders": len(recorders),
            "online": sum(1 for r in recorders if r.online),
            "recording": sum(1 for r in recorders if r.is_recording),
        }

    def get_take_history(self) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in self.store.state.take_history]

    def current_take_name(self, recorder: Recorder) -> str:
        return self.store.current_take(recorder.id) or self.generate_take_name(recorder)

    def generate_take_name(self, recorder: Recorder) -> str:
        state = self.store.state
        return generate_take_name(recorder, state.show_name, state.date_format)

    def _broadcast_items(self, recorders: Optional[Iterable[Recorder]] = None) -> List[Tuple[Recorder, str]]:
        recorders = self.store.recorders if recorders is None else recorders
        return [(r, self.current_take_name(r)) for r in recorders]

    # =========================================================================
    # Recorders
    # =========================================================================

    def add_recorder(self, name: str, address: str = "", **fields: Any) -> Recorder:
        recorder = self.store.add_recorder(name, address, **fields)
        if recorder.address:
            self._spawn(self.refresh_recorder(recorder.id), f"status[{recorder.id}]")
        self.gateway.broadcast_later(lambda: self._broadcast_items([recorder]))
        return recorder

    async def update_recorder(self, recorder_id: str, **changes: Any) -> Recorder:
        before = self.store.get_recorder(recorder_id)
        old_address, old_codec = before.address, before.recording_codec

        codec = changes.get("recording_codec")
        if codec and codec_token(codec) is None:
            raise ValidationError(f"Unsupported codec: {codec}")

        recorder = self.store.update_recorder(recorder_id, **changes)

        if recorder.address != old_address:
            await self.refresh_recorder(recorder_id)

        if codec and codec != old_codec:
            if recorder.online:
                if await self.client.set_codec(recorder.address, codec):
                    self.logger.info("Codec on %s set to %s", recorder.name, codec)
                else:
                    self.logger.warning("Failed to change codec on %s", recorder.name)
            else:
                self.logger.info("Recorder %s is offline, codec change not sent", recorder.name)
        return recorder

    def remove_recorder(self, recorder_id: str) -> Recorder:
        return self.store.remove_recorder(recorder_id)

    async def refresh_recorder(self, recorder_id: str) -> None:
        """Poll one recorder right away."""
        recorder = self.store.get_recorder(recorder_id)
        status = await self.reconciler.probe(recorder.address)
        self.store.apply_device_status(recorder_id, status)

    # =========================================================================
    # Takes
    # =========================================================================

    async def set_take_name(self, recorder_id: str, take_name: str) -> Dict[str, Any]:
        """Commit a manually entered take name and push it to the deck if online."""
        recorder = self.store.get_recorder(recorder_id)
        self.store.commit_take(recorder_id, take_name, advance=False)
        take_name = self.store.current_take(recorder_id)
        self.gateway.send_take(recorder, take_name)

        if recorder.online and recorder.address:
            if not await self.client.set_take_filename(recorder.address, take_name):
                return {
                    "success": False,
                    "recorderId": recorder_id,
                    "takeName": take_name,
                    "error": "Failed to send take name to deck",
                }
        return {"success": True, "recorderId": recorder_id, "takeName": take_name}

    def trigger_take(self, recorder_id: str) -> TakeRecord:
        """Generate the next take name from the recorder's template and commit it."""
        recorder = self.store.get_recorder(recorder_id)
        take_name = self.generate_take_name(recorder)
        record = self.store.commit_take(recorder_id, take_name)
        self.gateway.send_take(recorder, take_name)
        if recorder.online and recorder.address:
            self._spawn(
                self.client.set_take_filename(recorder.address, take_name),
                f"filename[{recorder_id}]",
            )
        return record

    def trigger_all(self) -> List[TakeRecord]:
        return [self.trigger_take(r.id) for r in self.store.enabled_recorders()]

    def handle_show_control(self, command: ShowControlCommand) -> None:
        try:
            self._handle_show_control(command)
        except DeckPilotError as e:
            self.logger.error("Show control command %s failed: %s", command, e)

    def _handle_show_control(self, command: ShowControlCommand) -> None:
        if isinstance(command, SetAllCommand):
            records = self.trigger_all()
            self.logger.info("Show control set %d takes", len(records))
            self._emit_triggered(ALL_TARGET)
            return

        if isinstance(command, SetTakeCommand):
            recorder = self.store.find_by_sanitized_name(command.target)
            if recorder is None:
                if not self.store.state.show_control.auto_discover:
                    self.logger.warning("No recorder named %s", command.target)
                    return
                recorder = self.store.discover_recorder(command.target)
            record = self.trigger_take(recorder.id)
            self.logger.info("Show control set take %s on %s", record.name, recorder.name)
            self._emit_triggered(recorder.id)

    def _emit_triggered(self, recorder_id: str) -> None:
        self._emit({"type": "show-control-triggered", "recorderId": recorder_id, "timestamp": now_ms()})

    # =========================================================================
    # Numbering and template settings
    # =========================================================================

    def set_shot_number(self, recorder_id: str, shot_number: Any) -> Recorder:
        return self.store.set_shot_number(recorder_id, shot_number)

    def set_take_number(self, recorder_id: str, take_number: Any) -> Recorder:
        return self.store.set_take_number(recorder_id, take_number)

    def increment_shot(self, recorder_id: str) -> Recorder:
        return self.store.increment_shot(recorder_id)

    def increment_take(self, recorder_id: str) -> Recorder:
        return self.store.increment_take(recorder_id)

    def set_template_settings(self, recorder_id: str, **flags: Optional[bool]) -> Recorder:
        return self.store.set_template_settings(recorder_id, **flags)

    # =========================================================================
    # Show
    # =========================================================================

    def set_show_name(self, show_name: str) -> str:
        self.store.set_show_name(show_name)
        return self.store.state.show_name

    def set_date_format(self, date_format: str) -> str:
        return self.store.set_date_format(date_format).value

    def get_formatted_date(self) -> str:
        return format_date(self.store.state.date_format)

    async def new_show(self) -> None:
        self.store.new_show()
        await self.persistence.flush()

    async def export_show(self, path: Optional[Path] = None) -> Path:
        if path is None:
            path = USER_STATE_DIR / "shows" / default_export_name(
                self.store.state.show_name, format_date("YYYYMMDD")
            )
        return await self.persistence.export_show(self.store.state, path)

    async def import_show(self, path: Path) -> None:
        """Replace the whole state with an exported show file.

        Raises:
            ShowFileError: if the file cannot be read or is not a show file.
        """
        state = await self.persistence.import_show(path)
        if not state.hub.node_id:
            state.hub.node_id = self.store.state.hub.node_id or str(uuid.uuid4())
        self.store.replace_state(state)
        await self.persistence.flush()
        await self.gateway.apply_settings(state.show_control)
        if self.hub is not None:
            await self.hub.apply_settings(state.hub)
        self._spawn(self.reconciler.refresh_now(), "status.refresh")

    # =========================================================================
    # Transport
    # =========================================================================

    def _address(self, recorder_id: str) -> str:
        recorder = self.store.get_recorder(recorder_id)
        if not recorder.address:
            self.logger.warning("Recorder %s has no address", recorder.name)
        return recorder.address

    async def transport(self, recorder_id: str, action: str) -> bool:
        if action not in TRANSPORT_ACTIONS:
            raise ValidationError(f"Unknown transport action: {action}")
        address = self._address(recorder_id)
        if action == "prev":
            return await self.client.previous_clip(address)
        if action == "next":
            return await self.client.next_clip(address)
        return await self.client.send_transport_command(address, action)

    async def start_recording(self, recorder_id: str) -> bool:
        return await self.client.record(self._address(recorder_id))

    async def stop_recording(self, recorder_id: str) -> bool:
        return await self.client.stop(self._address(recorder_id))

    async def get_clips(self, recorder_id: str) -> List[Clip]:
        clips = await self.client.list_clips(self._address(recorder_id))
        self.store.set_clips(recorder_id, clips)
        return clips

    async def goto_clip(self, recorder_id: str, clip_id: int) -> bool:
        return await self.client.goto_clip(self._address(recorder_id), clip_id)

    async def play_clip(self, recorder_id: str, clip_id: int) -> bool:
        return await self.client.play_clip(self._address(recorder_id), clip_id)

    async def goto_timecode(self, recorder_id: str, timecode: str) -> bool:
        if not TIMECODE_PATTERN.match(timecode or ""):
            raise ValidationError(f"Invalid timecode '{timecode}', expected HH:MM:SS:FF")
        return await self.client.goto_timecode(self._address(recorder_id), timecode)

    async def set_video_input(self, recorder_id: str, video_input: str) -> bool:
        if video_input not in VIDEO_INPUTS:
            raise ValidationError(f"Unsupported video input '{video_input}'")
        return await self.client.set_video_input(self._address(recorder_id), video_input)

    # =========================================================================
    # Settings
    # =========================================================================

    async def set_show_control_settings(self, changes: Dict[str, Any]) -> ShowControlSettings:
        """Merge camelCase ``changes`` into the gateway settings and rebind."""
        merged = {**self.store.state.show_control.to_dict(), **changes}
        settings = ShowControlSettings.from_dict(merged)
        self.store.set_show_control_settings(settings)
        await self.gateway.apply_settings(settings)
        return settings

    async def set_hub_settings(self, changes: Dict[str, Any]) -> HubSettings:
        """Merge camelCase ``changes`` into the hub settings and reconnect as needed."""
        current = self.store.state.hub
        merged = {**current.to_dict(), **changes}
        settings = HubSettings.from_dict(merged)
        settings.node_id = settings.node_id or current.node_id or str(uuid.uuid4())
        self.store.set_hub_settings(settings)
        if self.hub is not None:
            await self.hub.apply_settings(settings)
        return settings

    @property
    def hub_state(self) -> HubState:
        return self.hub.state if self.hub is not None else HubState.DISCONNECTED

    async def handle_hub_command(self, command: HubCommand) -> Any:
        return await self.hub_dispatcher.dispatch(command)
