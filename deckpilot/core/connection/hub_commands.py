"""Dispatch of hub ``command`` frames onto the DeckPilot operation surface."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List

from ..logging_utils import get_module_logger

if TYPE_CHECKING:
    from ..deckpilot_system import DeckPilotSystem
    from .hub_frames import HubCommand

logger = get_module_logger("HubCommands")


class HubCommandError(Exception):
    """Unknown command or missing parameter."""


class HubCommandDispatcher:
    """Maps hub command names to system operations.

    Handlers return the JSON-serializable ``result`` of the command frame.
    Failures are raised (``HubCommandError`` or a ``DeckPilotError``) and
    turned into a failed ``command_result`` by the bridge.
    """

    def __init__(self, system: "DeckPilotSystem"):
        self.system = system
        self._handlers: Dict[str, Callable[[Dict[str, Any]], Awaitable[Any]]] = {
            "set_take_name": self._set_take_name,
            "increment_take": self._increment_take,
            "increment_shot": self._increment_shot,
            "start_recording": self._start_recording,
            "stop_recording": self._stop_recording,
            "get_recorders": self._get_recorders,
            "get_status": self._get_status,
        }

    @property
    def commands(self) -> List[str]:
        return sorted(self._handlers)

    async def dispatch(self, command: "HubCommand") -> Any:
        logger.debug("Dispatching %s with %s", command.command, sorted(command.params))
        handler = self._handlers.get(command.command)
        if handler is None:
            raise HubCommandError(f"Unknown command: {command.command}")
        return await handler(command.params)

    @staticmethod
    def _require(params: Dict[str, Any], *names: str) -> List[Any]:
        missing = [name for name in names if not params.get(name)]
        if missing:
            raise HubCommandError(f"Missing {' or '.join(missing)} parameter")
        return [params[name] for name in names]

    # ------------------------------------------------------------------
    # Handlers

    async def _set_take_name(self, params: Dict[str, Any]) -> Dict[str, Any]:
        recorder_id, take_name = self._require(params, "recorderId", "takeName")
        result = await self.system.set_take_name(str(recorder_id), str(take_name))
        if not result.get("success"):
            raise HubCommandError(result.get("error") or "Failed to set take name")
        return {"success": True, "recorderId": recorder_id, "takeName": take_name}

    async def _increment_take(self, params: Dict[str, Any]) -> int:
        (recorder_id,) = self._require(params, "recorderId")
        return self.system.increment_take(str(recorder_id)).take_number

    async def _increment_shot(self, params: Dict[str, Any]) -> int:
        (recorder_id,) = self._require(params, "recorderId")
        return self.system.increment_shot(str(recorder_id)).shot_number

    async def _start_recording(self, params: Dict[str, Any]) -> Dict[str, Any]:
        (recorder_id,) = self._require(params, "recorderId")
        success = await self.system.start_recording(str(recorder_id))
        return {"success": success, "recorderId": recorder_id, "command": "record"}

    async def _stop_recording(self, params: Dict[str, Any]) -> Dict[str, Any]:
        (recorder_id,) = self._require(params, "recorderId")
        success = await self.system.stop_recording(str(recorder_id))
        return {"success": success, "recorderId": recorder_id, "command": "stop"}

    async def _get_recorders(self, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        return [
            {
                "id": r.id,
                "name": r.name,
                "ipAddress": r.address,
                "online": r.online,
                "transportStatus": r.transport_status.value if r.transport_status else None,
                "diskSpaceGB": r.disk_space_gb,
            }
            for r in self.system.store.recorders
        ]

    async def _get_status(self, params: Dict[str, Any]) -> Dict[str, int]:
        return self.system.get_status_summary()
