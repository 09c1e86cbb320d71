"""
API Controller - Thin wrapper around DeckPilotSystem for the REST API.

Request bodies and responses use the camelCase keys of the persisted state
document. Unknown recorder ids surface as ``RecorderNotFoundError`` and bad
values as ``ValidationError``; the error middleware turns both into JSON
error responses.
"""

import datetime
import platform
from pathlib import Path
from typing import Any, Dict, List, Optional

import psutil

from deckpilot.core import __version__
from deckpilot.core.asyncio_utils import create_logged_task
from deckpilot.core.deckpilot_system import DeckPilotSystem
from deckpilot.core.errors import ValidationError
from deckpilot.core.logging_utils import get_module_logger
from deckpilot.core.shutdown_coordinator import get_shutdown_coordinator


# camelCase body key -> Recorder attribute
RECORDER_FIELDS = {
    "name": "name",
    "ipAddress": "address",
    "enabled": "enabled",
    "shotNumber": "shot_number",
    "takeNumber": "take_number",
    "selectedTemplate": "selected_template",
    "customText": "custom_text",
    "includeShow": "include_show",
    "includeDate": "include_date",
    "includeShotTake": "include_shot_take",
    "includeCustom": "include_custom",
    "recordingQuality": "recording_codec",
}

TEMPLATE_FLAGS = {
    "includeShow": "include_show",
    "includeDate": "include_date",
    "includeShotTake": "include_shot_take",
    "includeCustom": "include_custom",
}


def _translate(body: Dict[str, Any], mapping: Dict[str, str]) -> Dict[str, Any]:
    unknown = sorted(set(body) - set(mapping))
    if unknown:
        raise ValidationError(f"Unknown fields: {', '.join(unknown)}")
    return {mapping[key]: value for key, value in body.items()}


class APIController:
    """
    API controller providing programmatic access to DeckPilot.

    Every method is async so routes can await them uniformly, even where the
    underlying operation is a synchronous store mutation.
    """

    def __init__(self, system: DeckPilotSystem):
        self.logger = get_module_logger("APIController")
        self.system = system

    # =========================================================================
    # System Endpoints
    # =========================================================================

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "timestamp": datetime.datetime.now().isoformat(),
            "api_version": "v1",
            "version": __version__,
        }

    async def get_status(self) -> Dict[str, Any]:
        listener = self.system.gateway.listener_address
        return {
            **self.system.get_status_summary(),
            "show_control": {
                "listening": listener is not None,
                "listener": f"{listener[0]}:{listener[1]}" if listener else None,
                "sending": self.system.gateway.sender_ready,
            },
            "hub": self.system.hub_state.value,
            "status_polling": self.system.reconciler.running,
        }

    async def get_system_info(self) -> Dict[str, Any]:
        """Host information for the operator's about panel."""
        memory = psutil.virtual_memory()
        return {
            "system": platform.system(),
            "release": platform.release(),
            "machine": platform.machine(),
            "python_version": platform.python_version(),
            "cpu_percent": psutil.cpu_percent(interval=None),
            "memory": {
                "total_gb": round(memory.total / (1024**3), 2),
                "available_gb": round(memory.available / (1024**3), 2),
                "percent": memory.percent,
            },
        }

    async def shutdown(self) -> Dict[str, Any]:
        """Initiate graceful shutdown after the response has been sent."""
        self.logger.info("Shutdown requested via API")
        create_logged_task(
            get_shutdown_coordinator().initiate_shutdown("API"),
            logger=self.logger,
            context="APIController.shutdown",
        )
        return {"status": "shutdown_initiated"}

    # =========================================================================
    # State
    # =========================================================================

    async def get_state(self) -> Dict[str, Any]:
        return self.system.get_state()

    async def refresh_status(self) -> Dict[str, Any]:
        await self.system.reconciler.refresh_now()
        return {"success": True, **self.system.get_status_summary()}

    # =========================================================================
    # Recorders
    # =========================================================================

    async def list_recorders(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self.system.store.recorders]

    async def get_recorder(self, recorder_id: str) -> Dict[str, Any]:
        recorder = self.system.store.get_recorder(recorder_id)
        data = recorder.to_dict()
        data["currentTake"] = self.system.store.current_take(recorder_id)
        return data

    async def add_recorder(self, body: Dict[str, Any]) -> Dict[str, Any]:
        fields = _translate(body, RECORDER_FIELDS)
        name = fields.pop("name", "")
        address = fields.pop("address", "")
        recorder = self.system.add_recorder(name, address, **fields)
        return recorder.to_dict()

    async def update_recorder(self, recorder_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        recorder = await self.system.update_recorder(recorder_id, **_translate(body, RECORDER_FIELDS))
        return recorder.to_dict()

    async def remove_recorder(self, recorder_id: str) -> Dict[str, Any]:
        recorder = self.system.remove_recorder(recorder_id)
        return {"success": True, "recorderId": recorder.id}

    async def refresh_recorder(self, recorder_id: str) -> Dict[str, Any]:
        await self.system.refresh_recorder(recorder_id)
        return self.system.store.get_recorder(recorder_id).to_dict()

    # =========================================================================
    # Takes and numbering
    # =========================================================================

    async def set_take_name(self, recorder_id: str, take_name: str) -> Dict[str, Any]:
        return await self.system.set_take_name(recorder_id, take_name)

    async def trigger_take(self, recorder_id: str) -> Dict[str, Any]:
        record = self.system.trigger_take(recorder_id)
        return {"success": True, "take": record.to_dict()}

    async def trigger_all(self) -> Dict[str, Any]:
        records = self.system.trigger_all()
        return {"success": True, "takes": [r.to_dict() for r in records]}

    async def get_take_history(self) -> List[Dict[str, Any]]:
        return self.system.get_take_history()

    async def get_preview(self, recorder_id: str) -> Dict[str, Any]:
        recorder = self.system.store.get_recorder(recorder_id)
        return {
            "recorderId": recorder_id,
            "currentTake": self.system.store.current_take(recorder_id),
            "nextTake": self.system.generate_take_name(recorder),
        }

    async def set_numbers(self, recorder_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        if "shotNumber" not in body and "takeNumber" not in body:
            raise ValidationError("Provide shotNumber and/or takeNumber")
        recorder = self.system.store.get_recorder(recorder_id)
        if "shotNumber" in body:
            recorder = self.system.set_shot_number(recorder_id, body["shotNumber"])
        if "takeNumber" in body:
            recorder = self.system.set_take_number(recorder_id, body["takeNumber"])
        return {"shotNumber": recorder.shot_number, "takeNumber": recorder.take_number}

    async def increment_shot(self, recorder_id: str) -> Dict[str, Any]:
        recorder = self.system.increment_shot(recorder_id)
        return {"shotNumber": recorder.shot_number, "takeNumber": recorder.take_number}

    async def increment_take(self, recorder_id: str) -> Dict[str, Any]:
        recorder = self.system.increment_take(recorder_id)
        return {"shotNumber": recorder.shot_number, "takeNumber": recorder.take_number}

    async def set_template_settings(self, recorder_id: str, body: Dict[str, Any]) -> Dict[str, Any]:
        recorder = self.system.set_template_settings(recorder_id, **_translate(body, TEMPLATE_FLAGS))
        return recorder.to_dict()

    # =========================================================================
    # Show
    # =========================================================================

    async def get_show(self) -> Dict[str, Any]:
        state = self.system.store.state
        return {
            "showName": state.show_name,
            "dateFormat": state.date_format.value,
            "formattedDate": self.system.get_formatted_date(),
            "templates": [t.to_dict() for t in state.templates],
        }

    async def set_show(self, body: Dict[str, Any]) -> Dict[str, Any]:
        if "showName" in body:
            self.system.set_show_name(str(body["showName"] or ""))
        if "dateFormat" in body:
            self.system.set_date_format(body["dateFormat"])
        return await self.get_show()

    async def new_show(self) -> Dict[str, Any]:
        await self.system.new_show()
        return {"success": True}

    async def export_show(self, path: Optional[str] = None) -> Dict[str, Any]:
        written = await self.system.export_show(Path(path).expanduser() if path else None)
        return {"success": True, "filePath": str(written)}

    async def import_show(self, path: str) -> Dict[str, Any]:
        await self.system.import_show(Path(path).expanduser())
        return {"success": True, "recorders": len(self.system.store.recorders)}

    # =========================================================================
    # Transport
    # =========================================================================

    async def transport(self, recorder_id: str, action: str) -> Dict[str, Any]:
        success = await self.system.transport(recorder_id, action)
        return {"success": success, "recorderId": recorder_id, "command": action}

    async def get_clips(self, recorder_id: str) -> Dict[str, Any]:
        clips = await self.system.get_clips(recorder_id)
        return {"recorderId": recorder_id, "clips": [c.to_dict() for c in clips]}

    async def goto_clip(self, recorder_id: str, clip_id: int, play: bool = False) -> Dict[str, Any]:
        if play:
            success = await self.system.play_clip(recorder_id, clip_id)
        else:
            success = await self.system.goto_clip(recorder_id, clip_id)
        return {"success": success, "recorderId": recorder_id, "clipId": clip_id}

    async def goto_timecode(self, recorder_id: str, timecode: str) -> Dict[str, Any]:
        success = await self.system.goto_timecode(recorder_id, timecode)
        return {"success": success, "recorderId": recorder_id, "timecode": timecode}

    async def set_video_input(self, recorder_id: str, video_input: str) -> Dict[str, Any]:
        success = await self.system.set_video_input(recorder_id, video_input)
        return {"success": success, "recorderId": recorder_id, "videoInput": video_input}

    # =========================================================================
    # Settings
    # =========================================================================

    async def get_settings(self) -> Dict[str, Any]:
        state = self.system.store.state
        return {
            "showControlSettings": state.show_control.to_dict(),
            "hubSettings": state.hub.to_dict(),
        }

    async def update_show_control_settings(self, body: Dict[str, Any]) -> Dict[str, Any]:
        settings = await self.system.set_show_control_settings(body)
        return settings.to_dict()

    async def update_hub_settings(self, body: Dict[str, Any]) -> Dict[str, Any]:
        settings = await self.system.set_hub_settings(body)
        return settings.to_dict()
