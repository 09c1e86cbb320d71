"""JSON frames exchanged with the monitoring hub.

Outbound frames are plain dicts built here; inbound text is validated into
``AuthOk`` / ``HubCommand`` (or ``UnknownFrame`` for types this node does not
handle) before anything else looks at it.
"""

from __future__ import annotations

import json
import platform
import socket
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Union

from ..models import HubSettings, Recorder


class HubFrameError(ValueError):
    """Inbound frame that is not valid JSON or lacks required keys."""


@dataclass(frozen=True)
class AuthOk:
    message: str = ""


@dataclass(frozen=True)
class HubCommand:
    command: str
    command_id: Any
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class UnknownFrame:
    type: str


InboundFrame = Union[AuthOk, HubCommand, UnknownFrame]


def iso_timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_frame(text: Union[str, bytes]) -> InboundFrame:
    try:
        payload = json.loads(text)
    except (TypeError, ValueError) as e:
        raise HubFrameError(f"Frame is not JSON: {e}") from e

    if not isinstance(payload, dict) or not isinstance(payload.get("type"), str):
        raise HubFrameError("Frame has no type")

    frame_type = payload["type"]
    if frame_type == "auth_ok":
        return AuthOk(message=str(payload.get("message") or ""))

    if frame_type == "command":
        command = payload.get("command")
        if not isinstance(command, str) or not command:
            raise HubFrameError("Command frame has no command name")
        if payload.get("command_id") is None:
            raise HubFrameError(f"Command frame '{command}' has no command_id")
        params = payload.get("params") or {}
        if not isinstance(params, dict):
            raise HubFrameError(f"Command frame '{command}' has non-object params")
        return HubCommand(command=command, command_id=payload["command_id"], params=params)

    return UnknownFrame(type=frame_type)


# ----------------------------------------------------------------------
# Outbound


def auth_frame(settings: HubSettings, node_id: str, version: str) -> Dict[str, Any]:
    frame: Dict[str, Any] = {
        "type": "auth",
        "node_id": node_id,
        "hostname": socket.gethostname(),
        "platform": platform.system().lower(),
        "version": version,
        "metadata": {"type": "deckpilot", **settings.metadata},
    }
    if settings.show_id:
        frame["show_id"] = settings.show_id
    return frame


def heartbeat_frame(node_id: str) -> Dict[str, Any]:
    return {"type": "heartbeat", "node_id": node_id, "timestamp": iso_timestamp()}


def metrics_frame(node_id: str, recorders: Iterable[Recorder]) -> Dict[str, Any]:
    recorders = list(recorders)
    total_disk = sum(r.disk_space_gb or 0.0 for r in recorders)
    return {
        "type": "metrics",
        "node_id": node_id,
        "timestamp": iso_timestamp(),
        "metrics": {
            "recorders_total": len(recorders),
            "recorders_online": sum(1 for r in recorders if r.online),
            "recorders_recording": sum(1 for r in recorders if r.is_recording),
            "total_disk_space_gb": f"{total_disk:.2f}",
        },
    }


def command_result_frame(
    command_id: Any,
    node_id: str,
    *,
    success: bool,
    result: Any = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    frame: Dict[str, Any] = {
        "type": "command_result",
        "command_id": command_id,
        "node_id": node_id,
        "success": success,
    }
    if success:
        frame["result"] = result
    else:
        frame["error"] = error or "Command failed"
    return frame
