"""
Data model for the recorder registry.

Every type serializes to the camelCase JSON shape of the persisted state
document (``to_dict``) and is rebuilt from it (``from_dict``). ``from_dict``
is lenient: missing keys take their defaults and out-of-range numbers are
clamped, so documents written by older versions still load.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


HISTORY_LIMIT = 100

TEMPLATE_SHOW = "1"
TEMPLATE_TAKE = "2"
TEMPLATE_CUSTOM = "3"

DEFAULT_LISTENER_PORT = 8012
DEFAULT_SEND_PORT = 8014
DEFAULT_ADDRESS_PREFIX = "/deckpilot/"
DEFAULT_HUB_URL = "ws://localhost:5000/ws"


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def _positive_int(value: Any, default: int = 1) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


def _optional_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    return bool(value)


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _list_field(data: Mapping[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    return value if isinstance(value, list) else []


def _mapping_field(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    return value if isinstance(value, Mapping) else {}


class TransportStatus(str, Enum):
    """Deck transport state as reported by ``transport info``."""
    PLAY = "play"
    RECORD = "record"
    PREVIEW = "preview"
    STOPPED = "stopped"

    @classmethod
    def parse(cls, value: Any) -> Optional["TransportStatus"]:
        if value is None:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class DateFormat(str, Enum):
    """The nine date patterns a take name can embed."""
    YYYYMMDD = "YYYYMMDD"
    MMDDYYYY = "MMDDYYYY"
    DDMMYYYY = "DDMMYYYY"
    YYYY_MM_DD = "YYYY-MM-DD"
    YYYYMMDDHHMM = "YYYYMMDDHHmm"
    YYYYMMDD_DASH_HHMM = "YYYYMMDD-HHmm"
    YYYYMMDD_HHMM = "YYYYMMDD_HHmm"
    YYYY_MM_DD_HHMM = "YYYY-MM-DD-HHmm"
    HHMMSS = "HHmmss"

    @classmethod
    def parse(cls, value: Any) -> "DateFormat":
        """Return the matching format, falling back to ``YYYYMMDD``."""
        try:
            return cls(value)
        except ValueError:
            return cls.YYYYMMDD


@dataclass
class Template:
    """One of the three fixed take-name templates."""
    id: str
    name: str
    format: str
    variables: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "format": self.format,
            "variables": list(self.variables),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Template":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            format=str(data.get("format", "")),
            variables=[str(v) for v in _list_field(data, "variables")],
        )


def default_templates() -> List[Template]:
    return [
        Template(TEMPLATE_SHOW, "Show", "{showName}", ["showName"]),
        Template(TEMPLATE_TAKE, "Take", "{showName}_S{shot}_T{take}", ["showName", "shot", "take"]),
        Template(TEMPLATE_CUSTOM, "Custom", "", []),
    ]


@dataclass
class Clip:
    """A clip stored on a deck, as listed by ``clips get``."""
    id: int
    name: str
    duration: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "duration": self.duration}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Clip":
        return cls(
            id=int(data.get("id", 0)),
            name=str(data.get("name", "")),
            duration=data.get("duration"),
        )


@dataclass
class TransportInfo:
    """Partial result of a ``transport info`` query."""
    status: Optional[TransportStatus] = None
    timecode: Optional[str] = None

    @property
    def empty(self) -> bool:
        return self.status is None and self.timecode is None


@dataclass
class DeviceStatus:
    """Everything one reconciliation chain learned about one deck."""
    online: bool
    checked_at: int
    codec: Optional[str] = None
    transport: Optional[TransportInfo] = None


@dataclass
class Recorder:
    """A recording deck and its take metadata."""
    id: str
    name: str
    address: str = ""
    enabled: bool = True
    shot_number: int = 1
    take_number: int = 1
    selected_template: str = TEMPLATE_SHOW
    custom_text: str = ""
    include_show: Optional[bool] = None
    include_date: Optional[bool] = None
    include_shot_take: Optional[bool] = None
    include_custom: Optional[bool] = None
    recording_codec: Optional[str] = None
    online: bool = False
    last_checked: Optional[int] = None
    transport_status: Optional[TransportStatus] = None
    timecode: Optional[str] = None
    disk_space_gb: Optional[float] = None
    recording_time_minutes: Optional[float] = None
    clips: List[Clip] = field(default_factory=list)

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex[:12]

    @property
    def is_recording(self) -> bool:
        return self.transport_status is TransportStatus.RECORD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "ipAddress": self.address,
            "enabled": self.enabled,
            "shotNumber": self.shot_number,
            "takeNumber": self.take_number,
            "selectedTemplate": self.selected_template,
            "customText": self.custom_text,
            "includeShow": self.include_show,
            "includeDate": self.include_date,
            "includeShotTake": self.include_shot_take,
            "includeCustom": self.include_custom,
            "recordingQuality": self.recording_codec,
            "online": self.online,
            "lastChecked": self.last_checked,
            "transportStatus": self.transport_status.value if self.transport_status else None,
            "timecode": self.timecode,
            "diskSpaceGB": self.disk_space_gb,
            "recordingTimeMinutes": self.recording_time_minutes,
            "clips": [clip.to_dict() for clip in self.clips],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Recorder":
        template = data.get("selectedTemplate")
        return cls(
            id=str(data.get("id") or cls.new_id()),
            name=str(data.get("name", "")),
            address=str(data.get("ipAddress") or data.get("address") or ""),
            enabled=bool(data.get("enabled", True)),
            shot_number=_positive_int(data.get("shotNumber")),
            take_number=_positive_int(data.get("takeNumber")),
            selected_template=str(template) if template else TEMPLATE_SHOW,
            custom_text=str(data.get("customText") or ""),
            include_show=_optional_bool(data.get("includeShow")),
            include_date=_optional_bool(data.get("includeDate")),
            include_shot_take=_optional_bool(data.get("includeShotTake")),
            include_custom=_optional_bool(data.get("includeCustom")),
            recording_codec=data.get("recordingQuality") or None,
            online=bool(data.get("online", False)),
            last_checked=data.get("lastChecked"),
            transport_status=TransportStatus.parse(data.get("transportStatus")),
            timecode=data.get("timecode") or None,
            disk_space_gb=_optional_float(data.get("diskSpaceGB")),
            recording_time_minutes=_optional_float(data.get("recordingTimeMinutes")),
            clips=[Clip.from_dict(c) for c in _list_field(data, "clips") if isinstance(c, Mapping)],
        )


@dataclass
class TakeRecord:
    """One entry of the take history."""
    id: str
    name: str
    timestamp: int
    recorder_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "name": self.name, "timestamp": self.timestamp}
        if self.recorder_id is not None:
            data["recorderId"] = self.recorder_id
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TakeRecord":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            timestamp=int(data.get("timestamp") or 0),
            recorder_id=data.get("recorderId"),
        )


@dataclass
class ShowControlSettings:
    """UDP gateway configuration."""
    enabled: bool = True
    send_host: str = "127.0.0.1"
    send_port: int = DEFAULT_SEND_PORT
    listener_enabled: bool = True
    listener_host: str = "0.0.0.0"
    listener_port: int = DEFAULT_LISTENER_PORT
    address_prefix: str = DEFAULT_ADDRESS_PREFIX
    auto_discover: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "sendHost": self.send_host,
            "sendPort": self.send_port,
            "listenerEnabled": self.listener_enabled,
            "listenerHost": self.listener_host,
            "listenerPort": self.listener_port,
            "addressPrefix": self.address_prefix,
            "autoDiscover": self.auto_discover,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ShowControlSettings":
        prefix = str(data.get("addressPrefix") or DEFAULT_ADDRESS_PREFIX)
        if not prefix.startswith("/"):
            prefix = "/" + prefix
        if not prefix.endswith("/"):
            prefix += "/"
        return cls(
            enabled=data.get("enabled") is not False,
            send_host=str(data.get("sendHost") or "127.0.0.1"),
            send_port=int(data.get("sendPort") or data.get("companionPort") or DEFAULT_SEND_PORT),
            listener_enabled=data.get("listenerEnabled") is not False,
            listener_host=str(data.get("listenerHost") or "0.0.0.0"),
            listener_port=int(data.get("listenerPort") or DEFAULT_LISTENER_PORT),
            address_prefix=prefix,
            auto_discover=data.get("autoDiscover") is not False,
        )


@dataclass
class HubSettings:
    """Remote monitoring hub configuration."""
    enabled: bool = False
    hub_url: str = DEFAULT_HUB_URL
    node_id: Optional[str] = None
    show_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "hubUrl": self.hub_url,
            "nodeId": self.node_id,
            "showId": self.show_id,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HubSettings":
        metadata = data.get("metadata")
        return cls(
            enabled=bool(data.get("enabled", False)),
            hub_url=str(data.get("hubUrl") or DEFAULT_HUB_URL),
            node_id=data.get("nodeId") or None,
            show_id=data.get("showId") or None,
            metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
        )


@dataclass
class AppState:
    """The whole persisted aggregate."""
    recorders: List[Recorder] = field(default_factory=list)
    current_takes: Dict[str, str] = field(default_factory=dict)
    take_history: List[TakeRecord] = field(default_factory=list)
    templates: List[Template] = field(default_factory=default_templates)
    show_name: str = ""
    date_format: DateFormat = DateFormat.YYYYMMDD
    show_control: ShowControlSettings = field(default_factory=ShowControlSettings)
    hub: HubSettings = field(default_factory=HubSettings)

    def find_recorder(self, recorder_id: str) -> Optional[Recorder]:
        for recorder in self.recorders:
            if recorder.id == recorder_id:
                return recorder
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recorders": [r.to_dict() for r in self.recorders],
            "currentTakes": dict(self.current_takes),
            "takeHistory": [t.to_dict() for t in self.take_history],
            "templates": [t.to_dict() for t in self.templates],
            "showName": self.show_name,
            "dateFormat": self.date_format.value,
            "showControlSettings": self.show_control.to_dict(),
            "hubSettings": self.hub.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AppState":
        """Build an aggregate from an already-migrated document."""
        recorders: List[Recorder] = []
        seen: set[str] = set()
        for raw in _list_field(data, "recorders"):
            if not isinstance(raw, Mapping):
                continue
            recorder = Recorder.from_dict(raw)
            if recorder.id in seen:
                continue
            seen.add(recorder.id)
            recorders.append(recorder)

        templates = [Template.from_dict(t) for t in _list_field(data, "templates") if isinstance(t, Mapping)]
        history = [TakeRecord.from_dict(t) for t in _list_field(data, "takeHistory") if isinstance(t, Mapping)]
        current = data.get("currentTakes")

        return cls(
            recorders=recorders,
            current_takes={str(k): str(v) for k, v in current.items()} if isinstance(current, Mapping) else {},
            take_history=history[:HISTORY_LIMIT],
            templates=templates or default_templates(),
            show_name=str(data.get("showName") or ""),
            date_format=DateFormat.parse(data.get("dateFormat")),
            show_control=ShowControlSettings.from_dict(_mapping_field(data, "showControlSettings")),
            hub=HubSettings.from_dict(_mapping_field(data, "hubSettings")),
        )
