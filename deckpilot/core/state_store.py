"""
Recorder registry and state store.

The store is the single owner of the ``AppState`` aggregate. Every mutation
is a plain synchronous method, so a multi-field update (shot increment plus
take reset, a take commit plus take advance) is applied in one step with no
await in between. Observers are notified after each mutation with a
``StoreEvent`` describing what changed.

Device-derived fields are only written by ``apply_device_status`` and
``set_clips``; every other method only touches user-derived fields.
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import DuplicateRecorderError, RecorderNotFoundError, ValidationError
from .logging_utils import get_module_logger
from .models import (
    HISTORY_LIMIT,
    TEMPLATE_TAKE,
    AppState,
    Clip,
    DateFormat,
    DeviceStatus,
    HubSettings,
    Recorder,
    ShowControlSettings,
    TakeRecord,
    now_ms,
)
from .take_names import sanitize_name

logger = get_module_logger("StateStore")


class StoreEventKind(str, Enum):
    RECORDER_ADDED = "recorder_added"
    RECORDER_UPDATED = "recorder_updated"
    RECORDER_REMOVED = "recorder_removed"
    TAKE_COMMITTED = "take_committed"
    NUMBERING_CHANGED = "numbering_changed"
    SHOW_CHANGED = "show_changed"
    SETTINGS_CHANGED = "settings_changed"
    STATE_REPLACED = "state_replaced"
    DEVICE_STATUS = "device_status"
    STATUS_REFRESHED = "status_refreshed"

    @property
    def persistent(self) -> bool:
        """Whether the change touches persisted user data."""
        return self not in (StoreEventKind.DEVICE_STATUS, StoreEventKind.STATUS_REFRESHED)


@dataclass
class StoreEvent:
    kind: StoreEventKind
    recorder_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


StoreObserver = Callable[[StoreEvent], None]

_USER_FIELDS = {
    "name",
    "address",
    "enabled",
    "selected_template",
    "custom_text",
    "recording_codec",
    "include_show",
    "include_date",
    "include_shot_take",
    "include_custom",
}
_TEMPLATE_FLAGS = ("include_show", "include_date", "include_shot_take", "include_custom")


def _require_number(value: Any, label: str) -> int:
    if isinstance(value, bool) or isinstance(value, float) and not value.is_integer():
        raise ValidationError(f"{label} must be an integer >= 1")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be an integer >= 1") from None
    if number < 1:
        raise ValidationError(f"{label} must be an integer >= 1")
    return number


class StateStore:
    """Owns the recorder list, current takes, take history and settings."""

    def __init__(self, state: Optional[AppState] = None):
        self._state = state if state is not None else AppState()
        self._observers: List[StoreObserver] = []

    # ------------------------------------------------------------------
    # Observers

    def subscribe(self, observer: StoreObserver) -> Callable[[], None]:
        self._observers.append(observer)

        def _unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unsubscribe

    def _notify(self, kind: StoreEventKind, recorder_id: Optional[str] = None, **data: Any) -> None:
        event = StoreEvent(kind, recorder_id, data)
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception("Store observer failed on %s", kind.value)

    # ------------------------------------------------------------------
    # Reads

    @property
    def state(self) -> AppState:
        return self._state

    @property
    def recorders(self) -> List[Recorder]:
        return list(self._state.recorders)

    def snapshot(self) -> Dict[str, Any]:
        return self._state.to_dict()

    def get_recorder(self, recorder_id: str) -> Recorder:
        recorder = self._state.find_recorder(recorder_id)
        if recorder is None:
            raise RecorderNotFoundError(recorder_id)
        return recorder

    def has_recorder(self, recorder_id: str) -> bool:
        return self._state.find_recorder(recorder_id) is not None

    def find_by_sanitized_name(self, token: str) -> Optional[Recorder]:
        """First recorder whose sanitized display name equals ``token``."""
        for recorder in self._state.recorders:
            if sanitize_name(recorder.name) == token:
                return recorder
        return None

    def enabled_recorders(self) -> List[Recorder]:
        return [r for r in self._state.recorders if r.enabled]

    def current_take(self, recorder_id: str) -> Optional[str]:
        return self._state.current_takes.get(recorder_id)

    # ------------------------------------------------------------------
    # Recorder lifecycle

    def _check_name_available(self, name: str, exclude_id: Optional[str] = None) -> None:
        token = sanitize_name(name)
        for recorder in self._state.recorders:
            if recorder.id != exclude_id and sanitize_name(recorder.name) == token:
                raise DuplicateRecorderError(
                    f"Recorder name '{name}' collides with '{recorder.name}' ({token})"
                )

    def add_recorder(
        self,
        name: str,
        address: str = "",
        *,
        recorder_id: Optional[str] = None,
        **fields: Any,
    ) -> Recorder:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Recorder name is required")
        if recorder_id and self.has_recorder(recorder_id):
            raise DuplicateRecorderError(f"Recorder id already exists: {recorder_id}")
        self._check_name_available(name)

        recorder = Recorder(id=recorder_id or Recorder.new_id(), name=name, address=(address or "").strip())
        self._apply_user_fields(recorder, fields)
        self._state.recorders.append(recorder)
        logger.info("Added recorder %s (%s) at %s", recorder.name, recorder.id, recorder.address or "no address")
        self._notify(StoreEventKind.RECORDER_ADDED, recorder.id)
        return recorder

    def discover_recorder(self, token: str) -> Recorder:
        """Create a recorder for an unknown show-control name.

        Only tokens that are already sanitized are accepted, so the new
        recorder is found again by the same token.
        """
        if not token or sanitize_name(token) != token:
            raise ValidationError(f"Cannot discover a recorder from '{token}'")
        name = token.replace("_", "-")
        self._check_name_available(name)

        recorder_id = token.lower()
        if self.has_recorder(recorder_id):
            recorder_id = uuid.uuid4().hex[:12]
        recorder = Recorder(id=recorder_id, name=name)
        self._state.recorders.append(recorder)
        logger.info("Auto-discovered recorder %s from show control", recorder.name)
        self._notify(StoreEventKind.RECORDER_ADDED, recorder.id, discovered=True)
        return recorder

    def update_recorder(self, recorder_id: str, **changes: Any) -> Recorder:
        recorder = self.get_recorder(recorder_id)
        unknown = set(changes) - _USER_FIELDS - {"shot_number", "take_number"}
        if unknown:
            raise ValidationError(f"Unknown recorder fields: {', '.join(sorted(unknown))}")

        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise ValidationError("Recorder name is required")
            self._check_name_available(name, exclude_id=recorder_id)
            changes["name"] = name

        # Validate everything before touching the recorder
        staged = copy.copy(recorder)
        self._apply_user_fields(staged, changes)

        for attr in _USER_FIELDS | {"shot_number", "take_number"}:
            setattr(recorder, attr, getattr(staged, attr))
        self._notify(StoreEventKind.RECORDER_UPDATED, recorder_id, fields=sorted(changes))
        return recorder

    def _apply_user_fields(self, recorder: Recorder, fields: Dict[str, Any]) -> None:
        for key, value in fields.items():
            if key in ("shot_number", "take_number"):
                setattr(recorder, key, _require_number(value, key))
            elif key in _TEMPLATE_FLAGS:
                setattr(recorder, key, None if value is None else bool(value))
            elif key == "enabled":
                recorder.enabled = bool(value)
            elif key == "selected_template":
                template_id = str(value)
                if template_id not in {t.id for t in self._state.templates}:
                    raise ValidationError(f"Unknown template: {value}")
                recorder.selected_template = template_id
            elif key == "recording_codec":
                recorder.recording_codec = value or None
            elif key in ("name", "address"):
                setattr(recorder, key, str(value or "").strip())
            elif key == "custom_text":
                recorder.custom_text = str(value or "")
            else:
                raise ValidationError(f"Unknown recorder field: {key}")

    def remove_recorder(self, recorder_id: str) -> Recorder:
        recorder = self.get_recorder(recorder_id)
        self._state.recorders.remove(recorder)
        self._state.current_takes.pop(recorder_id, None)
        logger.info("Removed recorder %s (%s)", recorder.name, recorder_id)
        self._notify(StoreEventKind.RECORDER_REMOVED, recorder_id)
        return recorder

    # ------------------------------------------------------------------
    # Takes and numbering

    def commit_take(self, recorder_id: str, take_name: str, *, advance: bool = True) -> TakeRecord:
        """Record ``take_name`` as the recorder's current take.

        Prepends a history entry (capped at ``HISTORY_LIMIT``) and, when
        ``advance`` is set and the recorder uses the Take template, bumps the
        take number.
        """
        recorder = self.get_recorder(recorder_id)
        take_name = (take_name or "").strip()
        if not take_name:
            raise ValidationError("Take name is required")

        timestamp = now_ms()
        record = TakeRecord(id=f"{timestamp}_{recorder_id}", name=take_name, timestamp=timestamp, recorder_id=recorder_id)

        self._state.current_takes[recorder_id] = take_name
        self._state.take_history.insert(0, record)
        del self._state.take_history[HISTORY_LIMIT:]
        if advance and recorder.selected_template == TEMPLATE_TAKE:
            recorder.take_number += 1

        self._notify(StoreEventKind.TAKE_COMMITTED, recorder_id, take_name=take_name)
        return record

    def set_shot_number(self, recorder_id: str, shot_number: Any) -> Recorder:
        recorder = self.get_recorder(recorder_id)
        number = _require_number(shot_number, "shot_number")
        if number != recorder.shot_number:
            recorder.shot_number = number
            recorder.take_number = 1
        self._notify(StoreEventKind.NUMBERING_CHANGED, recorder_id)
        return recorder

    def set_take_number(self, recorder_id: str, take_number: Any) -> Recorder:
        recorder = self.get_recorder(recorder_id)
        recorder.take_number = _require_number(take_number, "take_number")
        self._notify(StoreEventKind.NUMBERING_CHANGED, recorder_id)
        return recorder

    def increment_shot(self, recorder_id: str) -> Recorder:
        recorder = self.get_recorder(recorder_id)
        recorder.shot_number += 1
        recorder.take_number = 1
        self._notify(StoreEventKind.NUMBERING_CHANGED, recorder_id)
        return recorder

    def increment_take(self, recorder_id: str) -> Recorder:
        recorder = self.get_recorder(recorder_id)
        recorder.take_number += 1
        self._notify(StoreEventKind.NUMBERING_CHANGED, recorder_id)
        return recorder

    def set_template_settings(self, recorder_id: str, **flags: Optional[bool]) -> Recorder:
        unknown = set(flags) - set(_TEMPLATE_FLAGS)
        if unknown:
            raise ValidationError(f"Unknown template settings: {', '.join(sorted(unknown))}")
        return self.update_recorder(recorder_id, **flags)

    # ------------------------------------------------------------------
    # Show and settings

    def set_show_name(self, show_name: str) -> None:
        self._state.show_name = (show_name or "").strip()
        self._notify(StoreEventKind.SHOW_CHANGED)

    def set_date_format(self, date_format: Any) -> DateFormat:
        try:
            fmt = DateFormat(date_format)
        except ValueError:
            raise ValidationError(f"Unknown date format: {date_format}") from None
        self._state.date_format = fmt
        self._notify(StoreEventKind.SHOW_CHANGED)
        return fmt

    def set_show_control_settings(self, settings: ShowControlSettings) -> None:
        self._state.show_control = settings
        self._notify(StoreEventKind.SETTINGS_CHANGED, section="show_control")

    def set_hub_settings(self, settings: HubSettings) -> None:
        self._state.hub = settings
        self._notify(StoreEventKind.SETTINGS_CHANGED, section="hub")

    def new_show(self) -> None:
        """Clear recorders, takes, history and show name; keep templates and settings."""
        previous = self._state
        self._state = AppState(
            templates=previous.templates,
            date_format=previous.date_format,
            show_control=previous.show_control,
            hub=previous.hub,
        )
        logger.info("Started new show")
        self._notify(StoreEventKind.STATE_REPLACED)

    def replace_state(self, state: AppState) -> None:
        self._state = state
        self._notify(StoreEventKind.STATE_REPLACED)

    # ------------------------------------------------------------------
    # Device-derived fields

    def apply_device_status(self, recorder_id: str, status: DeviceStatus) -> bool:
        """Fold one reconciliation result into the recorder.

        Returns False when the recorder was removed while its chain ran.
        """
        recorder = self._state.find_recorder(recorder_id)
        if recorder is None:
            return False

        recorder.online = status.online
        recorder.last_checked = status.checked_at
        if not status.online:
            recorder.timecode = None
            recorder.transport_status = None
        else:
            if status.codec:
                recorder.recording_codec = status.codec
            if status.transport is not None:
                if status.transport.status is not None:
                    recorder.transport_status = status.transport.status
                if status.transport.timecode is not None:
                    recorder.timecode = status.transport.timecode

        self._notify(StoreEventKind.DEVICE_STATUS, recorder_id)
        return True

    def set_clips(self, recorder_id: str, clips: Iterable[Clip]) -> None:
        recorder = self._state.find_recorder(recorder_id)
        if recorder is None:
            return
        recorder.clips = list(clips)
        self._notify(StoreEventKind.DEVICE_STATUS, recorder_id)

    def mark_status_refreshed(self) -> None:
        self._notify(StoreEventKind.STATUS_REFRESHED)
