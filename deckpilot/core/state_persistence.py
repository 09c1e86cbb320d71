"""
State document persistence.

The whole ``AppState`` aggregate lives in one JSON document. Rules:

1. Load at startup. Missing fields take defaults, legacy shapes are migrated
   and the migrated document is written back. An unreadable document falls
   back to the default aggregate; it never prevents startup.
2. Save after every user-facing mutation. Saves are coalesced (one write in
   flight, at most one queued), serialized under a lock and atomic
   (temp file in the same directory, then ``os.replace``). A failed write is
   logged only.
3. Export wraps the aggregate as ``{version, exportDate, data}``; import
   validates that envelope and resets every recorder's device-derived fields.
"""

import asyncio
import contextlib
import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import aiofiles

from .asyncio_utils import create_logged_task
from .errors import ShowFileError
from .logging_utils import get_module_logger
from .models import (
    DEFAULT_LISTENER_PORT,
    TEMPLATE_CUSTOM,
    TEMPLATE_SHOW,
    TEMPLATE_TAKE,
    AppState,
)

EXPORT_VERSION = "1.0"

_LEGACY_SHOW_NAMES = ("Broadcast", "Date")
_LEGACY_TAKE_NAMES = ("Show_S#_T#",)


def migrate_document(document: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
    """Bring a persisted document written by any earlier version up to date.

    Returns the migrated document and whether anything changed.
    """
    doc = dict(document)
    changed = False

    for key in ("recorders", "templates", "takeHistory"):
        if key in doc and not isinstance(doc[key], list):
            doc[key] = []
            changed = True
    for key in ("currentTakes", "showControlSettings", "hubSettings"):
        if key in doc and not isinstance(doc[key], dict):
            del doc[key]
            changed = True

    if "showControlSettings" not in doc:
        legacy = doc.pop("oscSettings", None)
        settings = dict(legacy) if isinstance(legacy, dict) else {"enabled": True}
        if "companionPort" in settings:
            settings["sendPort"] = settings.pop("companionPort")
        settings.setdefault("listenerPort", DEFAULT_LISTENER_PORT)
        settings.setdefault("listenerEnabled", True)
        doc["showControlSettings"] = settings
        changed = True

    if "hubSettings" not in doc and isinstance(doc.get("cmndSettings"), dict):
        doc["hubSettings"] = doc.pop("cmndSettings")
        changed = True

    if not doc.get("dateFormat"):
        doc["dateFormat"] = "YYYYMMDD"
        changed = True

    recorders = []
    for raw in doc.get("recorders") or []:
        if not isinstance(raw, dict):
            changed = True
            continue
        recorder = dict(raw)
        for key in ("shotNumber", "takeNumber"):
            if not recorder.get(key):
                recorder[key] = 1
                changed = True
        if "ipAddress" not in recorder and "address" in recorder:
            recorder["ipAddress"] = recorder.pop("address")
            changed = True
        recorders.append(recorder)
    doc["recorders"] = recorders

    templates = [dict(t) for t in doc.get("templates") or [] if isinstance(t, dict)]
    by_id = {t.get("id"): t for t in templates}

    show = by_id.get(TEMPLATE_SHOW)
    if show and show.get("name") in _LEGACY_SHOW_NAMES:
        show.update(name="Show", format="{showName}", variables=["showName"])
        changed = True

    take = by_id.get(TEMPLATE_TAKE)
    if take and ("Scene" in str(take.get("format", "")) or take.get("name") in _LEGACY_TAKE_NAMES):
        take.update(name="Take", format="{showName}_S{shot}_T{take}", variables=["showName", "shot", "take"])
        changed = True

    if templates and TEMPLATE_CUSTOM not in by_id:
        templates.append({"id": TEMPLATE_CUSTOM, "name": "Custom", "format": "", "variables": []})
        changed = True
    doc["templates"] = templates

    return doc, changed


class StatePersistence:
    """Loads, saves, exports and imports the state document."""

    def __init__(self, state_file: Path):
        self.logger = get_module_logger("StatePersistence")
        self.state_file = Path(state_file)
        self._write_lock = asyncio.Lock()
        self._save_task: Optional[asyncio.Task] = None
        self._save_requested = False

    # =========================================================================
    # Loading
    # =========================================================================

    async def _read_json(self, path: Path) -> Any:
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return json.loads(await f.read())

    async def load(self) -> AppState:
        """Load the persisted aggregate, or the defaults if there is none."""
        if not await asyncio.to_thread(self.state_file.exists):
            self.logger.info("No saved state at %s, using defaults", self.state_file)
            return AppState()

        try:
            document = await self._read_json(self.state_file)
            if not isinstance(document, dict):
                raise ValueError("state document is not an object")
            document, changed = migrate_document(document)
            state = AppState.from_dict(document)
        except (OSError, ValueError, TypeError, AttributeError) as e:
            self.logger.error("Failed to load state from %s: %s", self.state_file, e)
            return AppState()

        self.logger.info(
            "Loaded state: %d recorders, %d takes in history",
            len(state.recorders), len(state.take_history),
        )
        if changed:
            self.logger.info("Migrated legacy state document")
            await self.save(state)
        return state

    # =========================================================================
    # Saving
    # =========================================================================

    def _write_atomic(self, path: Path, payload: Dict[str, Any]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path: Optional[Path] = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                dir=str(path.parent),
                delete=False,
                encoding="utf-8",
                suffix=".tmp",
            ) as tmp:
                tmp_path = Path(tmp.name)
                json.dump(payload, tmp, indent=2)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_path, path)
            tmp_path = None
        finally:
            if tmp_path is not None:
                with contextlib.suppress(FileNotFoundError):
                    tmp_path.unlink()

    async def save(self, state: AppState) -> bool:
        async with self._write_lock:
            try:
                await asyncio.to_thread(self._write_atomic, self.state_file, state.to_dict())
            except (OSError, TypeError, ValueError) as e:
                self.logger.error("Failed to save state to %s: %s", self.state_file, e)
                return False
        self.logger.debug("State saved to %s", self.state_file)
        return True

    def request_save(self, get_state: Callable[[], AppState]) -> None:
        """Schedule a coalesced save of whatever ``get_state`` returns when it runs."""
        self._save_requested = True
        if self._save_task is None or self._save_task.done():
            self._save_task = create_logged_task(
                self._save_loop(get_state),
                logger=self.logger,
                context="StatePersistence.save",
            )

    async def _save_loop(self, get_state: Callable[[], AppState]) -> None:
        while self._save_requested:
            self._save_requested = False
            await self.save(get_state())

    async def flush(self) -> None:
        """Wait for any scheduled save to finish."""
        task = self._save_task
        if task is not None and not task.done():
            await asyncio.shield(task)

    # =========================================================================
    # Export / import
    # =========================================================================

    async def export_show(self, state: AppState, path: Path) -> Path:
        envelope = {
            "version": EXPORT_VERSION,
            "exportDate": datetime.now().astimezone().isoformat(),
            "data": state.to_dict(),
        }
        path = Path(path)
        try:
            await asyncio.to_thread(self._write_atomic, path, envelope)
        except OSError as e:
            raise ShowFileError(f"Export failed: {e}") from e
        self.logger.info("Exported show to %s", path)
        return path

    async def import_show(self, path: Path) -> AppState:
        """Read an exported show file into a fresh aggregate.

        Raises:
            ShowFileError: unreadable file, bad envelope or missing lists.
        """
        path = Path(path)
        try:
            envelope = await self._read_json(path)
        except (OSError, ValueError) as e:
            raise ShowFileError(f"Import failed: {e}") from e

        if not isinstance(envelope, dict) or not envelope.get("version") or not isinstance(envelope.get("data"), dict):
            raise ShowFileError("Invalid show file format")

        data = envelope["data"]
        if not isinstance(data.get("recorders"), list) or not isinstance(data.get("templates"), list):
            raise ShowFileError("Invalid show file: missing required data")

        try:
            document, _ = migrate_document(data)
            state = AppState.from_dict(document)
        except (ValueError, TypeError, AttributeError) as e:
            raise ShowFileError(f"Invalid show file: {e}") from e

        for recorder in state.recorders:
            recorder.online = False
            recorder.last_checked = None
            recorder.transport_status = None
            recorder.timecode = None

        self.logger.info("Imported show from %s (%d recorders)", path, len(state.recorders))
        return state


def default_export_name(show_name: str, date_stamp: str) -> str:
    return f"{show_name or 'show'}_{date_stamp}.json"
