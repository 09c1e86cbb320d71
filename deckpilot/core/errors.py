"""Domain exceptions raised by the registry and the operation surface.

Network code never raises these to its callers; they describe bad requests
(unknown recorder, invalid value) and are turned into explicit failure
results at the edges (API controller, hub command dispatcher).
"""


class DeckPilotError(Exception):
    """Base class for all DeckPilot domain errors."""


class RecorderNotFoundError(DeckPilotError, LookupError):
    """No recorder with the requested id (or sanitized name) exists."""

    def __init__(self, recorder_id: str):
        super().__init__(f"Recorder not found: {recorder_id}")
        self.recorder_id = recorder_id


class ValidationError(DeckPilotError, ValueError):
    """A supplied value violates a registry invariant."""


class DuplicateRecorderError(ValidationError):
    """Two recorders would share an id or a sanitized show-control name."""


class ShowFileError(DeckPilotError):
    """An exported show document could not be read or failed validation."""
