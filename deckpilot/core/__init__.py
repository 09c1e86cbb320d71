from importlib import metadata

try:
    __version__ = metadata.version("deckpilot")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"

from .deckpilot_system import DeckPilotSystem
from .errors import DeckPilotError, RecorderNotFoundError, ValidationError
from .shutdown_coordinator import get_shutdown_coordinator, ShutdownCoordinator
from .state_store import StateStore, StoreEvent, StoreEventKind

__all__ = [
    'DeckPilotSystem',
    'DeckPilotError',
    'RecorderNotFoundError',
    'ValidationError',
    'get_shutdown_coordinator',
    'ShutdownCoordinator',
    'StateStore',
    'StoreEvent',
    'StoreEventKind',
    '__version__',
]
