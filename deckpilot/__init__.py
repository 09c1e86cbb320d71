"""DeckPilot - take naming and transport control for networked disk recorders."""

from .core import __version__
from .app.master import main, run

__all__ = ["__version__", "main", "run"]
