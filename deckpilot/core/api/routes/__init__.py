"""
API route modules.

- system: Health, status, host info, shutdown
- recorders: Recorder registry CRUD and status refresh
- takes: Take names, numbering, template toggles, history
- transport: Deck transport, clips, timecode, video input
- show: Show name, date format, new/export/import
- settings: Show-control and hub settings
- events: Websocket push of state updates
"""

from .system import setup_system_routes
from .recorders import setup_recorder_routes
from .takes import setup_take_routes
from .transport import setup_transport_routes
from .show import setup_show_routes
from .settings import setup_settings_routes
from .events import setup_event_routes


def setup_all_routes(app, controller):
    """Register all API routes with the application."""
    setup_system_routes(app, controller)
    setup_recorder_routes(app, controller)
    setup_take_routes(app, controller)
    setup_transport_routes(app, controller)
    setup_show_routes(app, controller)
    setup_settings_routes(app, controller)
    setup_event_routes(app, controller)


__all__ = ["setup_all_routes"]
