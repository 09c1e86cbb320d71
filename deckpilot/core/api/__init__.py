"""
Local REST API for DeckPilot.

Exposes the recorder, take, transport, show and settings operations as
HTTP/JSON endpoints under ``/api/v1`` plus a websocket event stream at
``/api/v1/events`` that pushes state updates to the operator front end.

Usage:
    python -m deckpilot --api-port 8090
"""

from .server import APIServer
from .controller import APIController

__all__ = ["APIServer", "APIController"]
