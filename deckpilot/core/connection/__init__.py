"""Monitoring hub websocket link."""

from .hub_bridge import HubBridge, HubState
from .hub_commands import HubCommandDispatcher, HubCommandError

__all__ = ["HubBridge", "HubState", "HubCommandDispatcher", "HubCommandError"]
