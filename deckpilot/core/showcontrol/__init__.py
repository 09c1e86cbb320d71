"""OSC show-control gateway."""

from .gateway import ShowControlGateway
from .messages import SetAllCommand, SetTakeCommand, ShowControlCommand

__all__ = ["ShowControlGateway", "SetAllCommand", "SetTakeCommand", "ShowControlCommand"]
