"""OSC messages exchanged with the show-control surface.

Inbound:  ``<prefix><sanitizedName>/setTake`` and ``<prefix>all/setAll``
Outbound: ``<prefix><sanitizedName>`` with ``[s take, i shot, i take, s name]``
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple, Union

from pythonosc.osc_message_builder import OscMessageBuilder
from pythonosc.osc_packet import OscPacket, ParseError

from ..models import Recorder
from ..take_names import sanitize_name

ALL_TARGET = "all"
ACTION_SET_TAKE = "setTake"
ACTION_SET_ALL = "setAll"


class ShowControlMessageError(ValueError):
    """Inbound datagram or address that is not a recognized command."""


@dataclass(frozen=True)
class SetTakeCommand:
    """Commit a generated take for the recorder whose sanitized name is ``target``."""
    target: str


@dataclass(frozen=True)
class SetAllCommand:
    """Commit a generated take for every enabled recorder."""


ShowControlCommand = Union[SetTakeCommand, SetAllCommand]


def decode_datagram(data: bytes) -> List[Tuple[str, list]]:
    """Split a datagram into ``(address, params)`` pairs; bundles are flattened."""
    try:
        packet = OscPacket(data)
    except ParseError as e:
        raise ShowControlMessageError(f"Undecodable OSC datagram: {e}") from e
    return [(timed.message.address, list(timed.message.params)) for timed in packet.messages]


def parse_command(address: str, prefix: str) -> ShowControlCommand:
    if not address.startswith(prefix):
        raise ShowControlMessageError(f"Address outside {prefix}: {address}")

    parts = address[len(prefix):].split("/")
    if len(parts) < 2 or not parts[0]:
        raise ShowControlMessageError(f"Expected {prefix}<target>/<action>: {address}")

    target, action = parts[0], parts[1]
    if action == ACTION_SET_ALL or (action == ACTION_SET_TAKE and target == ALL_TARGET):
        return SetAllCommand()
    if action == ACTION_SET_TAKE:
        return SetTakeCommand(target)
    raise ShowControlMessageError(f"Unknown show-control action '{action}'")


def take_address(prefix: str, recorder: Recorder) -> str:
    return f"{prefix}{sanitize_name(recorder.name)}"


def build_take_message(prefix: str, recorder: Recorder, take_name: str) -> bytes:
    builder = OscMessageBuilder(address=take_address(prefix, recorder))
    builder.add_arg(take_name, OscMessageBuilder.ARG_TYPE_STRING)
    builder.add_arg(recorder.shot_number or 1, OscMessageBuilder.ARG_TYPE_INT)
    builder.add_arg(recorder.take_number or 1, OscMessageBuilder.ARG_TYPE_INT)
    builder.add_arg(recorder.name or recorder.id, OscMessageBuilder.ARG_TYPE_STRING)
    return builder.build().dgram
