"""
Line grammar for the deck's plain-text control protocol.

Replies are newline-terminated lines (``\\r`` is stripped). Each line is one
of:

    status line   ``<3-digit code> <text>``; a trailing ``:`` opens a block
                  that runs until the next blank line
    row           ``<int>: <rest>`` (clip listings)
    field         ``<key>: <value>``
    anything else ignored

Lines outside a block are gathered into a header-less response. Unknown
codes and unrecognized lines never raise; callers decide from what was
recognized. The connection banner (code 500) is kept apart from command
responses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..models import Clip, TransportInfo, TransportStatus

DECK_PORT = 9993
CONTROL_TIMEOUT = 3.0
CLIP_LIST_TIMEOUT = 5.0

CODE_OK = 200
CODE_CLIPS_INFO = 205
CODE_CONNECTION_INFO = 500

# Friendly codec name -> device file-format token
CODEC_TOKENS: Dict[str, str] = {
    "ProRes422HQ": "QuickTimeProResHQ",
    "ProRes422": "QuickTimeProRes",
    "ProRes422LT": "QuickTimeProResLT",
    "ProRes422Proxy": "QuickTimeProResProxy",
    "DNxHD220": "DNxHD220",
    "DNxHD145": "DNxHD145",
    "DNxHD45": "DNxHD45",
}
_CODECS_BY_TOKEN = {token: name for name, token in CODEC_TOKENS.items()}

VIDEO_INPUTS = ("SDI", "HDMI", "Component")

TIMECODE_PATTERN = re.compile(r"^\d{2}:\d{2}:\d{2}:\d{2}$")

_STATUS_LINE = re.compile(r"^(\d{3})(?:\s+(.*?))?\s*(:?)$")
_ROW_LINE = re.compile(r"^(\d+):\s*(.*)$")
_FIELD_LINE = re.compile(r"^([A-Za-z][A-Za-z0-9 _-]*?)\s*:\s*(.*)$")
_CLIP_ROW = re.compile(r"^(.+?)\s+(\d{2}:\d{2}:\d{2}:\d{2})$")


@dataclass
class DeckResponse:
    """One status line with its block, or a run of loose lines (``code`` None)."""
    code: Optional[int] = None
    text: str = ""
    fields: Dict[str, str] = field(default_factory=dict)
    rows: List[Tuple[int, str]] = field(default_factory=list)
    complete: bool = False


class ResponseParser:
    """Incremental parser fed with raw chunks read from the socket."""

    def __init__(self) -> None:
        self._pending = ""
        self._block: Optional[DeckResponse] = None
        self._loose: Optional[DeckResponse] = None
        self.responses: List[DeckResponse] = []

    def feed(self, chunk: str) -> None:
        self._pending += chunk
        *lines, self._pending = self._pending.split("\n")
        for line in lines:
            self._consume(line.rstrip("\r"))

    def _consume(self, line: str) -> None:
        stripped = line.strip()

        if not stripped:
            if self._block is not None:
                self._block.complete = True
                self._block = None
            return

        status = _STATUS_LINE.match(stripped)
        if status:
            if self._block is not None:
                self._block.complete = True
            opens_block = bool(status.group(3))
            response = DeckResponse(
                code=int(status.group(1)),
                text=(status.group(2) or "").strip(),
                complete=not opens_block,
            )
            self.responses.append(response)
            self._block = response if opens_block else None
            return

        target = self._block
        if target is None:
            if self._loose is None:
                self._loose = DeckResponse()
                self.responses.append(self._loose)
            target = self._loose

        row = _ROW_LINE.match(stripped)
        if row:
            target.rows.append((int(row.group(1)), row.group(2).strip()))
            return

        field_match = _FIELD_LINE.match(stripped)
        if field_match:
            target.fields[field_match.group(1).strip().lower()] = field_match.group(2).strip()

    # ------------------------------------------------------------------
    # Queries over what has been parsed so far

    def command_responses(self) -> List[DeckResponse]:
        """Status responses other than the connection banner."""
        return [
            r for r in self.responses
            if r.code is not None and r.code != CODE_CONNECTION_INFO
        ]

    def outcome(self, index: int = 0) -> Optional[bool]:
        """Result of the ``index``-th command sent on this connection.

        True on 200, False on a 1xx failure code, None while undecided.
        """
        decided = [r for r in self.command_responses() if r.code == CODE_OK or 100 <= r.code < 200]
        if len(decided) <= index:
            return None
        return decided[index].code == CODE_OK

    def field_value(self, key: str) -> Optional[str]:
        for response in self.responses:
            if response.code == CODE_CONNECTION_INFO:
                continue
            if key in response.fields:
                return response.fields[key]
        return None

    def find(self, code: int) -> Optional[DeckResponse]:
        for response in self.responses:
            if response.code == code:
                return response
        return None


# ----------------------------------------------------------------------
# Reply interpretation


def codec_token(name: str) -> Optional[str]:
    """Device token for a friendly codec name, or None if unsupported."""
    return CODEC_TOKENS.get(name)


def codec_from_token(token: str) -> str:
    """Friendly name for a device token; unknown tokens lose the QuickTime prefix."""
    token = token.strip()
    if token in _CODECS_BY_TOKEN:
        return _CODECS_BY_TOKEN[token]
    if token.startswith("QuickTime"):
        return token[len("QuickTime"):]
    return token


def parse_codec(parser: ResponseParser) -> Optional[str]:
    token = parser.field_value("file format")
    if not token:
        return None
    return codec_from_token(token)


def parse_transport_info(parser: ResponseParser) -> TransportInfo:
    info = TransportInfo()
    status = parser.field_value("status")
    if status:
        info.status = TransportStatus.parse(status.split()[0])
    timecode = parser.field_value("display timecode")
    if timecode and TIMECODE_PATTERN.match(timecode):
        info.timecode = timecode
    return info


def transport_info_complete(parser: ResponseParser) -> bool:
    info = parse_transport_info(parser)
    if info.status is not None and info.timecode is not None:
        return True
    block = parser.find(208)
    return block is not None and block.complete


def parse_clip_list(parser: ResponseParser) -> List[Clip]:
    """Clips from the ``205 clips info:`` block; rows without a timecode are skipped."""
    block = parser.find(CODE_CLIPS_INFO)
    if block is None:
        return []
    clips: List[Clip] = []
    for index, rest in block.rows:
        match = _CLIP_ROW.match(rest)
        if match:
            clips.append(Clip(id=index, name=match.group(1).strip(), duration=match.group(2)))
    return clips


def clip_list_complete(parser: ResponseParser) -> bool:
    block = parser.find(CODE_CLIPS_INFO)
    return block is not None and block.complete


# ----------------------------------------------------------------------
# Command lines


def file_format_command(token: str) -> str:
    return f"configuration: file format: {token}"


def goto_clip_command(clip: object) -> str:
    return f"goto: clip id: {clip}"


def play_clip_command(clip_id: int) -> str:
    return f"play: clip id: {clip_id}"


def goto_timecode_command(timecode: str) -> str:
    return f"goto: timecode: {timecode}"


def video_input_command(video_input: str) -> str:
    return f"configuration: video input: {video_input}"


SLOT_SELECT_COMMAND = "disk select: slot id: 1"


def filename_command(name: str) -> str:
    return f"disk select: video filename: {name}"
