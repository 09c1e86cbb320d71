"""Per-operation TCP client for the deck control protocol.

Every public method opens its own connection, runs one short exchange and
closes it. The whole exchange (connect included) is bounded by a timeout.
No method raises for network trouble: failures come back as ``False``,
``None``, an empty ``TransportInfo`` or an empty clip list, and are logged.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import Awaitable, Callable, List, Optional, TypeVar

from ..logging_utils import get_module_logger
from ..models import Clip, TransportInfo
from . import deck_protocol as proto

logger = get_module_logger("DeckClient")

T = TypeVar("T")

_READ_CHUNK = 4096


class DeckConnection:
    """An open control connection with its incremental reply parser."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self._reader = reader
        self._writer = writer
        self.parser = proto.ResponseParser()

    async def send(self, line: str) -> None:
        self._writer.write(f"{line}\n".encode("utf-8"))
        await self._writer.drain()

    async def read_until(self, predicate: Callable[[proto.ResponseParser], bool]) -> bool:
        """Read until ``predicate`` holds or the deck closes the connection."""
        while not predicate(self.parser):
            chunk = await self._reader.read(_READ_CHUNK)
            if not chunk:
                return predicate(self.parser)
            self.parser.feed(chunk.decode("utf-8", errors="replace"))
        return True


class DeckClient:
    """Drives recording decks over their plain-text control port."""

    def __init__(
        self,
        port: int = proto.DECK_PORT,
        *,
        control_timeout: float = proto.CONTROL_TIMEOUT,
        clip_timeout: float = proto.CLIP_LIST_TIMEOUT,
    ):
        self.port = port
        self.control_timeout = control_timeout
        self.clip_timeout = clip_timeout

    # ------------------------------------------------------------------
    # Connection plumbing

    async def _with_connection(self, address: str, exchange: Callable[[DeckConnection], Awaitable[T]]) -> T:
        reader, writer = await asyncio.open_connection(address, self.port)
        try:
            return await exchange(DeckConnection(reader, writer))
        finally:
            writer.close()
            with contextlib.suppress(OSError, ConnectionError):
                await writer.wait_closed()

    async def _run(
        self,
        address: str,
        exchange: Callable[[DeckConnection], Awaitable[T]],
        *,
        default: T,
        timeout: Optional[float] = None,
        label: str,
    ) -> T:
        if not address:
            return default
        timeout = self.control_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(self._with_connection(address, exchange), timeout)
        except asyncio.TimeoutError:
            logger.debug("%s on %s timed out after %.1fs", label, address, timeout)
        except OSError as e:
            logger.debug("%s on %s failed: %s", label, address, e)
        return default

    @staticmethod
    def _await_outcome(index: int = 0) -> Callable[[proto.ResponseParser], bool]:
        return lambda parser: parser.outcome(index) is not None

    # ------------------------------------------------------------------
    # Queries

    async def check_online(self, address: str) -> bool:
        """True iff a TCP connection to the control port opens in time."""
        async def _exchange(_conn: DeckConnection) -> bool:
            return True

        return await self._run(address, _exchange, default=False, label="online check")

    async def query_codec(self, address: str) -> Optional[str]:
        """Current recording codec as a friendly name, or None."""
        async def _exchange(conn: DeckConnection) -> Optional[str]:
            await conn.send("configuration")
            await conn.read_until(lambda p: p.field_value("file format") is not None)
            return proto.parse_codec(conn.parser)

        return await self._run(address, _exchange, default=None, label="codec query")

    async def query_transport_info(self, address: str) -> TransportInfo:
        """Transport status and display timecode; either may be missing."""
        parser_ref: List[proto.ResponseParser] = []

        async def _exchange(conn: DeckConnection) -> TransportInfo:
            parser_ref.append(conn.parser)
            await conn.send("transport info")
            await conn.read_until(proto.transport_info_complete)
            return proto.parse_transport_info(conn.parser)

        info = await self._run(address, _exchange, default=None, label="transport info")
        if info is not None:
            return info
        # Keep whatever arrived before the timeout
        if parser_ref:
            return proto.parse_transport_info(parser_ref[0])
        return TransportInfo()

    async def list_clips(self, address: str) -> List[Clip]:
        """Clips on the current disk; empty on timeout or failure."""
        async def _exchange(conn: DeckConnection) -> List[Clip]:
            await conn.send("clips get")
            await conn.read_until(proto.clip_list_complete)
            return proto.parse_clip_list(conn.parser)

        return await self._run(address, _exchange, default=[], timeout=self.clip_timeout, label="clip list")

    # ------------------------------------------------------------------
    # Commands

    async def send_transport_command(self, address: str, command: str) -> bool:
        """Send one raw command line; True iff the deck answers 200."""
        if "\n" in command or "\r" in command:
            logger.warning("Refusing multi-line deck command %r", command)
            return False

        async def _exchange(conn: DeckConnection) -> bool:
            await conn.send(command)
            await conn.read_until(self._await_outcome())
            return conn.parser.outcome() is True

        ok = await self._run(address, _exchange, default=False, label=f"'{command}'")
        if not ok:
            logger.warning("Deck %s did not accept '%s'", address, command)
        return ok

    async def play(self, address: str) -> bool:
        return await self.send_transport_command(address, "play")

    async def stop(self, address: str) -> bool:
        return await self.send_transport_command(address, "stop")

    async def record(self, address: str) -> bool:
        return await self.send_transport_command(address, "record")

    async def previous_clip(self, address: str) -> bool:
        return await self.send_transport_command(address, proto.goto_clip_command("-1"))

    async def next_clip(self, address: str) -> bool:
        return await self.send_transport_command(address, proto.goto_clip_command("+1"))

    async def goto_clip(self, address: str, clip_id: int) -> bool:
        return await self.send_transport_command(address, proto.goto_clip_command(int(clip_id)))

    async def play_clip(self, address: str, clip_id: int) -> bool:
        return await self.send_transport_command(address, proto.play_clip_command(int(clip_id)))

    async def goto_timecode(self, address: str, timecode: str) -> bool:
        if not proto.TIMECODE_PATTERN.match(timecode or ""):
            logger.warning("Invalid timecode %r (expected HH:MM:SS:FF)", timecode)
            return False
        return await self.send_transport_command(address, proto.goto_timecode_command(timecode))

    async def set_video_input(self, address: str, video_input: str) -> bool:
        if video_input not in proto.VIDEO_INPUTS:
            logger.warning("Unsupported video input %r", video_input)
            return False
        return await self.send_transport_command(address, proto.video_input_command(video_input))

    async def set_codec(self, address: str, codec: str) -> bool:
        token = proto.codec_token(codec)
        if token is None:
            logger.warning("Unsupported codec %r", codec)
            return False
        return await self.send_transport_command(address, proto.file_format_command(token))

    async def set_take_filename(self, address: str, name: str) -> bool:
        """Select slot 1, then set the next recording's filename.

        The two commands are not atomic on the deck: a failure after the slot
        select leaves the slot selected with the old filename.
        """
        if not name or "\n" in name or "\r" in name:
            logger.warning("Invalid take filename %r", name)
            return False

        async def _exchange(conn: DeckConnection) -> bool:
            await conn.send(proto.SLOT_SELECT_COMMAND)
            await conn.read_until(self._await_outcome(0))
            if conn.parser.outcome(0) is not True:
                return False
            await conn.send(proto.filename_command(name))
            await conn.read_until(self._await_outcome(1))
            return conn.parser.outcome(1) is True

        ok = await self._run(address, _exchange, default=False, label="set filename")
        if ok:
            logger.info("Deck %s will record to '%s'", address, name)
        else:
            logger.warning("Failed to set filename '%s' on deck %s", name, address)
        return ok
