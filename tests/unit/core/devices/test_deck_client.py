"""Tests for DeckClient against scripted localhost deck servers."""

import asyncio

import pytest

from deckpilot.core.devices.deck_client import DeckClient
from deckpilot.core.models import TransportStatus
from tests.infrastructure.mocks.deck_mocks import CLIPS_REPLY, CONFIGURATION_REPLY, TRANSPORT_INFO_REPLY

pytestmark = pytest.mark.network

ADDRESS = "127.0.0.1"


def _client(deck, **kwargs) -> DeckClient:
    kwargs.setdefault("control_timeout", 0.5)
    kwargs.setdefault("clip_timeout", 0.5)
    return DeckClient(deck.port, **kwargs)


async def _closed_port() -> int:
    server = await asyncio.start_server(lambda r, w: None, ADDRESS, 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()
    return port


class TestQueries:

    @pytest.mark.asyncio
    async def test_online(self, fake_deck):
        deck = await fake_deck()
        assert await _client(deck).check_online(ADDRESS) is True

    @pytest.mark.asyncio
    async def test_offline_when_refused(self):
        client = DeckClient(await _closed_port(), control_timeout=0.5)
        assert await client.check_online(ADDRESS) is False

    @pytest.mark.asyncio
    async def test_empty_address(self, fake_deck):
        deck = await fake_deck()
        client = _client(deck)
        assert await client.check_online("") is False
        assert await client.play("") is False
        assert deck.connections == 0

    @pytest.mark.asyncio
    async def test_codec(self, fake_deck):
        deck = await fake_deck({"configuration": CONFIGURATION_REPLY})
        assert await _client(deck).query_codec(ADDRESS) == "ProRes422HQ"

    @pytest.mark.asyncio
    async def test_transport_info(self, fake_deck):
        deck = await fake_deck({"transport info": TRANSPORT_INFO_REPLY})
        info = await _client(deck).query_transport_info(ADDRESS)
        assert info.status is TransportStatus.RECORD
        assert info.timecode == "01:02:03:04"

    @pytest.mark.asyncio
    async def test_partial_transport_info_on_timeout(self, fake_deck):
        deck = await fake_deck({"transport info": "208 transport info:\r\nstatus: play\r\n"})
        info = await _client(deck, control_timeout=0.3).query_transport_info(ADDRESS)
        assert info.status is TransportStatus.PLAY
        assert info.timecode is None

    @pytest.mark.asyncio
    async def test_clip_list(self, fake_deck):
        deck = await fake_deck({"clips get": CLIPS_REPLY})
        clips = await _client(deck).list_clips(ADDRESS)
        assert [c.id for c in clips] == [1, 2]
        assert clips[1].name == "A002 take two.mov"

    @pytest.mark.asyncio
    async def test_clip_list_timeout_is_empty(self, fake_deck):
        deck = await fake_deck(silent=True)
        assert await _client(deck, clip_timeout=0.2).list_clips(ADDRESS) == []


class TestCommands:

    @pytest.mark.asyncio
    async def test_transport_command_success(self, fake_deck):
        deck = await fake_deck()
        assert await _client(deck).record(ADDRESS) is True
        assert deck.received == ["record"]

    @pytest.mark.asyncio
    async def test_failure_code_is_false(self, fake_deck):
        deck = await fake_deck({"play": "102 unsupported\r\n"})
        assert await _client(deck).play(ADDRESS) is False

    @pytest.mark.asyncio
    async def test_no_reply_is_false(self, fake_deck):
        deck = await fake_deck(silent=True)
        assert await _client(deck, control_timeout=0.2).stop(ADDRESS) is False

    @pytest.mark.asyncio
    async def test_multiline_command_refused(self, fake_deck):
        deck = await fake_deck()
        assert await _client(deck).send_transport_command(ADDRESS, "play\nrecord") is False
        assert deck.connections == 0

    @pytest.mark.asyncio
    async def test_clip_navigation(self, fake_deck):
        deck = await fake_deck()
        client = _client(deck)
        assert await client.previous_clip(ADDRESS)
        assert await client.next_clip(ADDRESS)
        assert await client.goto_clip(ADDRESS, 4)
        assert deck.received == ["goto: clip id: -1", "goto: clip id: +1", "goto: clip id: 4"]

    @pytest.mark.asyncio
    async def test_invalid_values_never_reach_the_deck(self, fake_deck):
        deck = await fake_deck()
        client = _client(deck)
        assert await client.goto_timecode(ADDRESS, "1:00") is False
        assert await client.set_video_input(ADDRESS, "VGA") is False
        assert await client.set_codec(ADDRESS, "H.264") is False
        assert deck.connections == 0

    @pytest.mark.asyncio
    async def test_set_codec(self, fake_deck):
        deck = await fake_deck()
        assert await _client(deck).set_codec(ADDRESS, "DNxHD220") is True
        assert deck.received == ["configuration: file format: DNxHD220"]

    @pytest.mark.asyncio
    async def test_set_take_filename(self, fake_deck):
        deck = await fake_deck()
        assert await _client(deck).set_take_filename(ADDRESS, "GALA_S01_T02") is True
        assert deck.received == ["disk select: slot id: 1", "disk select: video filename: GALA_S01_T02"]

    @pytest.mark.asyncio
    async def test_set_take_filename_stops_after_failed_slot_select(self, fake_deck):
        deck = await fake_deck({"disk select: slot id: 1": "102 unsupported\r\n"})
        assert await _client(deck).set_take_filename(ADDRESS, "GALA") is False
        assert deck.received == ["disk select: slot id: 1"]
