"""Tests for hub frames, command dispatch and the websocket bridge."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from aiohttp import WSMsgType, web
from aiohttp import test_utils

from deckpilot.core.connection.hub_bridge import HubBridge, HubState
from deckpilot.core.connection.hub_commands import HubCommandDispatcher, HubCommandError
from deckpilot.core.connection.hub_frames import (
    AuthOk,
    HubCommand,
    HubFrameError,
    UnknownFrame,
    auth_frame,
    command_result_frame,
    metrics_frame,
    parse_frame,
)
from deckpilot.core.deckpilot_system import DeckPilotSystem
from deckpilot.core.errors import RecorderNotFoundError
from deckpilot.core.models import HubSettings, Recorder, TransportStatus
from tests.infrastructure.helpers.async_helpers import wait_for_condition
from tests.infrastructure.mocks.deck_mocks import FakeDeckClient


# =============================================================================
# Frames
# =============================================================================

class TestFrames:

    def test_parse_auth_ok(self):
        assert parse_frame('{"type": "auth_ok", "message": "welcome"}') == AuthOk("welcome")

    def test_parse_command(self):
        frame = parse_frame(json.dumps({
            "type": "command",
            "command": "increment_take",
            "command_id": "c-1",
            "params": {"recorderId": "r1"},
        }))
        assert frame == HubCommand("increment_take", "c-1", {"recorderId": "r1"})

    def test_unknown_type_is_not_an_error(self):
        assert parse_frame('{"type": "ping"}') == UnknownFrame("ping")

    @pytest.mark.parametrize("text", [
        "not json",
        "[]",
        '{"no": "type"}',
        '{"type": "command", "command_id": 1}',
        '{"type": "command", "command": "get_status"}',
        '{"type": "command", "command": "get_status", "command_id": 1, "params": []}',
    ])
    def test_malformed_frames(self, text):
        with pytest.raises(HubFrameError):
            parse_frame(text)

    def test_auth_frame(self):
        settings = HubSettings(enabled=True, show_id="gala", metadata={"room": "A"})
        frame = auth_frame(settings, "node-1", "1.2.3")
        assert frame["type"] == "auth"
        assert frame["node_id"] == "node-1"
        assert frame["version"] == "1.2.3"
        assert frame["show_id"] == "gala"
        assert frame["metadata"] == {"type": "deckpilot", "room": "A"}

    def test_auth_frame_without_show(self):
        assert "show_id" not in auth_frame(HubSettings(), "node-1", "1.0")

    def test_metrics_frame(self):
        recorders = [
            Recorder(id="a", name="A", online=True, transport_status=TransportStatus.RECORD),
            Recorder(id="b", name="B", online=True),
            Recorder(id="c", name="C"),
        ]
        frame = metrics_frame("node-1", recorders)
        assert frame["metrics"] == {
            "recorders_total": 3,
            "recorders_online": 2,
            "recorders_recording": 1,
            "total_disk_space_gb": "0.00",
        }
        assert frame["timestamp"].endswith("Z")

    def test_command_result_frames(self):
        ok = command_result_frame("c-1", "node-1", success=True, result=3)
        assert ok == {"type": "command_result", "command_id": "c-1", "node_id": "node-1", "success": True, "result": 3}
        failed = command_result_frame("c-2", "node-1", success=False, error="boom")
        assert failed["error"] == "boom"
        assert "result" not in failed


# =============================================================================
# Command dispatch
# =============================================================================

@pytest_asyncio.fixture
async def system(state_file):
    system = DeckPilotSystem(state_file, deck_client=FakeDeckClient(online={"10.0.0.1"}))
    await system.async_init()
    yield system
    await system.stop()


class TestDispatcher:

    @pytest.mark.asyncio
    async def test_increment_take(self, system):
        recorder = system.add_recorder("HYPER-1")
        dispatcher = HubCommandDispatcher(system)
        result = await dispatcher.dispatch(HubCommand("increment_take", 1, {"recorderId": recorder.id}))
        assert result == 2

    @pytest.mark.asyncio
    async def test_get_recorders(self, system):
        system.add_recorder("HYPER-1", "10.0.0.5")
        result = await HubCommandDispatcher(system).dispatch(HubCommand("get_recorders", 1))
        assert result[0]["name"] == "HYPER-1"
        assert result[0]["ipAddress"] == "10.0.0.5"

    @pytest.mark.asyncio
    async def test_start_recording_delegates_to_system(self):
        system = MagicMock()
        system.start_recording = AsyncMock(return_value=True)
        result = await HubCommandDispatcher(system).dispatch(
            HubCommand("start_recording", 1, {"recorderId": "r1"})
        )
        system.start_recording.assert_awaited_once_with("r1")
        assert result == {"success": True, "recorderId": "r1", "command": "record"}

    @pytest.mark.asyncio
    async def test_unknown_command(self, system):
        with pytest.raises(HubCommandError):
            await HubCommandDispatcher(system).dispatch(HubCommand("format_disk", 1))

    @pytest.mark.asyncio
    async def test_missing_parameter(self, system):
        with pytest.raises(HubCommandError):
            await HubCommandDispatcher(system).dispatch(HubCommand("set_take_name", 1, {"recorderId": "x"}))

    @pytest.mark.asyncio
    async def test_unknown_recorder(self, system):
        with pytest.raises(RecorderNotFoundError):
            await HubCommandDispatcher(system).dispatch(
                HubCommand("set_take_name", 1, {"recorderId": "missing", "takeName": "X"})
            )


# =============================================================================
# Bridge against a local hub
# =============================================================================

class FakeHub:
    """Websocket hub that records frames and answers ``auth`` with ``auth_ok``."""

    def __init__(self, *, accept_auth: bool = True):
        self.accept_auth = accept_auth
        self.frames = []
        self.sockets = []
        self.server = None

    async def _handle(self, request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.sockets.append(ws)
        async for msg in ws:
            if msg.type != WSMsgType.TEXT:
                continue
            frame = json.loads(msg.data)
            self.frames.append(frame)
            if frame["type"] == "auth" and self.accept_auth:
                await ws.send_json({"type": "auth_ok", "message": "welcome"})
        return ws

    def of_type(self, frame_type):
        return [f for f in self.frames if f["type"] == frame_type]

    @property
    def url(self):
        return str(self.server.make_url("/ws")).replace("http://", "ws://", 1)

    async def start(self):
        app = web.Application()
        app.router.add_get("/ws", self._handle)
        self.server = test_utils.TestServer(app)
        await self.server.start_server()
        return self

    async def close_sockets(self):
        for ws in list(self.sockets):
            await ws.close()

    async def stop(self):
        await self.close_sockets()
        await self.server.close()


@pytest_asyncio.fixture
async def hub():
    hub = await FakeHub().start()
    yield hub
    await hub.stop()


@pytest.fixture
def handled():
    return []


@pytest_asyncio.fixture
async def bridge(hub, handled):
    async def handler(command):
        handled.append(command)
        if command.command == "fail":
            raise HubCommandError("Unknown command: fail")
        return {"echo": command.params}

    bridge = HubBridge(
        HubSettings(enabled=True, hub_url=hub.url, node_id="node-1"),
        node_id="node-1",
        version="1.0.0",
        recorders_provider=lambda: [Recorder(id="a", name="A", online=True)],
        command_handler=handler,
        heartbeat_interval=0.05,
        metrics_interval=60.0,
        reconnect_delay=0.2,
    )
    yield bridge
    await bridge.stop()


@pytest.mark.network
class TestHubBridge:

    @pytest.mark.asyncio
    async def test_auth_then_timers(self, bridge, hub):
        await bridge.start()
        await wait_for_condition(lambda: bridge.state is HubState.AUTHENTICATED)

        assert hub.frames[0]["type"] == "auth"
        assert hub.frames[0]["node_id"] == "node-1"
        assert bridge.heartbeat_active and bridge.metrics_active

        await wait_for_condition(lambda: hub.of_type("metrics") and hub.of_type("heartbeat"))
        assert hub.of_type("metrics")[0]["metrics"]["recorders_online"] == 1

    @pytest.mark.asyncio
    async def test_no_timers_before_auth_ok(self, handled):
        hub = await FakeHub(accept_auth=False).start()
        bridge = HubBridge(
            HubSettings(enabled=True, hub_url=hub.url),
            node_id="node-1",
            version="1.0.0",
            recorders_provider=list,
            command_handler=None,
        )
        try:
            await bridge.start()
            await wait_for_condition(lambda: hub.of_type("auth"))
            await asyncio.sleep(0.05)
            assert bridge.state is HubState.AUTHENTICATING
            assert not bridge.heartbeat_active and not bridge.metrics_active
        finally:
            await bridge.stop()
            await hub.stop()

    @pytest.mark.asyncio
    async def test_server_close_stops_timers_and_reconnects(self, bridge, hub):
        await bridge.start()
        await wait_for_condition(lambda: bridge.state is HubState.AUTHENTICATED)

        await hub.close_sockets()

        await wait_for_condition(lambda: bridge.reconnect_scheduled)
        assert not bridge.heartbeat_active and not bridge.metrics_active
        await wait_for_condition(lambda: len(hub.of_type("auth")) == 2)
        await wait_for_condition(lambda: bridge.state is HubState.AUTHENTICATED)

    @pytest.mark.asyncio
    async def test_command_round_trip(self, bridge, hub, handled):
        await bridge.start()
        await wait_for_condition(lambda: bridge.state is HubState.AUTHENTICATED)

        await hub.sockets[0].send_json({
            "type": "command", "command": "get_status", "command_id": 7, "params": {"x": 1},
        })
        await hub.sockets[0].send_json({"type": "command", "command": "fail", "command_id": "c-8"})

        await wait_for_condition(lambda: len(hub.of_type("command_result")) == 2)
        results = {f["command_id"]: f for f in hub.of_type("command_result")}
        assert results[7]["success"] is True
        assert results[7]["result"] == {"echo": {"x": 1}}
        assert results["c-8"]["success"] is False
        assert "fail" in results["c-8"]["error"]

    @pytest.mark.asyncio
    async def test_malformed_frame_keeps_connection(self, bridge, hub):
        await bridge.start()
        await wait_for_condition(lambda: bridge.state is HubState.AUTHENTICATED)
        await hub.sockets[0].send_str("{not json")
        await hub.sockets[0].send_json({"type": "command", "command": "get_status", "command_id": 1})
        await wait_for_condition(lambda: hub.of_type("command_result"))
        assert bridge.state is HubState.AUTHENTICATED

    @pytest.mark.asyncio
    async def test_disable_disconnects(self, bridge, hub):
        await bridge.start()
        await wait_for_condition(lambda: bridge.state is HubState.AUTHENTICATED)
        await bridge.apply_settings(HubSettings(enabled=False, hub_url=hub.url))
        assert bridge.state is HubState.DISCONNECTED
        assert not bridge.reconnect_scheduled
        assert not bridge.heartbeat_active

    @pytest.mark.asyncio
    async def test_endpoint_change_reconnects_after_delay(self, bridge, hub):
        bridge.endpoint_change_delay = 0.2
        await bridge.start()
        await wait_for_condition(lambda: bridge.state is HubState.AUTHENTICATED)

        new_url = hub.url + "?site=b"
        await bridge.apply_settings(HubSettings(enabled=True, hub_url=new_url, node_id="node-1"))
        assert bridge.state is HubState.DISCONNECTED
        assert not bridge.heartbeat_active
        assert len(hub.of_type("auth")) == 1

        await wait_for_condition(lambda: len(hub.of_type("auth")) == 2)
        await wait_for_condition(lambda: bridge.state is HubState.AUTHENTICATED)
        assert bridge.settings.hub_url == new_url

    @pytest.mark.asyncio
    async def test_unreachable_hub_schedules_reconnect(self, handled):
        bridge = HubBridge(
            HubSettings(enabled=True, hub_url="ws://127.0.0.1:9/ws"),
            node_id="node-1",
            version="1.0.0",
            recorders_provider=list,
            command_handler=None,
            reconnect_delay=5.0,
        )
        try:
            await bridge.start()
            await wait_for_condition(lambda: bridge.reconnect_scheduled, timeout=5.0)
            assert bridge.state is HubState.DISCONNECTED
        finally:
            await bridge.stop()
