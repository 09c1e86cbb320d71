"""Tests for DeckPilotSystem, the operation surface behind the API, gateway and hub."""

import json

import pytest
import pytest_asyncio

from deckpilot.core.deckpilot_system import DeckPilotSystem
from deckpilot.core.errors import RecorderNotFoundError, ValidationError
from deckpilot.core.models import TEMPLATE_TAKE, DeviceStatus
from deckpilot.core.showcontrol.messages import SetAllCommand, SetTakeCommand
from tests.infrastructure.helpers.async_helpers import wait_for_condition
from tests.infrastructure.mocks.deck_mocks import FakeDeckClient


ONLINE = "10.0.0.1"


@pytest_asyncio.fixture
async def client():
    return FakeDeckClient(online={ONLINE})


@pytest_asyncio.fixture
async def system(state_file, client):
    system = DeckPilotSystem(state_file, deck_client=client)
    await system.async_init()
    yield system
    await system.stop()


@pytest.fixture
def events(system):
    received = []
    system.add_event_listener(received.append)
    return received


def _triggered(events):
    return [e for e in events if e["type"] == "show-control-triggered"]


class TestInitialization:

    @pytest.mark.asyncio
    async def test_node_id_is_generated_and_persisted(self, system, state_file):
        await system.persistence.flush()
        node_id = system.store.state.hub.node_id
        assert node_id
        saved = json.loads(state_file.read_text(encoding="utf-8"))
        assert saved["hubSettings"]["nodeId"] == node_id

    @pytest.mark.asyncio
    async def test_user_changes_are_persisted(self, system, state_file):
        system.add_recorder("HYPER-1")
        system.set_show_name("GALA")
        await system.persistence.flush()
        saved = json.loads(state_file.read_text(encoding="utf-8"))
        assert saved["showName"] == "GALA"
        assert [r["name"] for r in saved["recorders"]] == ["HYPER-1"]

    @pytest.mark.asyncio
    async def test_stop_writes_final_state(self, state_file, client):
        system = DeckPilotSystem(state_file, deck_client=client)
        await system.async_init()
        system.set_show_name("FINAL")
        await system.stop()
        saved = json.loads(state_file.read_text(encoding="utf-8"))
        assert saved["showName"] == "FINAL"


class TestShowControl:

    @pytest.mark.asyncio
    async def test_set_all_commits_enabled_recorders_once(self, system, events):
        a = system.add_recorder("HYPER-1")
        b = system.add_recorder("HYPER-2")
        c = system.add_recorder("HYPER-3", enabled=False)

        system.handle_show_control(SetAllCommand())

        history = system.store.state.take_history
        assert {t.recorder_id for t in history} == {a.id, b.id}
        assert system.store.current_take(c.id) is None
        triggered = _triggered(events)
        assert len(triggered) == 1
        assert triggered[0]["recorderId"] == "all"

    @pytest.mark.asyncio
    async def test_set_take_by_sanitized_name(self, system, events):
        recorder = system.add_recorder("HYPER-41", selected_template=TEMPLATE_TAKE)
        system.set_show_name("GALA")

        system.handle_show_control(SetTakeCommand("HYPER_41"))

        assert system.store.current_take(recorder.id).startswith("GALA_")
        assert system.store.current_take(recorder.id).endswith("_S01_T01")
        assert recorder.take_number == 2
        assert _triggered(events)[0]["recorderId"] == recorder.id

    @pytest.mark.asyncio
    async def test_unknown_name_is_discovered(self, system, events):
        system.handle_show_control(SetTakeCommand("STAGE_LEFT"))
        recorder = system.store.find_by_sanitized_name("STAGE_LEFT")
        assert recorder is not None
        assert system.store.current_take(recorder.id)
        assert len(_triggered(events)) == 1

    @pytest.mark.asyncio
    async def test_repeated_unsanitized_name_is_not_discovered(self, system, events):
        system.handle_show_control(SetTakeCommand("cam.1"))
        system.handle_show_control(SetTakeCommand("cam.1"))
        assert system.store.recorders == []
        assert _triggered(events) == []

    @pytest.mark.asyncio
    async def test_repeated_name_discovers_once(self, system, events):
        system.handle_show_control(SetTakeCommand("STAGE_LEFT"))
        system.handle_show_control(SetTakeCommand("STAGE_LEFT"))
        assert len(system.store.recorders) == 1
        assert len(_triggered(events)) == 2

    @pytest.mark.asyncio
    async def test_unknown_name_ignored_without_discovery(self, system, events):
        await system.set_show_control_settings({"autoDiscover": False})
        system.handle_show_control(SetTakeCommand("STAGE_LEFT"))
        assert system.store.recorders == []
        assert _triggered(events) == []


class TestTakes:

    @pytest.mark.asyncio
    async def test_manual_take_name_is_pushed_to_online_deck(self, system, client):
        recorder = system.add_recorder("HYPER-1", ONLINE, selected_template=TEMPLATE_TAKE)
        await system.refresh_recorder(recorder.id)

        result = await system.set_take_name(recorder.id, " INTERVIEW_01 ")

        assert result == {"success": True, "recorderId": recorder.id, "takeName": "INTERVIEW_01"}
        assert ("set_filename", ONLINE, "INTERVIEW_01") in client.commands
        assert system.get_take_history()[0]["name"] == "INTERVIEW_01"
        assert recorder.take_number == 1

    @pytest.mark.asyncio
    async def test_manual_take_name_reports_deck_failure(self, system, client):
        recorder = system.add_recorder("HYPER-1", ONLINE)
        await system.refresh_recorder(recorder.id)
        client.command_results["set_filename"] = False

        result = await system.set_take_name(recorder.id, "INTERVIEW_01")

        assert result["success"] is False
        assert "error" in result
        assert system.store.current_take(recorder.id) == "INTERVIEW_01"

    @pytest.mark.asyncio
    async def test_offline_recorder_skips_deck_push(self, system, client):
        recorder = system.add_recorder("HYPER-1", "10.0.0.2")
        result = await system.set_take_name(recorder.id, "X")
        assert result["success"] is True
        assert not [c for c in client.commands if c[0] == "set_filename"]

    @pytest.mark.asyncio
    async def test_trigger_take_pushes_filename_in_background(self, system, client):
        recorder = system.add_recorder("HYPER-1", ONLINE)
        await system.refresh_recorder(recorder.id)

        record = system.trigger_take(recorder.id)

        await wait_for_condition(lambda: ("set_filename", ONLINE, record.name) in client.commands)

    @pytest.mark.asyncio
    async def test_unknown_recorder(self, system):
        with pytest.raises(RecorderNotFoundError):
            await system.set_take_name("missing", "X")

    @pytest.mark.asyncio
    async def test_increment_shot_resets_take(self, system):
        recorder = system.add_recorder("HYPER-1")
        system.set_take_number(recorder.id, 5)
        system.increment_shot(recorder.id)
        assert (recorder.shot_number, recorder.take_number) == (2, 1)


class TestRecorders:

    @pytest.mark.asyncio
    async def test_add_recorder_checks_status(self, system):
        recorder = system.add_recorder("HYPER-1", ONLINE)
        await wait_for_condition(lambda: recorder.online)

    @pytest.mark.asyncio
    async def test_codec_change_is_sent_to_online_deck(self, system, client):
        recorder = system.add_recorder("HYPER-1", ONLINE)
        await system.refresh_recorder(recorder.id)

        await system.update_recorder(recorder.id, recording_codec="DNxHD145")

        assert ("set_codec", ONLINE, "DNxHD145") in client.commands

    @pytest.mark.asyncio
    async def test_unsupported_codec_rejected(self, system):
        recorder = system.add_recorder("HYPER-1")
        with pytest.raises(ValidationError):
            await system.update_recorder(recorder.id, recording_codec="H.264")

    @pytest.mark.asyncio
    async def test_address_change_rechecks_status(self, system):
        recorder = system.add_recorder("HYPER-1", "10.0.0.2")
        await system.update_recorder(recorder.id, address=ONLINE)
        assert recorder.online is True


class TestEvents:

    @pytest.mark.asyncio
    async def test_device_status_alone_is_not_pushed(self, system, events):
        recorder = system.add_recorder("HYPER-1")
        events.clear()
        system.store.apply_device_status(recorder.id, DeviceStatus(online=False, checked_at=1))
        assert events == []
        system.store.mark_status_refreshed()
        assert [e["type"] for e in events] == ["state-updated"]

    @pytest.mark.asyncio
    async def test_listener_can_be_removed(self, system):
        received = []
        remove = system.add_event_listener(received.append)
        remove()
        system.set_show_name("GALA")
        assert received == []


class TestTransport:

    @pytest.mark.asyncio
    async def test_transport_actions(self, system, client):
        recorder = system.add_recorder("HYPER-1", ONLINE)
        assert await system.transport(recorder.id, "play") is True
        assert await system.transport(recorder.id, "prev") is True
        assert await system.start_recording(recorder.id) is True
        assert [c[0] for c in client.commands] == ["play", "prev", "record"]

    @pytest.mark.asyncio
    async def test_invalid_transport_values(self, system):
        recorder = system.add_recorder("HYPER-1", ONLINE)
        with pytest.raises(ValidationError):
            await system.transport(recorder.id, "rewind")
        with pytest.raises(ValidationError):
            await system.goto_timecode(recorder.id, "10:00")
        with pytest.raises(ValidationError):
            await system.set_video_input(recorder.id, "VGA")

    @pytest.mark.asyncio
    async def test_clips_are_stored_on_recorder(self, system):
        recorder = system.add_recorder("HYPER-1", ONLINE)
        clips = await system.get_clips(recorder.id)
        assert [c.name for c in clips] == ["A001.mov"]
        assert recorder.clips == clips


class TestShowFiles:

    @pytest.mark.asyncio
    async def test_export_then_import(self, system, tmp_path):
        system.add_recorder("HYPER-1", ONLINE)
        system.set_show_name("GALA")
        path = await system.export_show(tmp_path / "gala.json")

        await system.new_show()
        assert system.store.recorders == []

        await system.import_show(path)
        assert system.store.state.show_name == "GALA"
        assert [r.name for r in system.store.recorders] == ["HYPER-1"]
        assert system.store.recorders[0].online is False

    @pytest.mark.asyncio
    async def test_default_export_location(self, system, isolated_state_dir):
        system.set_show_name("GALA")
        path = await system.export_show()
        assert path.parent == isolated_state_dir / "shows"
        assert path.name.startswith("GALA_")
        assert path.exists()
