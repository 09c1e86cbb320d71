"""Unit tests for background task helpers."""

import asyncio
import logging

import pytest

from deckpilot.core.asyncio_utils import cancel_and_wait, create_logged_task, run_periodically


class TestCreateLoggedTask:

    @pytest.mark.asyncio
    async def test_tracks_pending_until_done(self):
        pending = set()
        gate = asyncio.Event()

        async def work():
            await gate.wait()

        task = create_logged_task(work(), context="test.work", pending=pending)
        assert task in pending
        assert task.get_name() == "test.work"
        gate.set()
        await task
        assert task not in pending

    @pytest.mark.asyncio
    async def test_exception_is_logged(self, caplog):
        async def boom():
            raise RuntimeError("boom")

        with caplog.at_level(logging.ERROR):
            task = create_logged_task(boom(), context="test.boom")
            await asyncio.sleep(0.01)

        assert task.done()
        assert "Unhandled exception in test.boom" in caplog.text


class TestCancelAndWait:

    @pytest.mark.asyncio
    async def test_cancels_running_task(self):
        task = asyncio.get_running_loop().create_task(asyncio.sleep(10))
        await cancel_and_wait(task)
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_none_and_done_are_ignored(self):
        await cancel_and_wait(None)
        task = asyncio.get_running_loop().create_task(asyncio.sleep(0))
        await task
        await cancel_and_wait(task)


class TestRunPeriodically:

    @pytest.mark.asyncio
    async def test_immediate_first_run(self):
        calls = []

        async def tick():
            calls.append(1)

        task = asyncio.get_running_loop().create_task(run_periodically(60.0, tick, immediate=True))
        await asyncio.sleep(0.01)
        await cancel_and_wait(task)
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_waits_one_interval_by_default(self):
        calls = []

        async def tick():
            calls.append(1)

        task = asyncio.get_running_loop().create_task(run_periodically(0.02, tick))
        await asyncio.sleep(0.005)
        assert calls == []
        await asyncio.sleep(0.1)
        await cancel_and_wait(task)
        assert len(calls) >= 2
