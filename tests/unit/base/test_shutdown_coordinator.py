"""Unit tests for the shutdown coordinator."""

import pytest

from deckpilot.core.shutdown_coordinator import (
    ShutdownState,
    get_shutdown_coordinator,
    reset_shutdown_coordinator,
)


class TestShutdownCoordinator:

    def test_singleton(self):
        assert get_shutdown_coordinator() is get_shutdown_coordinator()
        first = get_shutdown_coordinator()
        reset_shutdown_coordinator()
        assert get_shutdown_coordinator() is not first

    @pytest.mark.asyncio
    async def test_cleanups_run_in_order(self):
        coordinator = get_shutdown_coordinator()
        order = []

        async def stop_api():
            order.append("api")

        async def stop_system():
            order.append("system")

        coordinator.register_cleanup(stop_api)
        coordinator.register_cleanup(stop_system)
        await coordinator.initiate_shutdown("test")

        assert order == ["api", "system"]
        assert coordinator.state is ShutdownState.COMPLETE
        assert coordinator.is_complete

    @pytest.mark.asyncio
    async def test_failing_cleanup_does_not_stop_others(self):
        coordinator = get_shutdown_coordinator()
        ran = []

        async def broken():
            raise RuntimeError("boom")

        async def after():
            ran.append("after")

        coordinator.register_cleanup(broken)
        coordinator.register_cleanup(after)
        await coordinator.initiate_shutdown("test")
        assert ran == ["after"]

    @pytest.mark.asyncio
    async def test_second_request_is_ignored(self):
        coordinator = get_shutdown_coordinator()
        calls = []

        async def cleanup():
            calls.append(1)

        coordinator.register_cleanup(cleanup)
        await coordinator.initiate_shutdown("signal")
        await coordinator.initiate_shutdown("API")
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_wait_for_shutdown_returns_after_completion(self):
        coordinator = get_shutdown_coordinator()
        await coordinator.initiate_shutdown("test")
        await coordinator.wait_for_shutdown()
