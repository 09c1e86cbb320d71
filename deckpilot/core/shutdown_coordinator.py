"""
Shutdown Coordinator - Single point of control for graceful shutdown.

Signals, API requests and fatal errors all funnel through
``initiate_shutdown``; registered cleanups run once, in order.
"""

import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from .logging_utils import get_module_logger


class ShutdownState(Enum):
    RUNNING = "running"
    REQUESTED = "requested"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class ShutdownCoordinator:
    """
    Coordinates shutdown across all components.

    Shutdown sequence:
    1. A signal, API call or error triggers ``initiate_shutdown()``
    2. State transitions to REQUESTED, then IN_PROGRESS
    3. Cleanup callbacks are executed in registration order
    4. State transitions to COMPLETE and waiters are released
    """

    def __init__(self):
        self.logger = get_module_logger("ShutdownCoordinator")
        self._state = ShutdownState.RUNNING
        self._shutdown_event = asyncio.Event()
        self._cleanup_callbacks: List[Callable[[], Awaitable[None]]] = []
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ShutdownState:
        return self._state

    @property
    def is_shutting_down(self) -> bool:
        return self._state in (ShutdownState.REQUESTED, ShutdownState.IN_PROGRESS)

    @property
    def is_complete(self) -> bool:
        return self._state == ShutdownState.COMPLETE

    def register_cleanup(self, callback: Callable[[], Awaitable[None]]) -> None:
        """Register an async cleanup; callbacks run in registration order."""
        self._cleanup_callbacks.append(callback)
        self.logger.debug("Registered cleanup callback: %s", _callback_name(callback))

    async def initiate_shutdown(self, source: str = "unknown") -> None:
        """
        Initiate graceful shutdown.

        If shutdown is already under way this call is a no-op.

        Args:
            source: What triggered shutdown (for logging)
        """
        shutdown_start = time.monotonic()

        async with self._lock:
            if self._state != ShutdownState.RUNNING:
                self.logger.debug(
                    "Shutdown already initiated (state=%s), ignoring request from %s",
                    self._state.value, source,
                )
                return
            self.logger.info("Shutdown initiated by: %s", source)
            self._state = ShutdownState.REQUESTED

        await self._execute_cleanup()

        async with self._lock:
            self._state = ShutdownState.COMPLETE
            self._shutdown_event.set()

        self.logger.info("Shutdown complete in %.3fs", time.monotonic() - shutdown_start)

    async def _execute_cleanup(self) -> None:
        async with self._lock:
            self._state = ShutdownState.IN_PROGRESS

        total = len(self._cleanup_callbacks)
        for i, callback in enumerate(self._cleanup_callbacks, 1):
            name = _callback_name(callback)
            try:
                started = time.monotonic()
                self.logger.info("Starting cleanup %d/%d: %s", i, total, name)
                await callback()
                self.logger.info("Completed %s in %.3fs", name, time.monotonic() - started)
            except Exception as e:
                self.logger.error("Error in cleanup callback %s: %s", name, e, exc_info=True)

    async def wait_for_shutdown(self) -> None:
        """Block until shutdown is complete."""
        await self._shutdown_event.wait()


def _callback_name(callback: Callable) -> str:
    return getattr(callback, "__name__", repr(callback))


# Global singleton instance
_coordinator: Optional[ShutdownCoordinator] = None


def get_shutdown_coordinator() -> ShutdownCoordinator:
    global _coordinator
    if _coordinator is None:
        _coordinator = ShutdownCoordinator()
    return _coordinator


def reset_shutdown_coordinator() -> None:
    """Reset the global coordinator (mainly for testing)."""
    global _coordinator
    _coordinator = None
