"""Periodic refresh of device-derived recorder fields."""

from __future__ import annotations

import asyncio
from typing import List, Optional, Tuple

from ..asyncio_utils import cancel_and_wait, create_logged_task, run_periodically
from ..logging_utils import get_module_logger
from ..models import DeviceStatus, now_ms
from ..state_store import StateStore
from .deck_client import DeckClient

DEFAULT_STATUS_INTERVAL = 5.0


class StatusReconciler:
    """Polls every recorder and folds the results back into the store.

    Within one pass every recorder's chain (online check, then codec, then
    transport info) runs concurrently and its result lands in the store as
    soon as that chain finishes, so a stalled deck never holds back the
    others. Passes never overlap.
    """

    def __init__(self, store: StateStore, client: DeckClient, *, interval: float = DEFAULT_STATUS_INTERVAL):
        self.logger = get_module_logger("StatusReconciler")
        self.store = store
        self.client = client
        self.interval = interval
        self._pass_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self.passes_completed = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def _chain_budget(self) -> float:
        # connect + configuration + transport info, each with its own timeout
        return self.client.control_timeout * 3 + 0.5

    # ------------------------------------------------------------------
    # Lifecycle

    def start(self) -> None:
        if self.running:
            return
        self._task = create_logged_task(
            run_periodically(self.interval, self.run_pass, immediate=True),
            logger=self.logger,
            context="StatusReconciler.loop",
        )
        self.logger.info("Status polling every %.1fs", self.interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        await cancel_and_wait(task)

    async def refresh_now(self) -> None:
        await self.run_pass()

    # ------------------------------------------------------------------
    # Reconciliation

    async def probe(self, address: str) -> DeviceStatus:
        """Run one recorder's chain. Never raises for network trouble."""
        if not address:
            return DeviceStatus(online=False, checked_at=now_ms())

        online = await self.client.check_online(address)
        checked_at = now_ms()
        if not online:
            return DeviceStatus(online=False, checked_at=checked_at)

        codec = await self.client.query_codec(address)
        transport = await self.client.query_transport_info(address)
        return DeviceStatus(online=True, checked_at=checked_at, codec=codec, transport=transport)

    async def _reconcile_one(self, recorder_id: str, address: str) -> None:
        try:
            status = await asyncio.wait_for(self.probe(address), self._chain_budget)
        except asyncio.TimeoutError:
            self.logger.warning("Status chain for %s exceeded %.1fs", recorder_id, self._chain_budget)
            status = DeviceStatus(online=False, checked_at=now_ms())

        previous = self.store.state.find_recorder(recorder_id)
        was_online = previous.online if previous is not None else None
        if self.store.apply_device_status(recorder_id, status) and was_online != status.online:
            self.logger.info("Recorder %s is %s", recorder_id, "online" if status.online else "offline")

    async def run_pass(self) -> None:
        async with self._pass_lock:
            targets: List[Tuple[str, str]] = [(r.id, r.address) for r in self.store.recorders]
            if targets:
                results = await asyncio.gather(
                    *(self._reconcile_one(recorder_id, address) for recorder_id, address in targets),
                    return_exceptions=True,
                )
                for (recorder_id, _), result in zip(targets, results):
                    if isinstance(result, Exception):
                        self.logger.error("Status refresh for %s failed", recorder_id, exc_info=result)
            self.passes_completed += 1
            self.store.mark_status_refreshed()
