"""Pytest fixtures for API unit tests.

The API runs against a real DeckPilotSystem whose decks are faked, so the
routes, the controller and the error middleware are exercised together.
"""

from __future__ import annotations

from typing import AsyncIterator

import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from deckpilot.core.api.controller import APIController
from deckpilot.core.api.server import APIServer
from deckpilot.core.deckpilot_system import DeckPilotSystem
from tests.infrastructure.mocks.deck_mocks import FakeDeckClient


ONLINE_ADDRESS = "10.0.0.1"


@pytest_asyncio.fixture
async def deck_client() -> FakeDeckClient:
    return FakeDeckClient(online={ONLINE_ADDRESS})


@pytest_asyncio.fixture
async def system(state_file, deck_client) -> AsyncIterator[DeckPilotSystem]:
    system = DeckPilotSystem(state_file, deck_client=deck_client)
    await system.async_init()
    yield system
    await system.stop()


@pytest_asyncio.fixture
async def client(system) -> AsyncIterator[TestClient]:
    app = APIServer(APIController(system)).create_app()
    async with TestClient(TestServer(app)) as client:
        yield client


@pytest_asyncio.fixture
async def recorder_id(client) -> str:
    resp = await client.post("/api/v1/recorders", json={"name": "HYPER-1", "ipAddress": ONLINE_ADDRESS})
    assert resp.status == 201
    return (await resp.json())["id"]
