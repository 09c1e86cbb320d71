"""Unit test fixtures for isolated, fast test execution.

Provides:
- Isolated state directory (DECKPILOT_STATE_DIR points into tmp_path)
- Store and recorder factories
- Fake deck servers and clients
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import pytest
import pytest_asyncio

from deckpilot.core.shutdown_coordinator import reset_shutdown_coordinator
from deckpilot.core.state_store import StateStore
from tests.infrastructure.mocks.deck_mocks import FakeDeck, FakeDeckClient


# =============================================================================
# Isolated Environment Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_state_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep every test away from the real ~/.deckpilot."""
    state_dir = tmp_path / "deckpilot-home"
    monkeypatch.setenv("DECKPILOT_STATE_DIR", str(state_dir))
    monkeypatch.setattr("deckpilot.core.paths.USER_STATE_DIR", state_dir)
    monkeypatch.setattr("deckpilot.core.deckpilot_system.USER_STATE_DIR", state_dir)
    return state_dir


@pytest.fixture(autouse=True)
def fresh_shutdown_coordinator():
    reset_shutdown_coordinator()
    yield
    reset_shutdown_coordinator()


# =============================================================================
# Store Fixtures
# =============================================================================

@pytest.fixture
def store() -> StateStore:
    return StateStore()


@pytest.fixture
def add_recorder(store: StateStore) -> Callable[..., Any]:
    """Factory adding a recorder to ``store``."""
    def _add(name: str = "HYPER-1", address: str = "", **fields: Any):
        return store.add_recorder(name, address, **fields)
    return _add


# =============================================================================
# Deck Fixtures
# =============================================================================

@pytest_asyncio.fixture
async def fake_deck():
    """Factory starting scripted deck servers; all are stopped afterwards."""
    decks = []

    async def _start(replies=None, **kwargs) -> FakeDeck:
        deck = await FakeDeck(replies, **kwargs).start()
        decks.append(deck)
        return deck

    yield _start

    for deck in decks:
        await deck.stop()


@pytest.fixture
def fake_client() -> FakeDeckClient:
    return FakeDeckClient(online={"10.0.0.1"})
