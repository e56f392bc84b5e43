"""Shared fixtures: in-memory database, zero-latency network, app state."""
from typing import List, Optional

import pytest

from socialvox.config import Settings
from socialvox.database import build_engine, build_session_factory, create_db_and_tables
from socialvox.network import ConnectivityMonitor, SimulatedNetwork
from socialvox.schemas import Question, QuestionType
from socialvox.state import AppState
from socialvox.store import EntityStore
from socialvox.uplink import DatabaseUplink

MEMORY_URL = "sqlite+aiosqlite:///:memory:"


def make_settings(**overrides) -> Settings:
    values = dict(
        database_url=MEMORY_URL,
        network_min_delay_ms=0,
        network_max_delay_ms=0,
        sync_debounce_seconds=0.0,
        sync_cooldown_seconds=0.0,
        recording_tick_seconds=None,
        seed_demo_data=True,
    )
    values.update(overrides)
    return Settings(**values)


def mc(text: str, options: List[str], qid: Optional[str] = None, **extra) -> Question:
    kwargs = dict(text=text, type=QuestionType.MULTIPLE_CHOICE, options=options, **extra)
    if qid is not None:
        kwargs["id"] = qid
    return Question(**kwargs)


def free(text: str, qid: Optional[str] = None, **extra) -> Question:
    kwargs = dict(text=text, type=QuestionType.FREE_TEXT, **extra)
    if qid is not None:
        kwargs["id"] = qid
    return Question(**kwargs)


@pytest.fixture
async def engine():
    engine = build_engine(MEMORY_URL)
    await create_db_and_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def network():
    return SimulatedNetwork.instant()


@pytest.fixture
def connectivity():
    return ConnectivityMonitor(online=True)


@pytest.fixture
def uplink(session_factory):
    return DatabaseUplink(session_factory)


@pytest.fixture
def store(network, connectivity, uplink):
    return EntityStore(network, connectivity, uplink)


@pytest.fixture
async def app_state():
    state = await AppState.create(make_settings(), network=SimulatedNetwork.instant())
    yield state
    await state.close()
