"""
Pytest configuration and fixtures.
"""
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from spinwheel.api.dependencies import get_catalog_repository, get_spin_service
from spinwheel.main import app
from spinwheel.repositories.catalog import InMemoryCatalogRepository
from spinwheel.repositories.memory import (
    InMemoryGrantBackend,
    InMemoryPendingGrantRepository,
    InMemorySpinStateRepository,
)
from spinwheel.services.dispatcher import RewardDispatcher
from spinwheel.services.engine import SpinEngine
from spinwheel.services.spin import SpinService


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class ScriptedRandom:
    """Returns queued draws, then a fixed default."""

    def __init__(self, draws: Optional[List[float]] = None, default: float = 0.0) -> None:
        self.draws = list(draws or [])
        self.default = default

    def random(self) -> float:
        if self.draws:
            return self.draws.pop(0)
        return self.default


DEFAULT_SPINS = {"rookie": 1, "pro": 1, "elite": 1}


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def rng():
    return ScriptedRandom()


@pytest.fixture
def catalog_repo():
    """Fixture for the built-in catalog."""
    return InMemoryCatalogRepository()


@pytest.fixture
def state_repo(clock):
    """Fixture for in-memory spin state."""
    return InMemorySpinStateRepository(
        default_spins=DEFAULT_SPINS,
        history_limit=10,
        clock=clock,
    )


@pytest.fixture
def grant_backend():
    return InMemoryGrantBackend()


@pytest.fixture
def pending_repo():
    return InMemoryPendingGrantRepository()


@pytest.fixture
def engine():
    return SpinEngine(pity_threshold=10, pity_multiplier=1.5)


@pytest.fixture
def dispatcher(grant_backend, pending_repo, clock):
    return RewardDispatcher(
        grant_backend=grant_backend,
        pending_repo=pending_repo,
        timeout_ms=500,
        clock=clock,
    )


@pytest.fixture
def telemetry_sink():
    return MagicMock()


@pytest.fixture
def spin_service(state_repo, catalog_repo, engine, dispatcher, telemetry_sink, rng, clock):
    """Spin service wired to in-memory collaborators and a scripted RNG."""
    return SpinService(
        state_repo=state_repo,
        catalog_repo=catalog_repo,
        engine=engine,
        dispatcher=dispatcher,
        telemetry_sink=telemetry_sink,
        rng=rng,
        clock=clock,
    )


@pytest.fixture
def rookie(catalog_repo):
    return catalog_repo.tier_catalog("rookie")


@pytest.fixture
def test_client(spin_service, catalog_repo):
    """
    TestClient fixture with dependency overrides.
    Uses in-memory repositories for isolation.
    """
    app.dependency_overrides[get_spin_service] = lambda: spin_service
    app.dependency_overrides[get_catalog_repository] = lambda: catalog_repo

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def build_service(catalog_repo, engine, dispatcher, clock):
    """Factory for a spin service over a custom state repository."""

    def _build(state_repo, **kwargs) -> SpinService:
        kwargs.setdefault("rng", ScriptedRandom())
        kwargs.setdefault("dispatcher", dispatcher)
        return SpinService(
            state_repo=state_repo,
            catalog_repo=catalog_repo,
            engine=engine,
            clock=clock,
            **kwargs,
        )

    return _build
