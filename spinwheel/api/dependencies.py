"""
Dependency injection container.
Creates and wires all application components.
Uses FastAPI's dependency injection system.
"""
import logging
from functools import lru_cache

from spinwheel.config import get_settings
from spinwheel.core.circuit_breaker import CircuitBreaker
from spinwheel.core.telemetry import LoggingSpinTelemetrySink
from spinwheel.repositories.catalog import InMemoryCatalogRepository
from spinwheel.repositories.memory import (
    InMemoryGrantBackend,
    InMemoryPendingGrantRepository,
    InMemorySpinStateRepository,
)
from spinwheel.services.dispatcher import RewardDispatcher
from spinwheel.services.engine import SpinEngine
from spinwheel.services.spin import SpinService

logger = logging.getLogger(__name__)


# =============================================================================
# Singleton Instances (Application Lifetime)
# =============================================================================


@lru_cache()
def get_catalog_repository() -> InMemoryCatalogRepository:
    """Get singleton catalog repository (built-in or loaded from CATALOG_PATH)."""
    settings = get_settings()
    if settings.CATALOG_PATH:
        logger.info(f"Loading reward catalog from {settings.CATALOG_PATH}")
        return InMemoryCatalogRepository.from_file(settings.CATALOG_PATH)
    return InMemoryCatalogRepository()


@lru_cache()
def get_spin_state_repository() -> InMemorySpinStateRepository:
    """Get singleton spin state repository."""
    settings = get_settings()
    return InMemorySpinStateRepository(
        default_spins=settings.DEFAULT_AVAILABLE_SPINS,
        history_limit=settings.SPIN_HISTORY_LIMIT,
    )


@lru_cache()
def get_grant_backend() -> InMemoryGrantBackend:
    """Get singleton grant backend."""
    return InMemoryGrantBackend()


@lru_cache()
def get_pending_grant_repository() -> InMemoryPendingGrantRepository:
    """Get singleton pending grant repository."""
    return InMemoryPendingGrantRepository()


@lru_cache()
def get_spin_engine() -> SpinEngine:
    """Get singleton spin engine."""
    settings = get_settings()
    return SpinEngine(
        pity_threshold=settings.PITY_THRESHOLD,
        pity_multiplier=settings.PITY_MULTIPLIER,
    )


@lru_cache()
def get_grant_circuit_breaker() -> CircuitBreaker:
    """Get singleton circuit breaker for the grant backend."""
    settings = get_settings()
    return CircuitBreaker(
        name="grant_backend",
        failure_threshold=settings.CIRCUIT_BREAKER_FAILURE_THRESHOLD,
        recovery_timeout_sec=settings.CIRCUIT_BREAKER_RECOVERY_TIMEOUT_SEC,
    )


@lru_cache()
def get_telemetry_sink() -> LoggingSpinTelemetrySink:
    """Get singleton spin telemetry sink."""
    return LoggingSpinTelemetrySink()


# =============================================================================
# Request-Scoped Dependencies (Per-Request Lifetime)
# =============================================================================


def get_reward_dispatcher() -> RewardDispatcher:
    """Get reward dispatcher wired to the shared backend and breaker."""
    return RewardDispatcher(
        grant_backend=get_grant_backend(),
        pending_repo=get_pending_grant_repository(),
        circuit_breaker=get_grant_circuit_breaker(),
        timeout_ms=get_settings().GRANT_TIMEOUT_MS,
    )


def get_spin_service() -> SpinService:
    """
    Get spin service with all dependencies wired.
    This is the main entry point for the spin endpoints.
    """
    return SpinService(
        state_repo=get_spin_state_repository(),
        catalog_repo=get_catalog_repository(),
        engine=get_spin_engine(),
        dispatcher=get_reward_dispatcher(),
        telemetry_sink=get_telemetry_sink(),
    )


# =============================================================================
# Cleanup Functions
# =============================================================================


def clear_caches() -> None:
    """Clear all cached singleton instances (for testing)."""
    get_catalog_repository.cache_clear()
    get_spin_state_repository.cache_clear()
    get_grant_backend.cache_clear()
    get_pending_grant_repository.cache_clear()
    get_spin_engine.cache_clear()
    get_grant_circuit_breaker.cache_clear()
    get_telemetry_sink.cache_clear()
