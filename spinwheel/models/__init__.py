"""Models package - domain entities and interfaces."""
from .interfaces import (
    CatalogRepository,
    PendingGrantRepository,
    RewardGrantBackend,
    SpinStateRepository,
    SpinTelemetrySink,
)
from .schemas import (
    AdaptiveMultiplier,
    AdaptiveRule,
    ErrorResponse,
    GrantRecord,
    GrantStatus,
    RewardCategory,
    RewardDefinition,
    SpinDecision,
    SpinOutcome,
    SpinResponse,
    SpinResult,
    SpinStateDelta,
    SpinTelemetryEvent,
    TierCatalog,
    UserSpinState,
)

__all__ = [
    # Interfaces
    "CatalogRepository",
    "PendingGrantRepository",
    "RewardGrantBackend",
    "SpinStateRepository",
    "SpinTelemetrySink",
    # Schemas
    "AdaptiveMultiplier",
    "AdaptiveRule",
    "ErrorResponse",
    "GrantRecord",
    "GrantStatus",
    "RewardCategory",
    "RewardDefinition",
    "SpinDecision",
    "SpinOutcome",
    "SpinResponse",
    "SpinResult",
    "SpinStateDelta",
    "SpinTelemetryEvent",
    "TierCatalog",
    "UserSpinState",
]
