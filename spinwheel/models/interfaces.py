"""
Repository and boundary interfaces (abstractions).
Using Protocol for structural subtyping (duck typing with type hints).
These define the contracts that storage, grant and telemetry
implementations must follow.
"""
from typing import List, Optional, Protocol, Set, runtime_checkable

from spinwheel.models.schemas import (
    AdaptiveRule,
    GrantRecord,
    RewardDefinition,
    SpinStateDelta,
    SpinTelemetryEvent,
    TierCatalog,
    UserSpinState,
)


@runtime_checkable
class CatalogRepository(Protocol):
    """
    Interface for the reward catalog and rarity rules.
    Production: admin-edited configuration document.
    Testing: built-in default catalogs.
    """

    def tiers(self) -> List[str]:
        """Configured tier identifiers, in configuration order."""
        ...

    def catalog(self, tier: str) -> List[RewardDefinition]:
        """
        Ordered reward definitions of a tier.

        Raises:
            UnknownTierError: If the tier is not configured
        """
        ...

    def rare_categories(self, tier: str) -> Set[str]:
        """
        Labels (categories or reward ids) that are pity-eligible on a tier.

        Raises:
            UnknownTierError: If the tier is not configured
        """
        ...

    def adaptive_rule(self, category: str) -> Optional[AdaptiveRule]:
        """Static suppression rule for a category, if any."""
        ...

    def tier_catalog(self, tier: str) -> TierCatalog:
        """
        Bundle of catalog, rare set and adaptive rules for the engine.

        Raises:
            UnknownTierError: If the tier is not configured
        """
        ...


@runtime_checkable
class SpinStateRepository(Protocol):
    """
    Interface for per-user spin state storage.
    Production: a row per user with a version column (compare-and-swap).
    Testing: In-memory implementation.
    """

    async def get(self, user_id: str) -> UserSpinState:
        """
        Load a user's state.

        Returns:
            Stored state, or a fresh default (version 0, not persisted)
        """
        ...

    async def commit(
        self,
        user_id: str,
        delta: SpinStateDelta,
        expected_version: int,
    ) -> UserSpinState:
        """
        Atomically apply a delta if the stored version still matches.

        Returns:
            The committed state

        Raises:
            ConcurrentModificationError: If the state changed since it was read
            InsufficientSpinsError: If the delta would overdraw an inventory
        """
        ...


@runtime_checkable
class RewardGrantBackend(Protocol):
    """
    Services that actually fulfil a reward.
    Every call carries an idempotency key (the spin id); repeating a call
    with the same key must not grant twice.
    """

    async def issue_ticket(
        self, user_id: str, ticket_tier: str, count: int, idempotency_key: str
    ) -> None:
        ...

    async def add_xp(self, user_id: str, amount: int, idempotency_key: str) -> None:
        ...

    async def extend_premium(self, user_id: str, days: int, idempotency_key: str) -> None:
        ...

    async def credit_coins(
        self, user_id: str, amount: int, reason: str, idempotency_key: str
    ) -> None:
        ...


@runtime_checkable
class PendingGrantRepository(Protocol):
    """Ledger of grant records awaiting an out-of-band retry."""

    async def save(self, record: GrantRecord) -> None:
        ...

    async def list_pending(self) -> List[GrantRecord]:
        ...

    async def get(self, spin_id: str) -> Optional[GrantRecord]:
        ...


@runtime_checkable
class SpinTelemetrySink(Protocol):
    """Receives the full decision context of each committed spin."""

    def record(self, event: SpinTelemetryEvent) -> None:
        ...
