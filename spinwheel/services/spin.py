"""
Spin service - main business logic orchestrator.
Coordinates state loading, the selection engine, the compare-and-swap
commit, reward dispatch and telemetry.
"""
import logging
import random
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple, TypeVar

from opentelemetry import trace

from spinwheel.config.settings import Settings, get_settings
from spinwheel.core.exceptions import (
    ConcurrentModificationError,
    FreeSpinCooldownError,
    TransientFailureError,
    ValidationError,
)
from spinwheel.models.interfaces import (
    CatalogRepository,
    SpinStateRepository,
    SpinTelemetrySink,
)
from spinwheel.models.schemas import (
    FreeSpinResponse,
    GrantStatus,
    OddsItem,
    OddsResponse,
    SpinOutcome,
    SpinResponse,
    SpinResult,
    SpinStateDelta,
    SpinTelemetryEvent,
    UserSpinState,
)
from spinwheel.services.dispatcher import RewardDispatcher
from spinwheel.services.engine import SpinEngine

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

T = TypeVar("T")

DeltaBuilder = Callable[[UserSpinState], Tuple[SpinStateDelta, T]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SpinService:
    """
    Main spin service.

    Responsibilities:
    - Per-user serialization of read -> compute -> commit (optimistic CAS)
    - Bounded retry with full recompute on conflicts
    - Post-commit, best-effort reward dispatch and telemetry
    - Spin inventory administration and the daily free spin
    """

    def __init__(
            self,
            state_repo: SpinStateRepository,
            catalog_repo: CatalogRepository,
            engine: SpinEngine,
            dispatcher: RewardDispatcher,
            telemetry_sink: Optional[SpinTelemetrySink] = None,
            rng: Optional[random.Random] = None,
            clock: Callable[[], datetime] = utc_now,
            settings: Optional[Settings] = None,
    ) -> None:
        """
        Initialize spin service with dependencies.

        Args:
            state_repo: Per-user spin state store
            catalog_repo: Reward catalog and rarity rules
            engine: Selection engine
            dispatcher: Reward dispatcher (post-commit)
            telemetry_sink: Optional sink for spin decision context
            rng: Source of uniform draws in [0, 1)
            clock: Time source
            settings: Application settings (defaults to global settings)
        """
        self._state_repo = state_repo
        self._catalog_repo = catalog_repo
        self._engine = engine
        self._dispatcher = dispatcher
        self._telemetry = telemetry_sink
        self._rng = rng or random.Random()
        self._clock = clock
        self._settings = settings or get_settings()

    # =========================================================================
    # Spin
    # =========================================================================

    async def spin(self, user_id: str, tier: str) -> SpinResponse:
        """
        Spin the wheel of a tier for a user.

        Raises:
            UnknownTierError: Tier not configured
            InvalidCatalogError: Catalog has no positive weight
            InsufficientSpinsError: No spin left on the tier
            TransientFailureError: Conflicting writers exhausted the retries
        """
        catalog = self._catalog_repo.tier_catalog(tier)

        def build(state: UserSpinState) -> Tuple[SpinStateDelta, SpinOutcome]:
            outcome = self._engine.spin(catalog, state, self._rng.random(), self._clock())
            return outcome.delta, outcome

        with tracer.start_as_current_span("spinwheel.spin") as span:
            span.set_attribute("spinwheel.tier", tier)
            before, committed, outcome = await self._commit_with_retry(user_id, "spin", build)
            span.set_attribute("spinwheel.reward_id", outcome.reward.id)
            span.set_attribute("spinwheel.was_pity", outcome.result.was_pity)

        result = outcome.result
        logger.info(
            f"Spin committed: user={user_id}, tier={tier}, reward={result.reward_id}, "
            f"pity={committed.pity_counter}, was_pity={result.was_pity}",
            extra={"user_id": user_id, "tier": tier, "spin_id": result.id},
        )

        # Outside the critical section: the outcome is already durable
        grant_status = await self._dispatch(user_id, outcome)
        self._record_telemetry(user_id, before, committed, outcome)

        return SpinResponse(
            spin_id=result.id,
            reward_id=result.reward_id,
            reward_label=result.reward_label,
            category=result.category,
            was_pity=result.was_pity,
            timestamp=result.timestamp,
            grant_status=grant_status,
            available_spins=committed.available_spins,
        )

    async def odds(self, user_id: str, tier: str) -> OddsResponse:
        """Current normalized probabilities for a user on a tier (no state change)."""
        catalog = self._catalog_repo.tier_catalog(tier)
        state = await self._state_repo.get(user_id)
        probabilities = self._engine.probabilities(catalog, state, self._clock())

        return OddsResponse(
            tier=tier,
            pity_counter=state.pity_counter,
            pity_active=self._engine.is_pity_active(state),
            items=[
                OddsItem(
                    reward_id=reward.id,
                    label=reward.label,
                    category=reward.category,
                    is_rare=catalog.is_rare(reward),
                    probability=probabilities[reward.id],
                )
                for reward in catalog.rewards
            ],
        )

    # =========================================================================
    # State Queries
    # =========================================================================

    async def get_state(self, user_id: str) -> UserSpinState:
        """Stored state with expired multipliers left out (they are pruned on the next commit)."""
        state = await self._state_repo.get(user_id)
        return state.model_copy(
            update={"adaptive_multipliers": state.active_multipliers(self._clock())}
        )

    async def get_history(self, user_id: str, limit: int = 10) -> List[SpinResult]:
        state = await self._state_repo.get(user_id)
        return state.spin_history[:limit]

    # =========================================================================
    # Inventory & Administration
    # =========================================================================

    async def add_spins(self, user_id: str, tier: str, count: int) -> UserSpinState:
        """Credit spins on a tier (admin action or purchase)."""
        self._catalog_repo.tier_catalog(tier)
        if count < 1:
            raise ValidationError("count must be positive", details={"count": count})

        def build(state: UserSpinState) -> Tuple[SpinStateDelta, None]:
            return SpinStateDelta(spins={tier: count}, as_of=self._clock()), None

        _, committed, _ = await self._commit_with_retry(user_id, "add_spins", build)
        logger.info(
            f"Added {count} {tier} spin(s) for user={user_id}",
            extra={"user_id": user_id, "tier": tier},
        )
        return committed

    async def claim_free_spin(self, user_id: str) -> FreeSpinResponse:
        """
        Claim the daily free spin.

        A claim within two cooldown windows of the previous one extends
        the streak; otherwise the streak restarts at 1.

        Raises:
            FreeSpinCooldownError: Previous claim is still within the cooldown
        """
        tier = self._settings.FREE_SPIN_TIER
        count = self._settings.FREE_SPIN_COUNT
        cooldown = timedelta(hours=self._settings.FREE_SPIN_COOLDOWN_HOURS)
        self._catalog_repo.tier_catalog(tier)

        def build(state: UserSpinState) -> Tuple[SpinStateDelta, int]:
            now = self._clock()
            last = state.last_free_spin_at
            if last is not None and now < last + cooldown:
                raise FreeSpinCooldownError(last + cooldown)

            streak = 1
            if last is not None and now < last + 2 * cooldown:
                streak = state.free_spin_streak + 1

            delta = SpinStateDelta(
                spins={tier: count},
                last_free_spin_at=now,
                free_spin_streak=streak,
                as_of=now,
            )
            return delta, streak

        _, committed, streak = await self._commit_with_retry(user_id, "claim_free_spin", build)
        logger.info(
            f"Free spin claimed: user={user_id}, streak={streak}",
            extra={"user_id": user_id, "tier": tier},
        )

        assert committed.last_free_spin_at is not None
        return FreeSpinResponse(
            tier=tier,
            spins_granted=count,
            streak=streak,
            next_available_at=committed.last_free_spin_at + cooldown,
            available_spins=committed.available_spins,
        )

    async def reset_state(self, user_id: str) -> UserSpinState:
        """Clear the pity counter and all adaptive multipliers."""

        def build(state: UserSpinState) -> Tuple[SpinStateDelta, None]:
            delta = SpinStateDelta(
                pity_counter=0,
                clear_multipliers=list(state.adaptive_multipliers),
                as_of=self._clock(),
            )
            return delta, None

        _, committed, _ = await self._commit_with_retry(user_id, "reset_state", build)
        logger.info(f"Spin state reset for user={user_id}", extra={"user_id": user_id})
        return committed

    async def retry_pending_grants(self) -> Tuple[int, int]:
        return await self._dispatcher.retry_pending()

    # =========================================================================
    # Internals
    # =========================================================================

    async def _commit_with_retry(
            self,
            user_id: str,
            operation: str,
            build: DeltaBuilder,
    ) -> Tuple[UserSpinState, UserSpinState, T]:
        """
        Read, compute and compare-and-swap commit, recomputing from a fresh
        read on every conflict.

        Returns:
            Tuple of (state_read, state_committed, builder_extra)
        """
        attempts = max(1, self._settings.SPIN_MAX_RETRIES)
        for attempt in range(1, attempts + 1):
            state = await self._state_repo.get(user_id)
            delta, extra = build(state)
            try:
                committed = await self._state_repo.commit(user_id, delta, state.version)
            except ConcurrentModificationError:
                logger.info(
                    f"{operation} conflict for user={user_id}, attempt {attempt}/{attempts}",
                    extra={"user_id": user_id},
                )
                continue
            return state, committed, extra

        logger.warning(f"{operation} gave up for user={user_id} after {attempts} attempts")
        raise TransientFailureError(operation, attempts)

    async def _dispatch(self, user_id: str, outcome: SpinOutcome) -> GrantStatus:
        try:
            record = await self._dispatcher.dispatch(user_id, outcome.result, outcome.reward)
        except Exception:
            # The spin is committed; the grant is recovered out-of-band
            logger.exception(
                f"Dispatcher failed for spin={outcome.result.id}",
                extra={"user_id": user_id, "spin_id": outcome.result.id},
            )
            return GrantStatus.PENDING
        return record.status

    def _record_telemetry(
            self,
            user_id: str,
            before: UserSpinState,
            committed: UserSpinState,
            outcome: SpinOutcome,
    ) -> None:
        if self._telemetry is None:
            return

        result = outcome.result
        multipliers: Dict[str, float] = {
            category: entry.multiplier
            for category, entry in before.active_multipliers(result.timestamp).items()
        }
        try:
            self._telemetry.record(
                SpinTelemetryEvent(
                    user_id=user_id,
                    spin_id=result.id,
                    tier=result.tier,
                    reward_id=result.reward_id,
                    category=result.category,
                    rarity_flag=outcome.delta.pity_counter == 0,
                    was_pity=result.was_pity,
                    pity_counter_before=before.pity_counter,
                    multipliers=multipliers,
                    adjusted_weights=outcome.decision.adjusted_weights,
                    probabilities=outcome.decision.probabilities,
                    draw=outcome.decision.draw,
                    inventory_snapshot=committed.available_spins,
                    timestamp=result.timestamp,
                )
            )
        except Exception as e:
            logger.warning(f"Telemetry dropped for spin={result.id}: {e}")
