"""
Spin selection engine.
Pure weighted-random selection with pity boost and adaptive suppression.
No I/O: the caller supplies the state, the catalog, the draw and the clock.
"""
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from spinwheel.core.exceptions import InsufficientSpinsError, InvalidCatalogError
from spinwheel.models.schemas import (
    AdaptiveMultiplier,
    ExtraSpinPayload,
    RewardCategory,
    RewardDefinition,
    SpinDecision,
    SpinOutcome,
    SpinResult,
    SpinStateDelta,
    TierCatalog,
    UserSpinState,
)

logger = logging.getLogger(__name__)

EXTRA_SPIN = RewardCategory.EXTRA_SPIN.value
EXTRA_SPIN_STREAK_MULTIPLIER = 0.6


# =============================================================================
# Weight Modifiers (Strategy Pattern)
# =============================================================================


class WeightModifier(ABC):
    """Abstract base class for per-reward weight factors."""

    @abstractmethod
    def factor(
        self,
        reward: RewardDefinition,
        catalog: TierCatalog,
        multipliers: Dict[str, AdaptiveMultiplier],
        pity_active: bool,
    ) -> Tuple[float, str]:
        """
        Calculate the multiplicative factor for one reward.

        Returns:
            Tuple of (factor, modifier_name)
        """
        pass


class AdaptiveSuppression(WeightModifier):
    """Dampen categories the user won recently."""

    def factor(
        self,
        reward: RewardDefinition,
        catalog: TierCatalog,
        multipliers: Dict[str, AdaptiveMultiplier],
        pity_active: bool,
    ) -> Tuple[float, str]:
        entry = multipliers.get(reward.category)
        return (entry.multiplier if entry else 1.0), "adaptive"


class PityBoost(WeightModifier):
    """Boost rare rewards while the pity timer is active."""

    def __init__(self, multiplier: float) -> None:
        self._multiplier = multiplier

    def factor(
        self,
        reward: RewardDefinition,
        catalog: TierCatalog,
        multipliers: Dict[str, AdaptiveMultiplier],
        pity_active: bool,
    ) -> Tuple[float, str]:
        if pity_active and catalog.is_rare(reward):
            return self._multiplier, "pity"
        return 1.0, "pity"


# =============================================================================
# Spin Engine
# =============================================================================


class SpinEngine:
    """
    Decides what a spin yields and how the user's odds evolve.

    Selection is deterministic for a given draw in [0, 1): catalog order
    is the canonical order, so boundary ties resolve to the earlier reward.
    """

    def __init__(
        self,
        pity_threshold: int = 10,
        pity_multiplier: float = 1.5,
        modifiers: Optional[List[WeightModifier]] = None,
    ) -> None:
        self._pity_threshold = pity_threshold
        self._pity_multiplier = pity_multiplier
        self._modifiers = modifiers or [
            AdaptiveSuppression(),
            PityBoost(pity_multiplier),
        ]

    def is_pity_active(self, state: UserSpinState) -> bool:
        return state.pity_counter >= self._pity_threshold

    def adjusted_weights(
        self,
        catalog: TierCatalog,
        state: UserSpinState,
        now: datetime,
    ) -> Dict[str, float]:
        """Base weight times every modifier factor, in catalog order."""
        pity_active = self.is_pity_active(state)
        multipliers = state.active_multipliers(now)

        weights: Dict[str, float] = {}
        for reward in catalog.rewards:
            weight = reward.base_weight
            for modifier in self._modifiers:
                factor, _ = modifier.factor(reward, catalog, multipliers, pity_active)
                weight *= factor
            weights[reward.id] = weight
        return weights

    def probabilities(
        self,
        catalog: TierCatalog,
        state: UserSpinState,
        now: datetime,
    ) -> Dict[str, float]:
        """Adjusted weights renormalized to sum to 1."""
        weights = self.adjusted_weights(catalog, state, now)
        total = self._total(catalog, weights)
        return {reward_id: weight / total for reward_id, weight in weights.items()}

    def select(
        self,
        catalog: TierCatalog,
        weights: Dict[str, float],
        draw: float,
    ) -> RewardDefinition:
        """Pick the first reward whose cumulative boundary exceeds the draw."""
        if not 0.0 <= draw < 1.0:
            raise ValueError(f"draw must be in [0, 1), got {draw}")

        total = self._total(catalog, weights)
        running = 0.0
        for reward in catalog.rewards:
            running += weights[reward.id]
            if running / total > draw:
                return reward

        # Rounding left the last boundary just under the draw
        return catalog.rewards[-1]

    def spin(
        self,
        catalog: TierCatalog,
        state: UserSpinState,
        draw: float,
        now: datetime,
    ) -> SpinOutcome:
        """
        Compute the outcome of one spin on catalog.tier.

        Args:
            catalog: Tier bundle (rewards, rare set, adaptive rules)
            state: User state as read from the store
            draw: Uniform random number in [0, 1)
            now: Current time, used for expiry checks and new expiries

        Returns:
            SpinOutcome with the chosen reward and the delta to commit

        Raises:
            InsufficientSpinsError: No spin available on the tier
            InvalidCatalogError: Adjusted weights do not sum to > 0
        """
        tier = catalog.tier
        available = state.spins_for(tier)
        if available < 1:
            raise InsufficientSpinsError(tier, available)

        pity_active = self.is_pity_active(state)
        weights = self.adjusted_weights(catalog, state, now)
        total = self._total(catalog, weights)
        reward = self.select(catalog, weights, draw)
        is_rare = catalog.is_rare(reward)

        set_multipliers, clear_multipliers = self._multiplier_updates(
            reward, catalog, state, now
        )

        spins: Dict[str, int] = {}
        if isinstance(reward.payload, ExtraSpinPayload):
            target = reward.payload.tier or tier
            spins[target] = spins.get(target, 0) + 1

        result = SpinResult(
            id=uuid.uuid4().hex,
            tier=tier,
            reward_id=reward.id,
            reward_label=reward.label,
            category=reward.category,
            timestamp=now,
            was_pity=pity_active,
        )

        delta = SpinStateDelta(
            consume_tier=tier,
            spins=spins,
            pity_counter=0 if is_rare else state.pity_counter + 1,
            set_multipliers=set_multipliers,
            clear_multipliers=clear_multipliers,
            result=result,
            as_of=now,
        )

        decision = SpinDecision(
            pity_active=pity_active,
            draw=draw,
            total_weight=total,
            adjusted_weights=weights,
            probabilities={reward_id: w / total for reward_id, w in weights.items()},
        )

        logger.debug(
            f"Spin on {tier}: draw={draw:.6f} -> {reward.id} "
            f"(rare={is_rare}, pity_active={pity_active})"
        )

        return SpinOutcome(reward=reward, delta=delta, decision=decision)

    def _multiplier_updates(
        self,
        reward: RewardDefinition,
        catalog: TierCatalog,
        state: UserSpinState,
        now: datetime,
    ) -> Tuple[Dict[str, AdaptiveMultiplier], List[str]]:
        """Adaptive entries to set and to clear after winning `reward`."""
        set_multipliers: Dict[str, AdaptiveMultiplier] = {}
        clear_multipliers: List[str] = []

        rule = catalog.adaptive_rule(reward.category)
        if rule is not None:
            set_multipliers[reward.category] = AdaptiveMultiplier(
                multiplier=rule.multiplier,
                expires_at=now + timedelta(days=rule.duration_days),
            )

        if reward.category == EXTRA_SPIN:
            if self._extends_extra_spin_streak(state):
                set_multipliers[EXTRA_SPIN] = AdaptiveMultiplier(
                    multiplier=EXTRA_SPIN_STREAK_MULTIPLIER,
                    expires_at=None,
                )
        elif EXTRA_SPIN in state.adaptive_multipliers:
            clear_multipliers.append(EXTRA_SPIN)

        return set_multipliers, clear_multipliers

    @staticmethod
    def _extends_extra_spin_streak(state: UserSpinState) -> bool:
        """Previous spin was also an extra spin."""
        last = state.last_spin
        return last is not None and last.category == EXTRA_SPIN

    @staticmethod
    def _total(catalog: TierCatalog, weights: Dict[str, float]) -> float:
        total = sum(weights.values())
        if total <= 0:
            logger.error(f"Catalog for tier={catalog.tier} has no positive weight")
            raise InvalidCatalogError("adjusted weights sum to zero", tier=catalog.tier)
        return total
