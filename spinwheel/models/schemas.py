"""
Domain models using Pydantic.
All data structures for the spin wheel reward engine.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Catalog Models (Configuration)
# =============================================================================


class RewardCategory(str, Enum):
    """Typed reward categories, decoded once at catalog load time."""

    TICKET = "ticket"
    EXTRA_SPIN = "extra_spin"
    MASTERPASS = "masterpass"
    XP = "xp"
    PREMIUM = "premium"
    GIFT_CARD = "gift_card"


class TicketPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["ticket"] = "ticket"
    ticket_tier: str = Field(..., description="Tournament tier of the ticket")
    count: int = Field(default=1, ge=1)


class XpPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["xp"] = "xp"
    amount: int = Field(..., gt=0)


class PremiumPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["premium"] = "premium"
    days: int = Field(..., gt=0)


class CoinPayload(BaseModel):
    """Coin credit; masterpass and gift card wins are fulfilled this way."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["coins"] = "coins"
    amount: int = Field(..., gt=0)
    reason: str = Field(default="spin_wheel")


class ExtraSpinPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["extra_spin"] = "extra_spin"
    tier: Optional[str] = Field(
        default=None,
        description="Tier credited with the extra spin (None = tier being spun)",
    )


RewardPayload = Annotated[
    Union[TicketPayload, XpPayload, PremiumPayload, CoinPayload, ExtraSpinPayload],
    Field(discriminator="kind"),
]


class RewardDefinition(BaseModel):
    """Single wheel segment. Immutable once the catalog is loaded."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    id: str = Field(..., min_length=1, description="Reward identifier")
    label: str = Field(..., description="Display label")
    category: RewardCategory
    base_weight: float = Field(..., gt=0, description="Relative weight, renormalized per spin")
    payload: RewardPayload


class AdaptiveRule(BaseModel):
    """Suppression applied to a category right after it is won."""

    model_config = ConfigDict(frozen=True)

    multiplier: float = Field(..., gt=0, le=1)
    duration_days: int = Field(..., gt=0)


class TierCatalog(BaseModel):
    """Everything the engine needs to know about one tier."""

    model_config = ConfigDict(frozen=True)

    tier: str
    rewards: List[RewardDefinition] = Field(default_factory=list)
    rare_labels: Set[str] = Field(
        default_factory=set,
        description="Category labels or reward ids eligible for pity",
    )
    adaptive_rules: Dict[str, AdaptiveRule] = Field(default_factory=dict)

    def is_rare(self, reward: RewardDefinition) -> bool:
        """Rarity matches a whole category or one specific definition id."""
        return reward.category in self.rare_labels or reward.id in self.rare_labels

    def adaptive_rule(self, category: str) -> Optional[AdaptiveRule]:
        return self.adaptive_rules.get(category)

    def reward(self, reward_id: str) -> Optional[RewardDefinition]:
        for reward in self.rewards:
            if reward.id == reward_id:
                return reward
        return None


# =============================================================================
# User Spin State (Per-User, Mutable via Deltas)
# =============================================================================


class AdaptiveMultiplier(BaseModel):
    """Odds suppression for one category; no expiry means manual clear only."""

    multiplier: float = Field(..., gt=0, le=1)
    expires_at: Optional[datetime] = None

    def is_active(self, now: datetime) -> bool:
        return self.expires_at is None or now <= self.expires_at


class SpinResult(BaseModel):
    """Immutable record of one committed spin."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Spin identifier, grant idempotency key")
    tier: str
    reward_id: str
    reward_label: str
    category: str
    timestamp: datetime
    was_pity: bool = False


class UserSpinState(BaseModel):
    """
    Per-user economy state.
    Only ever changed by committing a SpinStateDelta.
    """

    user_id: str
    pity_counter: int = Field(default=0, ge=0)
    adaptive_multipliers: Dict[str, AdaptiveMultiplier] = Field(default_factory=dict)
    available_spins: Dict[str, int] = Field(default_factory=dict)
    spin_history: List[SpinResult] = Field(
        default_factory=list,
        description="Most recent spins, newest first",
    )
    last_free_spin_at: Optional[datetime] = None
    free_spin_streak: int = Field(default=0, ge=0)
    version: int = Field(default=0, ge=0, description="0 until first commit")
    updated_at: Optional[datetime] = None

    def spins_for(self, tier: str) -> int:
        return self.available_spins.get(tier, 0)

    def active_multipliers(self, now: datetime) -> Dict[str, AdaptiveMultiplier]:
        """Entries past their expiry are logically absent."""
        return {
            category: entry
            for category, entry in self.adaptive_multipliers.items()
            if entry.is_active(now)
        }

    @property
    def last_spin(self) -> Optional[SpinResult]:
        return self.spin_history[0] if self.spin_history else None


class SpinStateDelta(BaseModel):
    """
    Change set produced by the engine (or an admin operation) and applied
    atomically by the state repository.
    """

    consume_tier: Optional[str] = Field(
        default=None,
        description="Tier whose inventory must be >= 1 and is decremented",
    )
    spins: Dict[str, int] = Field(
        default_factory=dict,
        description="Additional inventory changes per tier",
    )
    pity_counter: Optional[int] = Field(default=None, ge=0)
    set_multipliers: Dict[str, AdaptiveMultiplier] = Field(default_factory=dict)
    clear_multipliers: List[str] = Field(default_factory=list)
    result: Optional[SpinResult] = None
    last_free_spin_at: Optional[datetime] = None
    free_spin_streak: Optional[int] = Field(default=None, ge=0)
    as_of: Optional[datetime] = Field(
        default=None,
        description="Time the delta was computed at, used for expiry pruning",
    )

    def apply(
        self,
        state: UserSpinState,
        now: datetime,
        history_limit: int,
    ) -> UserSpinState:
        """
        Return the post-commit state. Raises ValueError when the delta
        would drive an inventory negative.
        """
        spins = dict(state.available_spins)
        if self.consume_tier is not None:
            if spins.get(self.consume_tier, 0) < 1:
                raise ValueError(f"no {self.consume_tier} spin to consume")
            spins[self.consume_tier] = spins.get(self.consume_tier, 0) - 1
        for tier, change in self.spins.items():
            spins[tier] = spins.get(tier, 0) + change
            if spins[tier] < 0:
                raise ValueError(f"{tier} inventory would go negative")

        multipliers = state.active_multipliers(now)
        for category in self.clear_multipliers:
            multipliers.pop(category, None)
        multipliers.update(self.set_multipliers)

        history = list(state.spin_history)
        if self.result is not None:
            history.insert(0, self.result)
        history = history[:history_limit]

        return state.model_copy(
            update={
                "pity_counter": (
                    self.pity_counter if self.pity_counter is not None else state.pity_counter
                ),
                "adaptive_multipliers": multipliers,
                "available_spins": spins,
                "spin_history": history,
                "last_free_spin_at": self.last_free_spin_at or state.last_free_spin_at,
                "free_spin_streak": (
                    self.free_spin_streak
                    if self.free_spin_streak is not None
                    else state.free_spin_streak
                ),
                "version": state.version + 1,
                "updated_at": now,
            },
            deep=True,
        )


# =============================================================================
# Engine Output (Internal)
# =============================================================================


class SpinDecision(BaseModel):
    """Full decision context of one spin, kept for telemetry/audit."""

    pity_active: bool
    draw: float
    total_weight: float
    adjusted_weights: Dict[str, float] = Field(default_factory=dict)
    probabilities: Dict[str, float] = Field(default_factory=dict)


class SpinOutcome(BaseModel):
    """Chosen reward plus the state delta that must be committed."""

    reward: RewardDefinition
    delta: SpinStateDelta
    decision: SpinDecision

    @property
    def result(self) -> SpinResult:
        assert self.delta.result is not None
        return self.delta.result


# =============================================================================
# Grants & Telemetry (Boundaries)
# =============================================================================


class GrantStatus(str, Enum):
    GRANTED = "granted"
    PENDING = "pending"
    INVENTORY = "inventory"  # Extra spin, already part of the state commit


class GrantRecord(BaseModel):
    """Dispatcher ledger entry, one per committed spin."""

    spin_id: str
    user_id: str
    reward_id: str
    payload: RewardPayload
    status: GrantStatus
    attempts: int = 0
    last_error: Optional[str] = None
    updated_at: Optional[datetime] = None


class SpinTelemetryEvent(BaseModel):
    """Inputs and outputs of one spin, for offline balancing."""

    user_id: str
    spin_id: str
    tier: str
    reward_id: str
    category: str
    rarity_flag: bool
    was_pity: bool
    pity_counter_before: int
    multipliers: Dict[str, float] = Field(default_factory=dict)
    adjusted_weights: Dict[str, float] = Field(default_factory=dict)
    probabilities: Dict[str, float] = Field(default_factory=dict)
    draw: float
    inventory_snapshot: Dict[str, int] = Field(default_factory=dict)
    timestamp: datetime


# =============================================================================
# API Models (External)
# =============================================================================


class SpinResponse(BaseModel):
    """Spin endpoint response."""

    spin_id: str = Field(..., description="Spin identifier")
    reward_id: str = Field(..., description="Won reward")
    reward_label: str = Field(..., description="Display label")
    category: str = Field(..., description="Reward category")
    was_pity: bool = Field(..., description="Pity boost was active for this spin")
    timestamp: datetime
    grant_status: GrantStatus = Field(
        default=GrantStatus.PENDING,
        description="Fulfillment state of the reward",
    )
    available_spins: Dict[str, int] = Field(default_factory=dict)


class OddsItem(BaseModel):
    reward_id: str
    label: str
    category: str
    is_rare: bool
    probability: float


class OddsResponse(BaseModel):
    """Current normalized odds for a user on a tier."""

    tier: str
    pity_counter: int
    pity_active: bool
    items: List[OddsItem]


class HistoryResponse(BaseModel):
    items: List[SpinResult]


class AddSpinsRequest(BaseModel):
    tier: str = Field(..., min_length=1)
    count: int = Field(..., ge=1, le=1000)


class FreeSpinResponse(BaseModel):
    tier: str
    spins_granted: int
    streak: int
    next_available_at: datetime
    available_spins: Dict[str, int]


class CatalogResponse(BaseModel):
    tier: str
    rewards: List[RewardDefinition]
    rare_labels: List[str]


class RetryGrantsResponse(BaseModel):
    granted: int
    still_pending: int


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: Dict[str, Any] = Field(..., description="Error details")
