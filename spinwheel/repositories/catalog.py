"""
Reward catalog repository.
Ships the default wheel configuration and can load an admin-edited
JSON document instead. Everything is validated once at load time.
"""
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from spinwheel.core.exceptions import InvalidCatalogError, UnknownTierError
from spinwheel.models.schemas import (
    AdaptiveRule,
    CoinPayload,
    ExtraSpinPayload,
    PremiumPayload,
    RewardCategory,
    RewardDefinition,
    TicketPayload,
    TierCatalog,
    XpPayload,
)

logger = logging.getLogger(__name__)

# Placeholder fulfilment for masterpass / gift card wins
PLACEHOLDER_COINS = 5000


class TierDocument(BaseModel):
    rewards: List[RewardDefinition] = Field(default_factory=list)
    rare: List[str] = Field(default_factory=list)


class CatalogDocument(BaseModel):
    """On-disk layout of the catalog configuration."""

    tiers: Dict[str, TierDocument]
    adaptive_rules: Dict[RewardCategory, AdaptiveRule] = Field(default_factory=dict)


def _ticket(reward_id: str, label: str, weight: float, ticket_tier: str, count: int = 1) -> RewardDefinition:
    return RewardDefinition(
        id=reward_id,
        label=label,
        category=RewardCategory.TICKET,
        base_weight=weight,
        payload=TicketPayload(ticket_tier=ticket_tier, count=count),
    )


def _xp(amount: int, weight: float) -> RewardDefinition:
    return RewardDefinition(
        id=f"boost_{amount}",
        label=f"XP +{amount}",
        category=RewardCategory.XP,
        base_weight=weight,
        payload=XpPayload(amount=amount),
    )


def _extra_spin(weight: float, reward_id: str = "extra_spin", label: str = "Extra Spin",
                tier: Optional[str] = None) -> RewardDefinition:
    return RewardDefinition(
        id=reward_id,
        label=label,
        category=RewardCategory.EXTRA_SPIN,
        base_weight=weight,
        payload=ExtraSpinPayload(tier=tier),
    )


def _coins(reward_id: str, label: str, weight: float, category: RewardCategory) -> RewardDefinition:
    return RewardDefinition(
        id=reward_id,
        label=label,
        category=category,
        base_weight=weight,
        payload=CoinPayload(amount=PLACEHOLDER_COINS, reason=category.value),
    )


def _premium(days: int, label: str, weight: float) -> RewardDefinition:
    return RewardDefinition(
        id=f"premium_{days}d",
        label=label,
        category=RewardCategory.PREMIUM,
        base_weight=weight,
        payload=PremiumPayload(days=days),
    )


def default_catalog_document() -> CatalogDocument:
    """Built-in wheel configuration."""
    return CatalogDocument(
        tiers={
            "rookie": TierDocument(
                rewards=[
                    _ticket("ticket_rookie", "Rookie Ticket", 0.28, "rookie"),
                    _extra_spin(0.28),
                    _coins("masterpass_rookie", "Rookie MasterPass", 0.10, RewardCategory.MASTERPASS),
                    _xp(50, 0.12),
                    _xp(100, 0.10),
                    _xp(200, 0.09),
                    _ticket("ticket_pro", "Pro Ticket", 0.03, "pro"),
                ],
                rare=["masterpass", "ticket_pro"],
            ),
            "pro": TierDocument(
                rewards=[
                    _ticket("ticket_pro", "Pro Ticket", 0.24, "pro"),
                    _extra_spin(0.24),
                    _xp(200, 0.18),
                    _xp(400, 0.16),
                    _coins("masterpass_pro", "Pro MasterPass", 0.08, RewardCategory.MASTERPASS),
                    _ticket("ticket_elite", "Elite Ticket", 0.06, "elite"),
                    _premium(3, "Premium (3 days)", 0.04),
                ],
                rare=["masterpass", "ticket_elite", "premium"],
            ),
            "elite": TierDocument(
                rewards=[
                    _ticket("ticket_elite", "Elite Ticket", 0.25, "elite"),
                    _extra_spin(0.25),
                    _coins("masterpass_elite", "Elite MasterPass", 0.15, RewardCategory.MASTERPASS),
                    _xp(1200, 0.14),
                    _xp(800, 0.11),
                    _coins("gift_card", "Gift Card $5", 0.06, RewardCategory.GIFT_CARD),
                    _premium(7, "Premium (7 days)", 0.04),
                ],
                rare=["masterpass", "gift_card", "premium"],
            ),
            "premium": TierDocument(
                rewards=[
                    _coins("masterpass_pro", "Pro MasterPass", 0.20, RewardCategory.MASTERPASS),
                    _coins("gift_card_10", "Gift Card $10", 0.05, RewardCategory.GIFT_CARD),
                    _premium(30, "Premium (30 days)", 0.10),
                    _xp(2000, 0.25),
                    _ticket("ticket_elite_pack", "2x Elite Tickets", 0.15, "elite", count=2),
                    _extra_spin(0.25, "extra_spin_premium", "Extra Premium Spin", tier="premium"),
                ],
                rare=["gift_card", "premium", "masterpass_pro"],
            ),
        },
        adaptive_rules={
            RewardCategory.PREMIUM: AdaptiveRule(multiplier=0.5, duration_days=7),
            RewardCategory.GIFT_CARD: AdaptiveRule(multiplier=0.3, duration_days=7),
            RewardCategory.MASTERPASS: AdaptiveRule(multiplier=0.5, duration_days=30),
        },
    )


class InMemoryCatalogRepository:
    """
    In-memory implementation of CatalogRepository.
    Holds validated, immutable TierCatalog bundles keyed by tier.
    """

    def __init__(self, document: Optional[CatalogDocument] = None) -> None:
        document = document or default_catalog_document()
        self._validate(document)
        self._adaptive_rules: Dict[str, AdaptiveRule] = {
            category.value: rule for category, rule in document.adaptive_rules.items()
        }
        self._tiers: Dict[str, TierCatalog] = {
            tier: TierCatalog(
                tier=tier,
                rewards=tier_doc.rewards,
                rare_labels=set(tier_doc.rare),
                adaptive_rules=self._adaptive_rules,
            )
            for tier, tier_doc in document.tiers.items()
        }
        logger.info(f"Reward catalog loaded: tiers={list(self._tiers)}")

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "InMemoryCatalogRepository":
        """Build from a decoded configuration document."""
        try:
            document = CatalogDocument.model_validate(raw)
        except PydanticValidationError as e:
            raise InvalidCatalogError(f"{e.error_count()} validation error(s): {e}") from e
        return cls(document)

    @classmethod
    def from_file(cls, path: str) -> "InMemoryCatalogRepository":
        """Load an admin-edited JSON catalog."""
        try:
            raw = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidCatalogError(f"cannot read {path}: {e}") from e
        return cls.from_dict(raw)

    @staticmethod
    def _validate(document: CatalogDocument) -> None:
        """Cross-field checks pydantic cannot express per model."""
        if not document.tiers:
            raise InvalidCatalogError("no tiers configured")

        for tier, tier_doc in document.tiers.items():
            if not tier_doc.rewards:
                raise InvalidCatalogError("tier has no rewards", tier=tier)

            ids = [reward.id for reward in tier_doc.rewards]
            if len(ids) != len(set(ids)):
                raise InvalidCatalogError("duplicate reward ids", tier=tier)

            known_labels = set(ids) | {reward.category for reward in tier_doc.rewards}
            unknown_rare = sorted(set(tier_doc.rare) - known_labels)
            if unknown_rare:
                raise InvalidCatalogError(
                    f"rare labels match no category or reward id: {unknown_rare}",
                    tier=tier,
                )

            for reward in tier_doc.rewards:
                payload = reward.payload
                if (
                    isinstance(payload, ExtraSpinPayload)
                    and payload.tier is not None
                    and payload.tier not in document.tiers
                ):
                    raise InvalidCatalogError(
                        f"{reward.id} grants spins on unknown tier {payload.tier}",
                        tier=tier,
                    )

    def tiers(self) -> List[str]:
        return list(self._tiers)

    def tier_catalog(self, tier: str) -> TierCatalog:
        try:
            return self._tiers[tier]
        except KeyError:
            raise UnknownTierError(tier) from None

    def catalog(self, tier: str) -> List[RewardDefinition]:
        return list(self.tier_catalog(tier).rewards)

    def rare_categories(self, tier: str) -> Set[str]:
        return set(self.tier_catalog(tier).rare_labels)

    def adaptive_rule(self, category: str) -> Optional[AdaptiveRule]:
        return self._adaptive_rules.get(category)
