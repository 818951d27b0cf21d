"""Services package - business logic layer."""
from .dispatcher import RewardDispatcher
from .engine import (
    AdaptiveSuppression,
    PityBoost,
    SpinEngine,
    WeightModifier,
)
from .spin import SpinService

__all__ = [
    "AdaptiveSuppression",
    "PityBoost",
    "RewardDispatcher",
    "SpinEngine",
    "SpinService",
    "WeightModifier",
]
