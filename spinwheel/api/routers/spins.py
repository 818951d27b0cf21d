"""
Spin API router.
Implements the player-facing wheel endpoints under /v1/spins.
"""
import logging

from fastapi import APIRouter, Depends, Header, Path, Query

from spinwheel.api.dependencies import get_spin_service
from spinwheel.config import get_settings
from spinwheel.models.schemas import (
    FreeSpinResponse,
    HistoryResponse,
    OddsResponse,
    SpinResponse,
    UserSpinState,
)
from spinwheel.services.spin import SpinService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/spins", tags=["spins"])


def get_user_id(
    x_user_id: str = Header(
        ...,
        alias="X-User-ID",
        min_length=1,
        description="Authenticated user identifier",
    ),
) -> str:
    return x_user_id


@router.get(
    "/state",
    response_model=UserSpinState,
    summary="Get Spin State",
)
async def get_state(
    user_id: str = Depends(get_user_id),
    spin_service: SpinService = Depends(get_spin_service),
) -> UserSpinState:
    """Inventory, pity counter, active suppressions and recent history."""
    return await spin_service.get_state(user_id)


@router.get(
    "/history",
    response_model=HistoryResponse,
    summary="Get Spin History",
)
async def get_history(
    limit: int = Query(
        default=10,
        ge=1,
        le=50,
        description="Number of spins to return, newest first",
    ),
    user_id: str = Depends(get_user_id),
    spin_service: SpinService = Depends(get_spin_service),
) -> HistoryResponse:
    settings = get_settings()
    effective_limit = min(limit, settings.MAX_HISTORY_LIMIT)
    items = await spin_service.get_history(user_id, limit=effective_limit)
    return HistoryResponse(items=items)


@router.post(
    "/free",
    response_model=FreeSpinResponse,
    summary="Claim Daily Free Spin",
    responses={
        200: {"description": "Free spin credited"},
        429: {"description": "Free spin still on cooldown"},
    },
)
async def claim_free_spin(
    user_id: str = Depends(get_user_id),
    spin_service: SpinService = Depends(get_spin_service),
) -> FreeSpinResponse:
    return await spin_service.claim_free_spin(user_id)


@router.get(
    "/{tier}/odds",
    response_model=OddsResponse,
    summary="Get Current Odds",
    description="Normalized probabilities for the user, including pity boost and suppressions.",
)
async def get_odds(
    tier: str = Path(..., min_length=1),
    user_id: str = Depends(get_user_id),
    spin_service: SpinService = Depends(get_spin_service),
) -> OddsResponse:
    return await spin_service.odds(user_id, tier)


@router.post(
    "/{tier}",
    response_model=SpinResponse,
    summary="Spin The Wheel",
    description="""
    Consume one spin of the tier and return the reward.

    **Semantics:**
    - Pity boost for rare rewards after a run of common ones
    - Temporary suppression of recently won categories
    - Reward fulfilment happens after the spin is committed; a failed
      grant is reported as `pending` and retried, never re-spun
    """,
    responses={
        200: {"description": "Spin committed"},
        404: {"description": "Unknown tier"},
        409: {"description": "No spin available on the tier"},
        503: {"description": "Too much contention, retry"},
    },
)
async def spin(
    tier: str = Path(..., min_length=1),
    user_id: str = Depends(get_user_id),
    spin_service: SpinService = Depends(get_spin_service),
) -> SpinResponse:
    return await spin_service.spin(user_id, tier)
