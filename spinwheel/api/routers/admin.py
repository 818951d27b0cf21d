"""
Admin API router.
Spin inventory administration and grant recovery.
"""
from fastapi import APIRouter, Depends, Path

from spinwheel.api.dependencies import get_spin_service
from spinwheel.models.schemas import AddSpinsRequest, RetryGrantsResponse, UserSpinState
from spinwheel.services.spin import SpinService

router = APIRouter(prefix="/v1/admin", tags=["admin"])


@router.post(
    "/users/{user_id}/spins",
    response_model=UserSpinState,
    summary="Add Spins",
)
async def add_spins(
    request: AddSpinsRequest,
    user_id: str = Path(..., min_length=1),
    spin_service: SpinService = Depends(get_spin_service),
) -> UserSpinState:
    """Credit spins on a tier (purchase or compensation)."""
    return await spin_service.add_spins(user_id, request.tier, request.count)


@router.delete(
    "/users/{user_id}/spin-state",
    response_model=UserSpinState,
    summary="Reset Pity & Suppressions",
)
async def reset_spin_state(
    user_id: str = Path(..., min_length=1),
    spin_service: SpinService = Depends(get_spin_service),
) -> UserSpinState:
    return await spin_service.reset_state(user_id)


@router.post(
    "/grants/retry",
    response_model=RetryGrantsResponse,
    summary="Retry Pending Grants",
)
async def retry_pending_grants(
    spin_service: SpinService = Depends(get_spin_service),
) -> RetryGrantsResponse:
    granted, still_pending = await spin_service.retry_pending_grants()
    return RetryGrantsResponse(granted=granted, still_pending=still_pending)
