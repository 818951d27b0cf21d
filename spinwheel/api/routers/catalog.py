"""
Catalog API router.
Read-only view of the configured wheels.
"""
from typing import List

from fastapi import APIRouter, Depends, Path

from spinwheel.api.dependencies import get_catalog_repository
from spinwheel.models.interfaces import CatalogRepository
from spinwheel.models.schemas import CatalogResponse

router = APIRouter(prefix="/v1/catalog", tags=["catalog"])


@router.get("", response_model=List[str], summary="List Tiers")
async def list_tiers(
    catalog_repo: CatalogRepository = Depends(get_catalog_repository),
) -> List[str]:
    return catalog_repo.tiers()


@router.get("/{tier}", response_model=CatalogResponse, summary="Get Tier Catalog")
async def get_tier_catalog(
    tier: str = Path(..., min_length=1),
    catalog_repo: CatalogRepository = Depends(get_catalog_repository),
) -> CatalogResponse:
    tier_catalog = catalog_repo.tier_catalog(tier)
    return CatalogResponse(
        tier=tier,
        rewards=tier_catalog.rewards,
        rare_labels=sorted(tier_catalog.rare_labels),
    )
