"""
Health check router for observability.
"""
from fastapi import APIRouter

from spinwheel.api.dependencies import get_catalog_repository, get_grant_circuit_breaker

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health Check")
async def health_check() -> dict:
    """Basic health check endpoint."""
    return {"status": "healthy"}


@router.get("/health/ready", summary="Readiness Check")
async def readiness_check() -> dict:
    """
    Readiness check for Kubernetes.
    Returns status of the grant circuit breaker and loaded catalog.
    """
    circuit_breaker = get_grant_circuit_breaker()
    catalog_repo = get_catalog_repository()

    return {
        "status": "ready",
        "circuit_breaker": {
            "name": circuit_breaker.name,
            "state": circuit_breaker.state.value,
        },
        "catalog": {
            "tiers": catalog_repo.tiers(),
        },
    }
