"""
Custom exception hierarchy for centralized error handling.
All exceptions map to appropriate HTTP status codes.
"""
from datetime import datetime
from typing import Any, Dict, Optional


class AppException(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API response format."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(AppException):
    """Invalid input data."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=400,
            error_code="VALIDATION_ERROR",
            details=details,
        )


class UnknownTierError(AppException):
    """Tier is not configured in the reward catalog."""

    def __init__(self, tier: str) -> None:
        super().__init__(
            message=f"Unknown spin tier: {tier}",
            status_code=404,
            error_code="UNKNOWN_TIER",
            details={"tier": tier},
        )


class InvalidCatalogError(AppException):
    """Reward catalog configuration is unusable (e.g. no positive weight)."""

    def __init__(self, reason: str, tier: Optional[str] = None) -> None:
        details: Dict[str, Any] = {"reason": reason}
        if tier is not None:
            details["tier"] = tier
        super().__init__(
            message=f"Invalid reward catalog: {reason}",
            status_code=500,
            error_code="INVALID_CATALOG",
            details=details,
        )


class InsufficientSpinsError(AppException):
    """User has no spins left for the requested tier."""

    def __init__(self, tier: str, available: int = 0) -> None:
        super().__init__(
            message=f"No available {tier} spins",
            status_code=409,
            error_code="INSUFFICIENT_SPINS",
            details={"tier": tier, "available": available},
        )


class ConcurrentModificationError(AppException):
    """Stored spin state changed between read and commit."""

    def __init__(self, user_id: str, expected_version: int, actual_version: int) -> None:
        super().__init__(
            message=f"Spin state for {user_id} was modified concurrently",
            status_code=409,
            error_code="CONCURRENT_MODIFICATION",
            details={
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
        )


class TransientFailureError(AppException):
    """Operation kept conflicting and ran out of retries."""

    def __init__(self, operation: str, attempts: int) -> None:
        super().__init__(
            message=f"{operation} failed after {attempts} attempts, please retry",
            status_code=503,
            error_code="TRANSIENT_FAILURE",
            details={"operation": operation, "attempts": attempts},
        )


class FreeSpinCooldownError(AppException):
    """Daily free spin already claimed."""

    def __init__(self, next_available_at: datetime) -> None:
        super().__init__(
            message="Free spin already claimed, come back later",
            status_code=429,
            error_code="FREE_SPIN_COOLDOWN",
            details={"next_available_at": next_available_at.isoformat()},
        )


class CircuitBreakerOpenError(AppException):
    """Circuit breaker is open - service calls blocked."""

    def __init__(self, service_name: str) -> None:
        super().__init__(
            message=f"Circuit breaker open for: {service_name}",
            status_code=503,
            error_code="CIRCUIT_BREAKER_OPEN",
            details={"service": service_name},
        )
