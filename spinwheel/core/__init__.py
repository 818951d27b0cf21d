"""Core infrastructure components."""
from .circuit_breaker import CircuitBreaker, CircuitState
from .exceptions import (
    AppException,
    CircuitBreakerOpenError,
    ConcurrentModificationError,
    FreeSpinCooldownError,
    InsufficientSpinsError,
    InvalidCatalogError,
    TransientFailureError,
    UnknownTierError,
    ValidationError,
)

__all__ = [
    "AppException",
    "CircuitBreaker",
    "CircuitBreakerOpenError",
    "CircuitState",
    "ConcurrentModificationError",
    "FreeSpinCooldownError",
    "InsufficientSpinsError",
    "InvalidCatalogError",
    "TransientFailureError",
    "UnknownTierError",
    "ValidationError",
]
