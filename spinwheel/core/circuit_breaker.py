"""
Circuit Breaker pattern implementation for resilience.
Stops hammering the grant backend while it is failing; spins keep
committing and their grants are parked as pending instead.
"""
import logging
import time
from enum import Enum
from threading import Lock
from typing import Awaitable, Callable, Optional, TypeVar

from spinwheel.core.exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Blocking calls
    HALF_OPEN = "half_open"  # Testing recovery


class CircuitBreaker:
    """
    Thread-safe circuit breaker around awaitable calls.

    Usage:
        breaker = CircuitBreaker("grant_backend", failure_threshold=5)
        await breaker.call(lambda: backend.add_xp(user_id, 50, key))
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout_sec: float = 30,
    ) -> None:
        self._name = name
        self._failure_threshold = failure_threshold
        self._recovery_timeout_sec = recovery_timeout_sec

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._trial_in_flight = False
        self._lock = Lock()

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state

    @property
    def name(self) -> str:
        """Circuit breaker name."""
        return self._name

    @property
    def failure_count(self) -> int:
        return self._failure_count

    async def call(
        self,
        func: Callable[[], Awaitable[T]],
        fallback: Optional[Callable[[], Awaitable[T]]] = None,
    ) -> T:
        """
        Await func through the circuit breaker.

        Args:
            func: Zero-argument callable returning an awaitable
            fallback: Optional awaitable factory used while open or on error

        Returns:
            Result from func or fallback

        Raises:
            CircuitBreakerOpenError: If open and no fallback provided
        """
        with self._lock:
            if self._state == CircuitState.OPEN:
                if self._should_attempt_reset():
                    self._state = CircuitState.HALF_OPEN
                    self._trial_in_flight = False
                    logger.info(f"Circuit breaker '{self._name}' entering HALF_OPEN")

            # Only one trial call while HALF_OPEN
            blocked = self._state == CircuitState.OPEN or (
                self._state == CircuitState.HALF_OPEN and self._trial_in_flight
            )
            if self._state == CircuitState.HALF_OPEN and not blocked:
                self._trial_in_flight = True

        if blocked:
            logger.warning(f"Circuit breaker '{self._name}' OPEN, call blocked")
            if fallback:
                return await fallback()
            raise CircuitBreakerOpenError(self._name)

        try:
            result = await func()
        except Exception as e:
            self._on_failure()
            if fallback:
                logger.warning(f"Circuit breaker '{self._name}' caught error, using fallback: {e}")
                return await fallback()
            raise
        except BaseException:
            # Cancelled mid-call: the next call may try instead
            with self._lock:
                self._trial_in_flight = False
            raise

        self._on_success()
        return result

    def _on_success(self) -> None:
        """Handle successful call."""
        with self._lock:
            self._trial_in_flight = False
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.CLOSED
                logger.info(f"Circuit breaker '{self._name}' recovered to CLOSED")

    def _on_failure(self) -> None:
        """Handle failed call."""
        with self._lock:
            self._trial_in_flight = False
            self._failure_count += 1
            self._last_failure_time = time.monotonic()

            # A failed trial call re-opens immediately
            if (
                self._state == CircuitState.HALF_OPEN
                or self._failure_count >= self._failure_threshold
            ):
                self._state = CircuitState.OPEN
                logger.error(
                    f"Circuit breaker '{self._name}' OPENED after "
                    f"{self._failure_count} failures"
                )

    def _should_attempt_reset(self) -> bool:
        """Check if enough time has passed to attempt recovery."""
        if self._last_failure_time is None:
            return True
        elapsed = time.monotonic() - self._last_failure_time
        return elapsed >= self._recovery_timeout_sec

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
            self._trial_in_flight = False
            logger.info(f"Circuit breaker '{self._name}' manually reset")
