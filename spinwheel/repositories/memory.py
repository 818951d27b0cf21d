"""
In-memory repository implementations.
Used for prototyping and testing.
Production would replace these with Postgres/Redis implementations that
keep the same compare-and-swap and idempotency contracts.
"""
import logging
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, Dict, List, Optional, Set, Tuple

from spinwheel.core.exceptions import ConcurrentModificationError, InsufficientSpinsError
from spinwheel.models.schemas import GrantRecord, GrantStatus, SpinStateDelta, UserSpinState

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemorySpinStateRepository:
    """
    In-memory implementation of SpinStateRepository.
    One lock guards the whole dict; the critical section is a version
    check plus a dict write, so it never spans any external I/O.
    """

    def __init__(
        self,
        default_spins: Optional[Dict[str, int]] = None,
        history_limit: int = 10,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._store: Dict[str, UserSpinState] = {}
        self._default_spins = dict(default_spins or {})
        self._history_limit = history_limit
        self._clock = clock
        self._lock = Lock()

    def _default_state(self, user_id: str) -> UserSpinState:
        return UserSpinState(
            user_id=user_id,
            available_spins=dict(self._default_spins),
        )

    async def get(self, user_id: str) -> UserSpinState:
        """Fetch a copy of the user's state (default if never committed)."""
        with self._lock:
            state = self._store.get(user_id)
            if state is None:
                return self._default_state(user_id)
            return state.model_copy(deep=True)

    async def commit(
        self,
        user_id: str,
        delta: SpinStateDelta,
        expected_version: int,
    ) -> UserSpinState:
        """Apply delta if nobody committed since expected_version was read."""
        with self._lock:
            current = self._store.get(user_id) or self._default_state(user_id)
            if current.version != expected_version:
                raise ConcurrentModificationError(user_id, expected_version, current.version)

            try:
                updated = delta.apply(current, delta.as_of or self._clock(), self._history_limit)
            except ValueError as e:
                tier = delta.consume_tier or next(iter(delta.spins), "")
                logger.warning(f"Rejected commit for user={user_id}: {e}")
                raise InsufficientSpinsError(tier, current.spins_for(tier)) from e

            self._store[user_id] = updated
            return updated.model_copy(deep=True)

    def exists(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._store

    def size(self) -> int:
        with self._lock:
            return len(self._store)


class InMemoryPendingGrantRepository:
    """
    In-memory implementation of PendingGrantRepository.
    Keeps every grant record by spin id; pending ones are retried later.
    """

    def __init__(self) -> None:
        self._records: Dict[str, GrantRecord] = {}
        self._lock = Lock()

    async def save(self, record: GrantRecord) -> None:
        with self._lock:
            self._records[record.spin_id] = record

    async def get(self, spin_id: str) -> Optional[GrantRecord]:
        with self._lock:
            return self._records.get(spin_id)

    async def list_pending(self) -> List[GrantRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.status == GrantStatus.PENDING]


class InMemoryGrantBackend:
    """
    In-memory implementation of RewardGrantBackend.
    Simulates ticket, progression, subscription and coin services with a
    ledger keyed by idempotency key.
    """

    def __init__(self) -> None:
        self._applied: Set[str] = set()
        self.tickets: Dict[str, List[Tuple[str, int]]] = {}
        self.xp: Dict[str, int] = {}
        self.premium_days: Dict[str, int] = {}
        self.coins: Dict[str, int] = {}
        self._lock = Lock()

    def _first_time(self, idempotency_key: str) -> bool:
        if idempotency_key in self._applied:
            logger.info(f"Duplicate grant ignored: key={idempotency_key}")
            return False
        self._applied.add(idempotency_key)
        return True

    async def issue_ticket(
        self, user_id: str, ticket_tier: str, count: int, idempotency_key: str
    ) -> None:
        with self._lock:
            if self._first_time(idempotency_key):
                self.tickets.setdefault(user_id, []).append((ticket_tier, count))

    async def add_xp(self, user_id: str, amount: int, idempotency_key: str) -> None:
        with self._lock:
            if self._first_time(idempotency_key):
                self.xp[user_id] = self.xp.get(user_id, 0) + amount

    async def extend_premium(self, user_id: str, days: int, idempotency_key: str) -> None:
        with self._lock:
            if self._first_time(idempotency_key):
                self.premium_days[user_id] = self.premium_days.get(user_id, 0) + days

    async def credit_coins(
        self, user_id: str, amount: int, reason: str, idempotency_key: str
    ) -> None:
        with self._lock:
            if self._first_time(idempotency_key):
                self.coins[user_id] = self.coins.get(user_id, 0) + amount
