"""
Reward dispatcher.
Turns a committed spin into a concrete grant call. Runs after the state
commit and outside any per-user critical section; a failed grant is
parked as pending and retried out-of-band, never re-spun.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from spinwheel.core.circuit_breaker import CircuitBreaker
from spinwheel.core.telemetry import GRANTS_TOTAL
from spinwheel.models.interfaces import PendingGrantRepository, RewardGrantBackend
from spinwheel.models.schemas import (
    CoinPayload,
    ExtraSpinPayload,
    GrantRecord,
    GrantStatus,
    PremiumPayload,
    RewardDefinition,
    SpinResult,
    TicketPayload,
    XpPayload,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RewardDispatcher:
    """
    Best-effort fulfilment of spin rewards.

    Every backend call is keyed by the spin id, so retrying a pending
    grant is safe even if the first attempt actually landed.
    """

    def __init__(
        self,
        grant_backend: RewardGrantBackend,
        pending_repo: PendingGrantRepository,
        circuit_breaker: Optional[CircuitBreaker] = None,
        timeout_ms: int = 2000,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize dispatcher with its collaborators.

        Args:
            grant_backend: Services that issue tickets, XP, premium and coins
            pending_repo: Ledger of grant records
            circuit_breaker: Optional breaker shared by all grant calls
            timeout_ms: Budget for a single grant call
            clock: Time source for record timestamps
        """
        self._backend = grant_backend
        self._pending_repo = pending_repo
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            name="grant_backend",
            failure_threshold=5,
            recovery_timeout_sec=30,
        )
        self._timeout_sec = timeout_ms / 1000
        self._clock = clock

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    async def dispatch(
        self,
        user_id: str,
        result: SpinResult,
        reward: RewardDefinition,
    ) -> GrantRecord:
        """
        Fulfil the reward of a committed spin.

        Returns:
            GrantRecord with status granted, pending or inventory
        """
        record = GrantRecord(
            spin_id=result.id,
            user_id=user_id,
            reward_id=reward.id,
            payload=reward.payload,
            status=GrantStatus.PENDING,
        )

        if isinstance(reward.payload, ExtraSpinPayload):
            # Inventory was credited in the same commit as the spin
            record = record.model_copy(
                update={"status": GrantStatus.INVENTORY, "updated_at": self._clock()}
            )
            await self._pending_repo.save(record)
            GRANTS_TOTAL.labels(status=record.status.value).inc()
            return record

        return await self._attempt(record)

    async def retry_pending(self) -> Tuple[int, int]:
        """
        Re-attempt every pending grant.

        Returns:
            Tuple of (granted_now, still_pending)
        """
        granted = 0
        still_pending = 0
        for record in await self._pending_repo.list_pending():
            updated = await self._attempt(record)
            if updated.status == GrantStatus.GRANTED:
                granted += 1
            else:
                still_pending += 1

        if granted or still_pending:
            logger.info(f"Pending grant retry: granted={granted}, still_pending={still_pending}")
        return granted, still_pending

    async def run_retry_loop(self, interval_sec: float) -> None:
        """
        Sweep pending grants every interval_sec until cancelled.
        A failed sweep is logged and the loop carries on.
        """
        logger.info(f"Pending grant retry loop started (every {interval_sec}s)")
        while True:
            await asyncio.sleep(interval_sec)
            try:
                await self.retry_pending()
            except Exception:
                logger.exception("Pending grant sweep failed")

    async def _attempt(self, record: GrantRecord) -> GrantRecord:
        """One grant attempt through breaker and timeout; never raises."""
        attempts = record.attempts + 1
        try:
            await self._circuit_breaker.call(
                lambda: asyncio.wait_for(self._grant(record), timeout=self._timeout_sec)
            )
        except Exception as e:
            reason = str(e) or type(e).__name__
            logger.warning(
                f"Grant parked as pending: spin={record.spin_id}, "
                f"reward={record.reward_id}, attempt={attempts}, error={reason}",
                extra={"user_id": record.user_id, "spin_id": record.spin_id},
            )
            updated = record.model_copy(
                update={
                    "status": GrantStatus.PENDING,
                    "attempts": attempts,
                    "last_error": reason,
                    "updated_at": self._clock(),
                }
            )
        else:
            updated = record.model_copy(
                update={
                    "status": GrantStatus.GRANTED,
                    "attempts": attempts,
                    "last_error": None,
                    "updated_at": self._clock(),
                }
            )

        await self._pending_repo.save(updated)
        GRANTS_TOTAL.labels(status=updated.status.value).inc()
        return updated

    async def _grant(self, record: GrantRecord) -> None:
        """Translate the typed payload into a backend call."""
        payload = record.payload
        key = record.spin_id

        if isinstance(payload, TicketPayload):
            await self._backend.issue_ticket(record.user_id, payload.ticket_tier, payload.count, key)
        elif isinstance(payload, XpPayload):
            await self._backend.add_xp(record.user_id, payload.amount, key)
        elif isinstance(payload, PremiumPayload):
            await self._backend.extend_premium(record.user_id, payload.days, key)
        elif isinstance(payload, CoinPayload):
            await self._backend.credit_coins(record.user_id, payload.amount, payload.reason, key)
        else:
            raise TypeError(f"No grant handler for payload {payload.kind}")
