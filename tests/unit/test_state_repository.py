"""
Unit tests for the in-memory spin state store and grant ledgers.
"""
from datetime import timedelta

import pytest

from spinwheel.core.exceptions import ConcurrentModificationError, InsufficientSpinsError
from spinwheel.models.schemas import (
    AdaptiveMultiplier,
    GrantRecord,
    GrantStatus,
    SpinResult,
    SpinStateDelta,
    XpPayload,
)


def spin_result(index: int, clock) -> SpinResult:
    return SpinResult(
        id=f"spin-{index}",
        tier="rookie",
        reward_id="ticket_rookie",
        reward_label="Rookie Ticket",
        category="ticket",
        timestamp=clock(),
    )


@pytest.mark.asyncio
async def test_get_returns_default_without_persisting(state_repo):
    state = await state_repo.get("new_user")

    assert state.pity_counter == 0
    assert state.adaptive_multipliers == {}
    assert state.available_spins == {"rookie": 1, "pro": 1, "elite": 1}
    assert state.version == 0
    assert not state_repo.exists("new_user")


@pytest.mark.asyncio
async def test_commit_applies_delta_and_bumps_version(state_repo, clock):
    delta = SpinStateDelta(
        consume_tier="rookie",
        pity_counter=1,
        result=spin_result(1, clock),
        as_of=clock(),
    )

    committed = await state_repo.commit("u1", delta, expected_version=0)

    assert committed.version == 1
    assert committed.available_spins["rookie"] == 0
    assert committed.pity_counter == 1
    assert committed.last_spin.id == "spin-1"
    assert committed.updated_at == clock()
    assert state_repo.size() == 1


@pytest.mark.asyncio
async def test_stale_version_is_rejected(state_repo, clock):
    await state_repo.commit("u1", SpinStateDelta(spins={"pro": 2}, as_of=clock()), 0)

    with pytest.raises(ConcurrentModificationError):
        await state_repo.commit("u1", SpinStateDelta(consume_tier="rookie"), 0)

    state = await state_repo.get("u1")
    assert state.available_spins["rookie"] == 1
    assert state.version == 1


@pytest.mark.asyncio
async def test_consume_without_inventory_is_rejected(state_repo):
    with pytest.raises(InsufficientSpinsError):
        await state_repo.commit("u1", SpinStateDelta(consume_tier="premium"), 0)

    assert not state_repo.exists("u1")


@pytest.mark.asyncio
async def test_returned_state_is_a_copy(state_repo, clock):
    await state_repo.commit("u1", SpinStateDelta(spins={"pro": 1}, as_of=clock()), 0)

    state = await state_repo.get("u1")
    state.available_spins["pro"] = 99

    assert (await state_repo.get("u1")).available_spins["pro"] == 2


@pytest.mark.asyncio
async def test_history_is_bounded_newest_first(state_repo, clock):
    version = 0
    for index in range(12):
        delta = SpinStateDelta(result=spin_result(index, clock), as_of=clock())
        version = (await state_repo.commit("u1", delta, version)).version

    state = await state_repo.get("u1")
    assert len(state.spin_history) == 10
    assert state.spin_history[0].id == "spin-11"
    assert state.spin_history[-1].id == "spin-2"


@pytest.mark.asyncio
async def test_expired_multipliers_are_pruned_on_commit(state_repo, clock):
    delta = SpinStateDelta(
        set_multipliers={
            "premium": AdaptiveMultiplier(multiplier=0.5, expires_at=clock() + timedelta(days=7)),
            "masterpass": AdaptiveMultiplier(multiplier=0.5, expires_at=clock() + timedelta(days=30)),
        },
        as_of=clock(),
    )
    await state_repo.commit("u1", delta, 0)

    clock.advance(days=8)
    committed = await state_repo.commit("u1", SpinStateDelta(as_of=clock()), 1)

    assert set(committed.adaptive_multipliers) == {"masterpass"}


@pytest.mark.asyncio
async def test_clear_multipliers(state_repo, clock):
    delta = SpinStateDelta(
        set_multipliers={"extra_spin": AdaptiveMultiplier(multiplier=0.6)},
        as_of=clock(),
    )
    await state_repo.commit("u1", delta, 0)

    committed = await state_repo.commit(
        "u1", SpinStateDelta(clear_multipliers=["extra_spin"], as_of=clock()), 1
    )

    assert committed.adaptive_multipliers == {}


class TestGrantLedgers:
    @pytest.mark.asyncio
    async def test_pending_repository_lists_pending_only(self, pending_repo):
        payload = XpPayload(amount=50)
        await pending_repo.save(
            GrantRecord(spin_id="s1", user_id="u1", reward_id="boost_50", payload=payload,
                        status=GrantStatus.PENDING)
        )
        await pending_repo.save(
            GrantRecord(spin_id="s2", user_id="u1", reward_id="boost_50", payload=payload,
                        status=GrantStatus.GRANTED)
        )

        pending = await pending_repo.list_pending()

        assert [record.spin_id for record in pending] == ["s1"]
        assert (await pending_repo.get("s2")).status == GrantStatus.GRANTED
        assert await pending_repo.get("missing") is None

    @pytest.mark.asyncio
    async def test_grant_backend_is_idempotent(self, grant_backend):
        await grant_backend.add_xp("u1", 50, "spin-1")
        await grant_backend.add_xp("u1", 50, "spin-1")
        await grant_backend.issue_ticket("u1", "pro", 1, "spin-2")
        await grant_backend.credit_coins("u1", 5000, "spin_wheel", "spin-3")
        await grant_backend.extend_premium("u1", 7, "spin-4")

        assert grant_backend.xp["u1"] == 50
        assert grant_backend.tickets["u1"] == [("pro", 1)]
        assert grant_backend.coins["u1"] == 5000
        assert grant_backend.premium_days["u1"] == 7
