# MIT License
# Copyright (c) 2025 Hashborn

"""
Tests for AccountLedger settlement.
"""
import pytest

from nftstake.node.core.ledger import AccountLedger
from nftstake.node.core.rate_schedule import RateSchedule
from nftstake.protocol.types.common import InputError, StakeState
from nftstake.protocol.types.staking import StakerInfo


@pytest.fixture
def ledger():
    schedule = RateSchedule(initial_rate=10, genesis_block=0)
    return AccountLedger(schedule)


def staked(address="alice", units=1, checkpoint=0, token_ids=None):
    return StakerInfo(
        address=address,
        staked_units=units,
        token_ids=token_ids if token_ids is not None else list(range(units)),
        checkpoint_block=checkpoint,
    )


def test_unknown_account_is_zero_valued(ledger):
    entry = ledger.get("nobody")
    assert entry.staked_units == 0
    assert entry.accrued_balance == 0
    assert entry.last_claim_timestamp is None
    assert entry.state == StakeState.UNSTAKED
    assert not ledger.exists("nobody")
    assert ledger.project("nobody", 100) == 0


def test_settle_unstaked_only_advances_checkpoint(ledger):
    entry = ledger.get("alice")
    assert ledger.settle(entry, 50) == 0
    assert entry.checkpoint_block == 50
    assert entry.accrued_balance == 0


def test_settle_scales_by_staked_units(ledger):
    entry = staked(units=3)
    assert ledger.settle(entry, 20) == 3 * 20 * 10
    assert entry.accrued_balance == 600
    assert entry.checkpoint_block == 20


def test_settle_is_idempotent_at_same_block(ledger):
    entry = staked(units=2)
    ledger.settle(entry, 15)
    balance = entry.accrued_balance
    assert ledger.settle(entry, 15) == 0
    assert entry.accrued_balance == balance


def test_settle_sums_every_rate_change_in_interval(ledger):
    entry = staked(units=2)
    ledger.schedule.set_rate(20, 5)
    ledger.schedule.set_rate(1, 12)
    ledger.schedule.set_rate(50, 30)
    ledger.settle(entry, 40)
    assert entry.accrued_balance == 2 * (5 * 10 + 7 * 20 + 18 * 1 + 10 * 50)


def test_old_stake_size_pays_for_elapsed_interval(ledger):
    entry = staked(units=1)
    ledger.settle(entry, 10)
    entry.staked_units += 2
    entry.token_ids.extend([1, 2])
    ledger.settle(entry, 20)
    assert entry.accrued_balance == 10 * 10 * 1 + 10 * 10 * 3


def test_settle_cannot_rewind_checkpoint(ledger):
    entry = staked(checkpoint=30)
    with pytest.raises(InputError):
        ledger.settle(entry, 29)
    assert entry.checkpoint_block == 30


def test_get_returns_copy(ledger):
    ledger.put(staked(token_ids=[7]))
    entry = ledger.get("alice")
    entry.accrued_balance = 999
    entry.token_ids.append(8)
    stored = ledger.get("alice")
    assert stored.accrued_balance == 0
    assert stored.token_ids == [7]
    assert ledger.owner_of(8) is None


def test_project_does_not_mutate(ledger):
    ledger.put(staked(units=1, token_ids=[3]))
    assert ledger.project("alice", 25) == 250
    assert ledger.get("alice").checkpoint_block == 0
    assert ledger.get("alice").accrued_balance == 0
    # Projection equals a real settlement at the same block
    entry = ledger.get("alice")
    ledger.settle(entry, 25)
    assert entry.accrued_balance == 250


def test_token_owner_index_follows_put(ledger):
    entry = staked(units=2, token_ids=[1, 2])
    ledger.put(entry)
    assert ledger.owner_of(1) == "alice"
    entry.token_ids = [2]
    entry.staked_units = 1
    ledger.put(entry)
    assert ledger.owner_of(1) is None
    assert ledger.owner_of(2) == "alice"
    assert ledger.total_staked() == 1


def test_monotonic_accrual_between_claims(ledger):
    entry = staked(units=1)
    previous = 0
    for block in range(1, 60, 3):
        ledger.settle(entry, block)
        assert entry.accrued_balance >= previous
        previous = entry.accrued_balance
        if block == 16:
            ledger.schedule.set_rate(0, 16)
        if block == 31:
            ledger.schedule.set_rate(10, 31)
            entry.staked_units += 1
    assert entry.accrued_balance == 16 * 10 + (58 - 31) * 10 * 2
