# MIT License
# Copyright (c) 2025 Hashborn

"""
Persistence tests: ledger entries, pending withdrawals, rate schedule and
administrator periods survive a restart over the same sqlite file.
A failed write leaves memory, custody and storage as they were.
"""
import os
import shutil
import sqlite3
import tempfile
from unittest.mock import patch

import pytest

from nftstake.node.core.clock import ManualClock
from nftstake.node.core.custody import InMemoryNFTCollection, InMemoryRewardToken
from nftstake.node.core.events import EventBus
from nftstake.node.core.ledger import STAKER_KEY_PREFIX
from nftstake.node.core.rate_schedule import RATE_KEY_PREFIX, RateSchedule
from nftstake.node.core.staker import Staker
from nftstake.node.core.withdrawals import WITHDRAWAL_KEY_PREFIX
from nftstake.node.storage.db import StorageDB
from nftstake.protocol.config.params import StakingConfig
from nftstake.protocol.types.common import InsufficientRewardPool

USER = "nftstake1user"
OTHER = "nftstake1other"


@pytest.fixture
def db_path():
    tmpdir = tempfile.mkdtemp()
    yield os.path.join(tmpdir, "staking.db")
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def assets():
    nft = InMemoryNFTCollection()
    for token_id in (1, 2, 3):
        nft.mint(USER, token_id)
    nft.set_approval_for_all(USER, nft.custodian, True)
    token = InMemoryRewardToken()
    token.fund_pool(10**9)
    return nft, token


def open_staker(db_path, clock, nft, token):
    config = StakingConfig(network_id="test", reward_per_block=10,
                           reward_delay_period=0, unbonding_period=5)
    db = StorageDB(db_path)
    return Staker.create(config, nft, token, clock, db=db, bus=EventBus())


def test_state_table_roundtrip(db_path):
    db = StorageDB(db_path)
    db.set_state("a:1", "x")
    db.write_batch([("a:2", "y"), ("b:1", "z")], deletes=["a:1"])
    assert db.get_state("a:1") is None
    assert db.get_state_by_prefix("a:") == {"a:2": "y"}
    db.delete_state("b:1")
    assert db.get_state("b:1") is None
    db.clear_state()
    assert db.get_state_by_prefix("") == {}
    db.close()


def test_staker_state_survives_restart(db_path, assets):
    nft, token = assets
    clock = ManualClock(height=0, timestamp=1_700_000_000, block_time_sec=12)

    staker = open_staker(db_path, clock, nft, token)
    staker.stake(USER, [1, 2, 3])
    clock.mine(10)
    staker.set_reward_per_block(20)
    staker.set_unbonding_period(8)
    clock.mine(4)
    staker.request_withdraw(USER, [3])
    staker.db.close()

    clock.mine(6)
    restarted = open_staker(db_path, clock, nft, token)

    entry = restarted.staker_info(USER)
    assert entry.token_ids == [1, 2, 3]
    assert entry.checkpoint_block == 14
    assert entry.accrued_balance == 3 * (10 * 10 + 4 * 20)
    assert restarted.ledger.owner_of(2) == USER

    assert [c.reward_per_block for c in restarted.schedule.changes] == [10, 20]
    assert restarted.config.reward_per_block == 20
    assert restarted.config.unbonding_period == 8

    pending = restarted.pending_withdrawals(USER)
    assert [(p.token_id, p.requested_at_block) for p in pending] == [(3, 14)]
    assert restarted.get_stake_info(USER).projected_rewards == 3 * (10 * 10 + 10 * 20)
    restarted.db.close()


def test_completed_withdrawal_is_removed_from_storage(db_path, assets):
    nft, token = assets
    clock = ManualClock()
    staker = open_staker(db_path, clock, nft, token)

    staker.stake(USER, [1, 2])
    staker.request_withdraw(USER, [1, 2])
    assert len(staker.db.get_state_by_prefix(WITHDRAWAL_KEY_PREFIX)) == 2

    clock.mine(5)
    staker.withdraw(USER, [1])
    assert list(staker.db.get_state_by_prefix(WITHDRAWAL_KEY_PREFIX)) == [f"{WITHDRAWAL_KEY_PREFIX}2"]
    assert len(staker.db.get_state_by_prefix(STAKER_KEY_PREFIX)) == 1
    staker.db.close()


def test_same_block_rate_change_overwrites_stored_entry(db_path):
    db = StorageDB(db_path)
    schedule = RateSchedule.from_db(db, initial_rate=10)
    schedule.set_rate(15, 3)
    db.write_batch(schedule.dump_changes()[0])
    schedule.set_rate(25, 3)
    db.write_batch(schedule.dump_changes()[0])

    reloaded = RateSchedule.from_db(db, initial_rate=10)
    assert len(db.get_state_by_prefix(RATE_KEY_PREFIX)) == 2
    assert reloaded.rate_at(3) == 25
    assert reloaded.integrate(0, 5) == 3 * 10 + 2 * 25
    db.close()


def failing_writes(staker):
    return patch.object(staker.db, "write_batch", side_effect=sqlite3.OperationalError("disk I/O error"))


def test_failed_stake_write_leaves_nothing_behind(db_path, assets):
    nft, token = assets
    nft.mint(OTHER, 4)
    nft.set_approval_for_all(OTHER, nft.custodian, True)
    clock = ManualClock()
    staker = open_staker(db_path, clock, nft, token)

    with failing_writes(staker):
        with pytest.raises(sqlite3.OperationalError):
            staker.stake(USER, [1])
    assert nft.owner_of(1) == USER
    assert staker.ledger.owner_of(1) is None
    assert not staker.ledger.exists(USER)

    # A later successful write must not carry the failed stake with it
    staker.stake(OTHER, [4])
    staker.db.close()

    restarted = open_staker(db_path, clock, nft, token)
    assert not restarted.ledger.exists(USER)
    assert restarted.staker_info(OTHER).token_ids == [4]
    restarted.stake(USER, [1])
    assert restarted.ledger.owner_of(1) == USER
    restarted.db.close()


def test_failed_withdraw_write_keeps_items_staked(db_path, assets):
    nft, token = assets
    clock = ManualClock()
    staker = open_staker(db_path, clock, nft, token)
    staker.stake(USER, [1, 2])
    staker.request_withdraw(USER, [1, 2])
    clock.mine(5)
    before = staker.staker_info(USER)

    with failing_writes(staker):
        with pytest.raises(sqlite3.OperationalError):
            staker.withdraw(USER, [1, 2])
    assert nft.owner_of(1) == nft.custodian
    assert nft.owner_of(2) == nft.custodian
    assert staker.staker_info(USER) == before
    assert [p.token_id for p in staker.pending_withdrawals(USER)] == [1, 2]

    staker.withdraw(USER, [1, 2])
    assert nft.owner_of(1) == USER
    assert staker.db.get_state_by_prefix(WITHDRAWAL_KEY_PREFIX) == {}
    staker.db.close()


def test_failed_claim_write_pays_nothing(db_path, assets):
    nft, token = assets
    clock = ManualClock()
    staker = open_staker(db_path, clock, nft, token)
    staker.stake(USER, [1])
    clock.mine(3)
    before = staker.staker_info(USER)
    pool = token.pool_balance

    with failing_writes(staker):
        with pytest.raises(sqlite3.OperationalError):
            staker.claim_rewards(USER)
    assert token.balance_of(USER) == 0
    assert token.pool_balance == pool
    assert staker.staker_info(USER) == before

    assert staker.claim_rewards(USER) == 3 * 10
    assert token.balance_of(USER) == 3 * 10
    staker.db.close()


def test_failed_credit_restores_stored_entry(db_path, assets):
    nft, token = assets
    clock = ManualClock()
    staker = open_staker(db_path, clock, nft, token)
    staker.stake(USER, [1])
    clock.mine(3)

    with patch.object(token, "credit", side_effect=InsufficientRewardPool("pool is empty")):
        with pytest.raises(InsufficientRewardPool):
            staker.claim_rewards(USER)
    staker.db.close()

    restarted = open_staker(db_path, clock, nft, token)
    assert restarted.staker_info(USER).last_claim_timestamp is None
    assert restarted.get_stake_info(USER).projected_rewards == 3 * 10
    restarted.db.close()


def test_failed_rate_write_keeps_old_rate(db_path, assets):
    nft, token = assets
    clock = ManualClock()
    staker = open_staker(db_path, clock, nft, token)

    with failing_writes(staker):
        with pytest.raises(sqlite3.OperationalError):
            staker.set_reward_per_block(50)
        with pytest.raises(sqlite3.OperationalError):
            staker.set_unbonding_period(1)
    assert staker.config.reward_per_block == 10
    assert staker.config.unbonding_period == 5
    assert [c.reward_per_block for c in staker.schedule.changes] == [10]

    clock.mine(2)
    staker.set_reward_per_block(30)
    staker.db.close()

    restarted = open_staker(db_path, clock, nft, token)
    assert [(c.effective_from_block, c.reward_per_block) for c in restarted.schedule.changes] == [(0, 10), (2, 30)]
    assert restarted.config.unbonding_period == 5
    restarted.db.close()
