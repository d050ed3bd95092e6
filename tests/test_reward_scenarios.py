# MIT License
# Copyright (c) 2025 Hashborn

"""
End-to-end reward timelines with several participants and rate regimes.

Expected values are computed by hand from the rate schedule; they must be
reproduced exactly, including at 18-decimal token scale.
"""
import pytest

from nftstake.node.core.clock import ManualClock
from nftstake.node.core.custody import InMemoryNFTCollection, InMemoryRewardToken
from nftstake.node.core.events import EventBus
from nftstake.node.core.staker import Staker
from nftstake.protocol.config.params import ONE_TOKEN, StakingConfig

USER_A = "nftstake1usera"
USER_B = "nftstake1userb"
BLOCKS_PER_DAY = 24


def make_staker(rate, pool):
    clock = ManualClock(height=0, timestamp=1_700_000_000, block_time_sec=3600)
    config = StakingConfig(network_id="scenario", reward_per_block=rate,
                           reward_delay_period=0, unbonding_period=0)
    nft = InMemoryNFTCollection()
    token = InMemoryRewardToken()
    token.fund_pool(pool)
    staker = Staker.create(config, nft, token, clock, bus=EventBus())

    for owner, token_id in ((USER_A, 1), (USER_B, 2)):
        nft.mint(owner, token_id)
        nft.set_approval_for_all(owner, nft.custodian, True)
    return staker, clock, token


def days(n):
    return n * BLOCKS_PER_DAY


def test_two_regimes_two_participants():
    staker, clock, _ = make_staker(rate=10, pool=0)

    staker.stake(USER_A, [1])
    clock.mine(30)
    staker.set_reward_per_block(20)
    clock.mine(30)
    staker.stake(USER_B, [2])
    clock.mine(60)

    assert clock.height() == 120
    assert staker.get_stake_info(USER_A).projected_rewards == 30 * 10 + 90 * 20
    assert staker.get_stake_info(USER_B).projected_rewards == 60 * 20


@pytest.mark.parametrize("scale", [1, ONE_TOKEN])
def test_day_based_timeline_without_claims(scale):
    staker, clock, _ = make_staker(rate=10 * scale, pool=0)

    staker.stake(USER_A, [1])
    clock.mine(days(30))
    staker.stake(USER_B, [2])
    clock.mine(days(30))
    staker.set_reward_per_block(20 * scale)
    clock.mine(days(60))

    # Day 120
    assert staker.get_stake_info(USER_A).projected_rewards == 43_200 * scale
    assert staker.get_stake_info(USER_B).projected_rewards == 36_000 * scale

    clock.mine(days(60))
    staker.set_reward_per_block(30 * scale)
    clock.mine(days(180))

    # Day 360
    assert staker.get_stake_info(USER_A).projected_rewards == 201_600 * scale
    assert staker.get_stake_info(USER_B).projected_rewards == 194_400 * scale


@pytest.mark.parametrize("scale", [1, ONE_TOKEN])
def test_day_based_timeline_with_claim_at_day_120(scale):
    staker, clock, token = make_staker(rate=10 * scale, pool=1_000_000 * scale)

    staker.stake(USER_A, [1])
    clock.mine(days(30))
    staker.stake(USER_B, [2])
    clock.mine(days(30))
    staker.set_reward_per_block(20 * scale)
    clock.mine(days(60))

    assert staker.claim_rewards(USER_A) == 43_200 * scale
    assert staker.claim_rewards(USER_B) == 36_000 * scale
    assert staker.get_stake_info(USER_A).projected_rewards == 0

    clock.mine(days(60))
    staker.set_reward_per_block(30 * scale)
    clock.mine(days(180))

    # 60 days at 20 plus 180 days at 30, identical for both after claiming
    expected = (days(60) * 20 + days(180) * 30) * scale
    assert expected == 158_400 * scale
    assert staker.get_stake_info(USER_A).projected_rewards == expected
    assert staker.get_stake_info(USER_B).projected_rewards == expected
    assert token.balance_of(USER_A) == 43_200 * scale
    assert token.pool_balance == (1_000_000 - 43_200 - 36_000) * scale


def test_projection_matches_settlement_at_every_step():
    staker, clock, token = make_staker(rate=7, pool=10**9)
    staker.stake(USER_A, [1])

    paid = 0
    for blocks, next_rate in ((4, 3), (5, 11), (6, 5), (2, 1)):
        clock.mine(blocks)
        projected = staker.get_stake_info(USER_A).projected_rewards
        # Claiming settles for real; the payout must equal the projection
        assert staker.claim_rewards(USER_A) == projected
        paid += projected
        staker.set_reward_per_block(next_rate)

    assert paid == 4 * 7 + 5 * 3 + 6 * 11 + 2 * 5
    assert token.balance_of(USER_A) == paid
