# MIT License
# Copyright (c) 2025 Hashborn

import os
from typing import Dict, Optional

# Global Constants
DENOM = "nsr"
DECIMALS = 18

ONE_TOKEN = 10**DECIMALS
FIVE_HOURS = 5 * 60 * 60

NETWORK_ENV_VAR = "NFTSTAKE_NETWORK"


class StakingConfig:
    def __init__(self,
                 network_id: str,
                 reward_per_block: int,
                 reward_delay_period: int,
                 unbonding_period: int,
                 block_time_sec: int = 12,
                 # Sanity ceiling for administrator rate changes (None = unbounded)
                 max_reward_per_block: Optional[int] = None,
                 # Initial funding of the in-memory reward pool used by the node
                 reward_pool_premine: int = 0,
                 version: int = 1):
        self.network_id = network_id
        self.reward_per_block = reward_per_block
        self.reward_delay_period = reward_delay_period    # seconds
        self.unbonding_period = unbonding_period          # blocks
        self.block_time_sec = block_time_sec
        self.max_reward_per_block = max_reward_per_block
        self.reward_pool_premine = reward_pool_premine
        self.version = version

    def copy(self) -> 'StakingConfig':
        return StakingConfig(**self.to_dict())

    def to_dict(self) -> Dict:
        return {
            "network_id": self.network_id,
            "reward_per_block": self.reward_per_block,
            "reward_delay_period": self.reward_delay_period,
            "unbonding_period": self.unbonding_period,
            "block_time_sec": self.block_time_sec,
            "max_reward_per_block": self.max_reward_per_block,
            "reward_pool_premine": self.reward_pool_premine,
            "version": self.version,
        }

    def __repr__(self):
        return (
            f"StakingConfig(network_id='{self.network_id}', reward_per_block={self.reward_per_block}, "
            f"reward_delay_period={self.reward_delay_period}, unbonding_period={self.unbonding_period})"
        )


NETWORKS: Dict[str, StakingConfig] = {
    "devnet": StakingConfig(
        network_id="devnet",
        reward_per_block=10 * ONE_TOKEN,
        reward_delay_period=0,
        unbonding_period=0,
        block_time_sec=2,
        reward_pool_premine=1_000_000 * ONE_TOKEN,
    ),
    "testnet": StakingConfig(
        network_id="testnet",
        reward_per_block=10 * ONE_TOKEN,
        reward_delay_period=FIVE_HOURS,
        unbonding_period=5,
        block_time_sec=12,
        max_reward_per_block=1_000 * ONE_TOKEN,
        reward_pool_premine=100_000 * ONE_TOKEN,
    ),
    "mainnet": StakingConfig(
        network_id="mainnet",
        reward_per_block=10 * ONE_TOKEN,
        reward_delay_period=FIVE_HOURS,
        unbonding_period=7200,  # ~1 day at 12s blocks
        block_time_sec=12,
        max_reward_per_block=1_000 * ONE_TOKEN,
    ),
}


def get_network(name: Optional[str] = None) -> StakingConfig:
    """
    Returns a fresh copy of a network preset.

    Args:
        name: Preset name; falls back to $NFTSTAKE_NETWORK, then "devnet"
    """
    name = name or os.environ.get(NETWORK_ENV_VAR, "devnet")
    if name not in NETWORKS:
        raise ValueError(f"Unknown network '{name}' (known: {', '.join(sorted(NETWORKS))})")
    return NETWORKS[name].copy()


# Default to devnet for now
CURRENT_NETWORK = NETWORKS["devnet"]
