# MIT License
# Copyright (c) 2025 Hashborn

from pydantic import BaseModel, Field
from typing import List, Optional
from .common import StakeState


class RateChange(BaseModel):
    """A reward rate in force from `effective_from_block` until the next change."""
    effective_from_block: int   # First block the rate applies to
    reward_per_block: int       # Reward units per staked item per block


class PendingWithdrawal(BaseModel):
    """Represents an outstanding withdrawal request for one staked item."""
    token_id: int               # Collateral item being unbonded
    owner: str                  # Address that staked the item
    requested_at_block: int     # Block height of the request

    def matures_at(self, unbonding_period: int) -> int:
        return self.requested_at_block + unbonding_period

    def is_mature(self, now: int, unbonding_period: int) -> bool:
        return now - self.requested_at_block >= unbonding_period


class StakerInfo(BaseModel):
    address: str
    staked_units: int = 0                 # Number of locked collateral items
    token_ids: List[int] = Field(default_factory=list)

    # Settlement tracking
    checkpoint_block: int = 0             # Last block this entry was settled at
    accrued_balance: int = 0              # Owed but not yet claimed

    # Claim gate (seconds); None until the first successful claim
    last_claim_timestamp: Optional[int] = None

    @property
    def state(self) -> StakeState:
        return StakeState.STAKED if self.staked_units > 0 else StakeState.UNSTAKED


class StakeInfo(BaseModel):
    """Read-only view returned by `get_stake_info`."""
    staked_units: int
    projected_rewards: int


class CollectionItem(BaseModel):
    """One item of the devnet collection."""
    token_id: int
    owner: str                          # Current holder (the custodian while staked)
    locked_for: Optional[str] = None    # Staker the custodian holds the item for
    approved: Optional[str] = None      # Single-item operator approval
