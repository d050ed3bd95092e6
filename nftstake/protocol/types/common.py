# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum


class StakingEvent(str, Enum):
    TOKENS_STAKED = "TokensStaked"
    WITHDRAW_REQUESTED = "WithdrawRequested"
    TOKENS_WITHDRAWN = "TokensWithdrawn"
    REWARDS_CLAIMED = "RewardsClaimed"

    # Administrator
    REWARD_RATE_UPDATED = "RewardRateUpdated"
    UNBONDING_PERIOD_UPDATED = "UnbondingPeriodUpdated"
    REWARD_DELAY_UPDATED = "RewardDelayUpdated"


class StakeState(str, Enum):
    UNSTAKED = "UNSTAKED"
    STAKED = "STAKED"


class ProtocolError(Exception):
    pass


class StakingError(ProtocolError):
    """Base class for every rejected staking operation."""
    code = "staking_error"


# Input errors: rejected before any state mutation

class InputError(StakingError, ValueError):
    code = "input_error"


class EmptyInput(InputError):
    code = "empty_input"


# Preconditions: caller must wait or correct the request

class PreconditionNotMet(StakingError):
    code = "precondition_not_met"


class NotStaked(PreconditionNotMet):
    code = "not_staked"


class WithdrawExceedsStaked(PreconditionNotMet):
    code = "withdraw_exceeds_staked"


class ClaimTooSoon(PreconditionNotMet):
    code = "claim_too_soon"


# Collaborator failures: the whole operation is aborted

class CollaboratorFailure(StakingError):
    code = "collaborator_failure"


class NotOwned(CollaboratorFailure):
    code = "not_owned"


class NotApproved(CollaboratorFailure):
    code = "not_approved"


class InsufficientRewardPool(CollaboratorFailure):
    code = "insufficient_reward_pool"


# Administrator boundary

class ConfigurationError(StakingError, ValueError):
    code = "configuration_error"


class InvalidRate(ConfigurationError):
    code = "invalid_rate"
