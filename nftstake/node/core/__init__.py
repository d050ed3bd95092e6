# MIT License
# Copyright (c) 2025 Hashborn

"""
Staking core: rate schedule, account ledger, withdrawal queue and the
stake / withdraw / claim state machine.
"""

from .admin import StakingAdmin
from .clock import ManualClock, SystemClock
from .ledger import AccountLedger
from .rate_schedule import RateSchedule
from .staker import Staker
from .withdrawals import ClaimGate, WithdrawalQueue

__all__ = [
    "AccountLedger",
    "ClaimGate",
    "ManualClock",
    "RateSchedule",
    "Staker",
    "StakingAdmin",
    "SystemClock",
    "WithdrawalQueue",
]
