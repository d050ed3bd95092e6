# MIT License
# Copyright (c) 2025 Hashborn

"""NFT staking reward-accrual ledger."""

__version__ = "0.1.0"
