# MIT License
# Copyright (c) 2025 Hashborn

"""
Time sources.

Block height drives reward accrual and unbonding; wall-clock seconds drive
the claim delay. Both must be non-decreasing.
"""

import time
import threading
from typing import Optional, Protocol


class TimeSource(Protocol):
    def height(self) -> int:
        ...

    def timestamp(self) -> int:
        ...


class ManualClock:
    """
    Clock advanced explicitly by the caller.

    Used by tests and simulations in place of a chain. Mining a block also
    moves the timestamp forward by `block_time_sec`.
    """

    def __init__(self, height: int = 0, timestamp: int = 0, block_time_sec: int = 0):
        self._height = height
        self._timestamp = timestamp
        self.block_time_sec = block_time_sec
        self._lock = threading.Lock()

    def height(self) -> int:
        return self._height

    def timestamp(self) -> int:
        return self._timestamp

    def mine(self, blocks: int = 1) -> int:
        if blocks < 0:
            raise ValueError("Cannot mine a negative number of blocks")
        with self._lock:
            self._height += blocks
            self._timestamp += blocks * self.block_time_sec
            return self._height

    def advance_time(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("Time cannot move backwards")
        with self._lock:
            self._timestamp += seconds
            return self._timestamp


class SystemClock:
    """Derives block height from elapsed wall-clock time since genesis."""

    def __init__(self, block_time_sec: int, genesis_time: Optional[int] = None):
        if block_time_sec <= 0:
            raise ValueError("block_time_sec must be positive")
        self.block_time_sec = block_time_sec
        self.genesis_time = genesis_time if genesis_time is not None else int(time.time())

    def height(self) -> int:
        return max(0, (self.timestamp() - self.genesis_time) // self.block_time_sec)

    def timestamp(self) -> int:
        return int(time.time())
