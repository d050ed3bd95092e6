# MIT License
# Copyright (c) 2025 Hashborn

"""
Reward Rate Schedule

Append-only history of reward-per-block changes. Settlement integrates the
schedule over [from_block, to_block) so that an interval spanning several
rate regimes is paid at each regime's own rate.

Readers never take the lock: the history is an immutable tuple that is
swapped in whole on every append.
"""

import bisect
import logging
import threading
from typing import List, Optional, Tuple, TYPE_CHECKING

from ...protocol.types.common import InputError, InvalidRate
from ...protocol.types.staking import RateChange

if TYPE_CHECKING:
    from ..storage.db import StorageDB

logger = logging.getLogger(__name__)

RATE_KEY_PREFIX = "rate:"


class RateSchedule:
    def __init__(self, initial_rate: int, genesis_block: int = 0,
                 max_rate: Optional[int] = None, changes: Optional[List[RateChange]] = None):
        self.max_rate = max_rate
        if changes:
            history = tuple(changes)
        else:
            self.validate_rate(initial_rate)
            history = (RateChange(effective_from_block=genesis_block, reward_per_block=initial_rate),)
        # (starts, changes) published together
        self._view: Tuple[Tuple[int, ...], Tuple[RateChange, ...]] = (
            tuple(c.effective_from_block for c in history),
            history,
        )
        self._lock = threading.Lock()
        # Index of the first entry not yet written to storage
        self._dirty_from = 0

    @classmethod
    def from_db(cls, db: 'StorageDB', initial_rate: int, genesis_block: int = 0,
                max_rate: Optional[int] = None) -> 'RateSchedule':
        """Loads a persisted schedule, or starts a new one if none is stored."""
        rows = db.get_state_by_prefix(RATE_KEY_PREFIX)
        if not rows:
            return cls(initial_rate, genesis_block, max_rate)
        changes = [RateChange.model_validate_json(rows[k]) for k in sorted(rows)]
        schedule = cls(initial_rate, genesis_block, max_rate, changes=changes)
        schedule._dirty_from = len(changes)
        return schedule

    @property
    def changes(self) -> Tuple[RateChange, ...]:
        return self._view[1]

    @property
    def current_rate(self) -> int:
        return self._view[1][-1].reward_per_block

    def __len__(self) -> int:
        return len(self._view[1])

    def validate_rate(self, rate: int):
        if isinstance(rate, bool) or not isinstance(rate, int):
            raise InvalidRate(f"Reward rate must be an integer, got {rate!r}")
        if rate < 0:
            raise InvalidRate(f"Reward rate cannot be negative: {rate}")
        if self.max_rate is not None and rate > self.max_rate:
            raise InvalidRate(f"Reward rate {rate} exceeds ceiling {self.max_rate}")

    def set_rate(self, new_rate: int, now: int) -> RateChange:
        """
        Appends a rate change effective from block `now`.

        A second change in the same block replaces the rate of that block's
        entry so the schedule stays strictly ordered.
        """
        self.validate_rate(new_rate)
        change = RateChange(effective_from_block=now, reward_per_block=new_rate)

        with self._lock:
            starts, history = self._view
            last = history[-1]
            if now < last.effective_from_block:
                raise InvalidRate(
                    f"Rate change at block {now} predates last change at block {last.effective_from_block}"
                )
            if now == last.effective_from_block:
                history = history[:-1] + (change,)
                self._dirty_from = min(self._dirty_from, len(history) - 1)
            else:
                starts = starts + (now,)
                history = history + (change,)
            self._view = (starts, history)

        logger.info(f"Reward rate set to {new_rate} per block from block {now}")
        return change

    def rate_at(self, block: int) -> int:
        starts, history = self._view
        i = bisect.bisect_right(starts, block) - 1
        return history[max(i, 0)].reward_per_block

    def integrate(self, from_block: int, to_block: int) -> int:
        """
        Reward per staked unit accrued over [from_block, to_block).

        `from_block` older than the first recorded change is clamped to the
        earliest known rate; no history exists before genesis.
        """
        if to_block < from_block:
            raise InputError(f"Cannot integrate backwards: {from_block} -> {to_block}")
        if to_block == from_block:
            return 0

        starts, history = self._view
        i = max(bisect.bisect_right(starts, from_block) - 1, 0)
        total = 0
        cursor = from_block
        while cursor < to_block:
            segment_end = starts[i + 1] if i + 1 < len(starts) else to_block
            segment_end = min(segment_end, to_block)
            if segment_end > cursor:
                total += (segment_end - cursor) * history[i].reward_per_block
                cursor = segment_end
            i += 1
        return total

    # --- Persistence ---
    def dump_changes(self) -> Tuple[List[Tuple[str, str]], List[str]]:
        with self._lock:
            history = self._view[1]
            items = [
                (f"{RATE_KEY_PREFIX}{index:010d}", history[index].model_dump_json())
                for index in range(self._dirty_from, len(history))
            ]
            self._dirty_from = len(history)
        return items, []

    def snapshot(self):
        """Opaque state for `restore()` when a change could not be stored."""
        with self._lock:
            return self._view, self._dirty_from

    def restore(self, snapshot):
        with self._lock:
            self._view, self._dirty_from = snapshot
