# MIT License
# Copyright (c) 2025 Hashborn

"""
Administrator capability.

Owns the StakingConfig record and the RateSchedule. The Staker receives this
object by reference; nothing reads configuration from module globals.
Rate changes are O(1): no account is settled when the rate moves, each one
picks the change up at its next settlement.
"""

import json
import logging
from typing import Optional, TYPE_CHECKING

from .clock import TimeSource
from .events import EventBus, event_bus
from .rate_schedule import RateSchedule
from ...protocol.config.params import StakingConfig
from ...protocol.types.common import ConfigurationError, StakingEvent
from ...protocol.types.staking import RateChange

if TYPE_CHECKING:
    from ..storage.db import StorageDB

logger = logging.getLogger(__name__)

CONFIG_KEY = "cfg"


class StakingAdmin:
    def __init__(self, config: StakingConfig, clock: TimeSource,
                 schedule: Optional[RateSchedule] = None,
                 db: 'StorageDB' = None, bus: Optional[EventBus] = None):
        self.config = config
        self.clock = clock
        self.db = db
        self.bus = bus or event_bus

        if db is not None:
            self._load_config()

        if schedule is None:
            if db is not None:
                schedule = RateSchedule.from_db(
                    db, config.reward_per_block, clock.height(), config.max_reward_per_block
                )
            else:
                schedule = RateSchedule(config.reward_per_block, clock.height(), config.max_reward_per_block)
        self.schedule = schedule
        # Stored schedule wins over the preset rate
        self.config.reward_per_block = self.schedule.current_rate
        self._persist()

    def _load_config(self):
        raw = self.db.get_state(CONFIG_KEY)
        if not raw:
            return
        stored = json.loads(raw)
        self.config.reward_delay_period = int(stored["reward_delay_period"])
        self.config.unbonding_period = int(stored["unbonding_period"])
        logger.info(
            f"Loaded stored config: delay={self.config.reward_delay_period}s, "
            f"unbonding={self.config.unbonding_period} blocks"
        )

    def _persist(self):
        if self.db is None:
            return
        items, _ = self.schedule.dump_changes()
        items.append((CONFIG_KEY, json.dumps(self.config.to_dict(), sort_keys=True)))
        self.db.write_batch(items)

    @staticmethod
    def _validate_period(name: str, value: int):
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ConfigurationError(f"{name} must be a non-negative integer, got {value!r}")

    def set_reward_per_block(self, rate: int) -> RateChange:
        now = self.clock.height()
        snapshot = self.schedule.snapshot()
        old_rate = self.config.reward_per_block
        change = self.schedule.set_rate(rate, now)
        self.config.reward_per_block = rate
        try:
            self._persist()
        except Exception:
            self.schedule.restore(snapshot)
            self.config.reward_per_block = old_rate
            raise
        self.bus.emit(StakingEvent.REWARD_RATE_UPDATED, reward_per_block=rate, block=now)
        return change

    def _set_period(self, name: str, value: int) -> int:
        """Stores a new period; the in-memory value is reverted if the write fails."""
        self._validate_period(name, value)
        old = getattr(self.config, name)
        setattr(self.config, name, value)
        try:
            self._persist()
        except Exception:
            setattr(self.config, name, old)
            raise
        return old

    def set_unbonding_period(self, blocks: int):
        old = self._set_period("unbonding_period", blocks)
        logger.info(f"Unbonding period changed {old} -> {blocks} blocks")
        self.bus.emit(StakingEvent.UNBONDING_PERIOD_UPDATED, old=old, new=blocks)

    def set_reward_delay_period(self, seconds: int):
        old = self._set_period("reward_delay_period", seconds)
        logger.info(f"Reward claim delay changed {old} -> {seconds} seconds")
        self.bus.emit(StakingEvent.REWARD_DELAY_UPDATED, old=old, new=seconds)
