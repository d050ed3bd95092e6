# MIT License
# Copyright (c) 2025 Hashborn

"""
Account Ledger

One StakerInfo per participant, settled lazily. Settlement folds the reward
accrued since the entry's checkpoint into its balance using the stake size
that was in force over that interval, then advances the checkpoint.

Entries are handed out as copies. Callers mutate the copy, store its
`record()` and publish it with `put()` only once their whole operation has
succeeded.
"""

import logging
from typing import Dict, List, Optional, Tuple, TYPE_CHECKING

from .rate_schedule import RateSchedule
from ...protocol.types.common import InputError
from ...protocol.types.staking import StakerInfo

if TYPE_CHECKING:
    from ..storage.db import StorageDB

logger = logging.getLogger(__name__)

STAKER_KEY_PREFIX = "stk:"


class AccountLedger:
    def __init__(self, schedule: RateSchedule, db: 'StorageDB' = None,
                 entries: Dict[str, StakerInfo] = None):
        self.schedule = schedule
        self.db = db
        # address -> StakerInfo
        self._entries: Dict[str, StakerInfo] = entries if entries is not None else {}
        # token_id -> address of the staker holding it
        self._token_owner: Dict[int, str] = {}

        if db is not None and entries is None:
            self.load()
        self._reindex()

    def load(self):
        """Loads every persisted entry into the cache."""
        for key, raw_json in self.db.get_state_by_prefix(STAKER_KEY_PREFIX).items():
            entry = StakerInfo.model_validate_json(raw_json)
            self._entries[entry.address] = entry
        self._reindex()

    def _reindex(self):
        self._token_owner = {
            token_id: entry.address
            for entry in self._entries.values()
            for token_id in entry.token_ids
        }

    def get(self, address: str) -> StakerInfo:
        entry = self._entries.get(address)
        if entry is None:
            # Zero-valued entry, created for real on first put()
            return StakerInfo(address=address)
        return entry.model_copy(deep=True)

    def put(self, entry: StakerInfo):
        previous = self._entries.get(entry.address)
        if previous is not None:
            for token_id in previous.token_ids:
                self._token_owner.pop(token_id, None)
        stored = entry.model_copy(deep=True)
        self._entries[entry.address] = stored
        for token_id in stored.token_ids:
            self._token_owner[token_id] = stored.address

    def exists(self, address: str) -> bool:
        return address in self._entries

    def owner_of(self, token_id: int) -> Optional[str]:
        return self._token_owner.get(token_id)

    def addresses(self) -> List[str]:
        return sorted(self._entries.keys())

    def entries(self) -> List[StakerInfo]:
        return [self._entries[a].model_copy(deep=True) for a in self.addresses()]

    def total_staked(self) -> int:
        return sum(e.staked_units for e in self._entries.values())

    def _accrued_since_checkpoint(self, entry: StakerInfo, now: int) -> int:
        if now < entry.checkpoint_block:
            raise InputError(
                f"Cannot settle {entry.address} at block {now}: checkpoint is block {entry.checkpoint_block}"
            )
        if entry.staked_units == 0:
            return 0
        return self.schedule.integrate(entry.checkpoint_block, now) * entry.staked_units

    def settle(self, entry: StakerInfo, now: int) -> int:
        """
        Brings `entry` current through block `now`.

        Must run before `staked_units` changes. Returns the amount added.
        """
        delta = self._accrued_since_checkpoint(entry, now)
        entry.accrued_balance += delta
        entry.checkpoint_block = now
        if delta:
            logger.debug(
                f"Settled {entry.address}: +{delta} over {entry.staked_units} unit(s) "
                f"-> {entry.accrued_balance} at block {now}"
            )
        return delta

    def project(self, address: str, now: int) -> int:
        """Accrued balance `address` would have if settled at `now`. Does not mutate."""
        entry = self._entries.get(address)
        if entry is None:
            return 0
        return entry.accrued_balance + self._accrued_since_checkpoint(entry, now)

    # --- Persistence ---
    @staticmethod
    def record(entry: StakerInfo) -> Tuple[str, str]:
        """Storage row for `entry`. Written by the caller before `put()` publishes it."""
        return f"{STAKER_KEY_PREFIX}{entry.address}", entry.model_dump_json()
