# MIT License
# Copyright (c) 2025 Hashborn

"""
Staking state machine.

Every mutating operation follows the same shape:
1. validate input and preconditions (no state touched)
2. settle a copy of the caller's ledger entry through the current block
3. call the asset collaborators (lock / unlock / credit)
4. store the entry and queue rows in one batch
5. publish the copy and queue changes in memory, emit the event

If step 3 or 4 fails nothing from step 2 is kept and custody calls already
made are reversed, so an operation either commits completely or not at all.
Claims store before crediting and restore the stored row if the credit fails.
"""

import functools
import logging
import threading
from typing import Iterable, List, Optional, Tuple, TYPE_CHECKING

from .admin import StakingAdmin
from .clock import TimeSource
from .custody import CollateralCustody, RewardLedger
from .events import EventBus
from .ledger import AccountLedger
from .withdrawals import ClaimGate, WithdrawalQueue
from ..observability import metrics
from ...protocol.config.params import StakingConfig
from ...protocol.types.common import (
    EmptyInput,
    InputError,
    NotStaked,
    StakingError,
    StakingEvent,
)
from ...protocol.types.staking import PendingWithdrawal, RateChange, StakeInfo, StakerInfo

if TYPE_CHECKING:
    from ..storage.db import StorageDB

logger = logging.getLogger(__name__)


def _operation(name: str):
    """Serializes the call, logs and counts rejections."""
    def decorator(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            with self._lock:
                try:
                    result = func(self, *args, **kwargs)
                except StakingError as e:
                    logger.warning(f"{name} rejected ({e.code}): {e}")
                    metrics.record_rejection(name, e.code)
                    raise
            metrics.record_operation(name)
            return result
        return wrapper
    return decorator


class Staker:
    def __init__(self, admin: StakingAdmin, custody: CollateralCustody, reward_token: RewardLedger,
                 ledger: Optional[AccountLedger] = None, withdrawals: Optional[WithdrawalQueue] = None):
        self.admin = admin
        self.config = admin.config
        self.schedule = admin.schedule
        self.clock = admin.clock
        self.db = admin.db
        self.bus: EventBus = admin.bus

        self.custody = custody
        self.reward_token = reward_token

        self.ledger = ledger or AccountLedger(self.schedule, self.db)
        self.withdrawals = withdrawals or WithdrawalQueue(self.config, self.db)
        self.claim_gate = ClaimGate(self.config)

        # One writer at a time: settle + mutate must not interleave
        self._lock = threading.RLock()

    @classmethod
    def create(cls, config: StakingConfig, custody: CollateralCustody, reward_token: RewardLedger,
               clock: TimeSource, db: 'StorageDB' = None, bus: Optional[EventBus] = None) -> 'Staker':
        admin = StakingAdmin(config, clock, db=db, bus=bus)
        return cls(admin, custody, reward_token)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize(token_ids: Iterable[int], empty_message: str) -> List[int]:
        items = list(token_ids)
        if not items:
            raise EmptyInput(empty_message)
        for token_id in items:
            if isinstance(token_id, bool) or not isinstance(token_id, int) or token_id < 0:
                raise InputError(f"Invalid token id: {token_id!r}")
        if len(set(items)) != len(items):
            raise InputError("Duplicate token ids in request")
        return items

    def _store(self, items: List[Tuple[str, str]], deletes: Iterable[str] = ()):
        """Writes one operation's rows in a single transaction, before anything is published in memory."""
        if self.db is not None:
            self.db.write_batch(items, deletes)

    def _release(self, owner: str, token_ids: List[int]):
        """Reverses locks taken by a failed stake()."""
        for token_id in reversed(token_ids):
            try:
                self.custody.unlock(owner, token_id)
            except Exception as e:
                logger.error(f"Rollback failed: could not unlock token {token_id} for {owner}: {e}")

    def _relock(self, owner: str, token_ids: List[int]):
        """Reverses unlocks made by a failed withdraw()."""
        for token_id in reversed(token_ids):
            try:
                self.custody.lock(owner, token_id)
            except Exception as e:
                logger.error(f"Rollback failed: could not re-lock token {token_id} for {owner}: {e}")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    @_operation("stake")
    def stake(self, owner: str, token_ids: Iterable[int]) -> StakerInfo:
        items = self._normalize(token_ids, "Staking 0 tokens")
        for token_id in items:
            holder = self.ledger.owner_of(token_id)
            if holder is not None:
                raise InputError(f"Token {token_id} is already staked by {holder}")

        now = self.clock.height()
        entry = self.ledger.get(owner)
        self.ledger.settle(entry, now)

        locked: List[int] = []
        try:
            for token_id in items:
                self.custody.lock(owner, token_id)
                locked.append(token_id)
            entry.token_ids.extend(items)
            entry.staked_units += len(items)
            self._store([self.ledger.record(entry)])
        except Exception:
            self._release(owner, locked)
            raise
        self.ledger.put(entry)

        logger.info(f"{owner} staked {len(items)} token(s) at block {now} (total {entry.staked_units})")
        self.bus.emit(StakingEvent.TOKENS_STAKED, staker=owner, token_ids=items, block=now)
        return entry

    @_operation("request_withdraw")
    def request_withdraw(self, owner: str, token_ids: Iterable[int]) -> List[PendingWithdrawal]:
        """
        Starts unbonding for staked items.

        The items stay staked and keep accruing until withdraw() completes.
        """
        items = self._normalize(token_ids, "Withdrawing 0 tokens")
        for token_id in items:
            if self.ledger.owner_of(token_id) != owner:
                raise NotStaked(f"Token {token_id} is not staked by {owner}")

        now = self.clock.height()
        entry = self.ledger.get(owner)
        self.ledger.settle(entry, now)
        requests = self.withdrawals.prepare(owner, items, now)

        self._store([self.ledger.record(entry)] + self.withdrawals.records(requests))
        self.withdrawals.add(requests)
        self.ledger.put(entry)

        logger.info(
            f"{owner} requested withdrawal of {len(items)} token(s) at block {now}, "
            f"unbonding {self.config.unbonding_period} block(s)"
        )
        self.bus.emit(StakingEvent.WITHDRAW_REQUESTED, staker=owner, token_ids=items, block=now)
        return requests

    @_operation("withdraw")
    def withdraw(self, owner: str, token_ids: Iterable[int]) -> StakerInfo:
        items = self._normalize(token_ids, "Withdrawing 0 tokens")
        now = self.clock.height()
        self.withdrawals.ensure_mature(owner, items, now)

        entry = self.ledger.get(owner)
        # Paid with the stake size that still includes the withdrawn items
        self.ledger.settle(entry, now)

        unlocked: List[int] = []
        try:
            for token_id in items:
                self.custody.unlock(owner, token_id)
                unlocked.append(token_id)
            withdrawn = set(items)
            entry.token_ids = [t for t in entry.token_ids if t not in withdrawn]
            entry.staked_units -= len(items)
            self._store([self.ledger.record(entry)], [self.withdrawals.key(t) for t in items])
        except Exception:
            self._relock(owner, unlocked)
            raise
        self.ledger.put(entry)
        self.withdrawals.consume(items)

        logger.info(f"{owner} withdrew {len(items)} token(s) at block {now} (remaining {entry.staked_units})")
        self.bus.emit(StakingEvent.TOKENS_WITHDRAWN, staker=owner, token_ids=items, block=now)
        return entry

    @_operation("claim_rewards")
    def claim_rewards(self, owner: str) -> int:
        now = self.clock.height()
        now_ts = self.clock.timestamp()

        previous = self.ledger.get(owner)
        self.claim_gate.check(previous, now_ts)
        entry = previous.model_copy(deep=True)
        self.ledger.settle(entry, now)

        amount = entry.accrued_balance
        if amount == 0:
            raise InputError("No rewards to claim")

        entry.accrued_balance = 0
        entry.last_claim_timestamp = now_ts
        self._store([self.ledger.record(entry)])
        try:
            self.reward_token.credit(owner, amount)
        except Exception:
            # Put the stored row back; memory still holds `previous`
            try:
                self._store([self.ledger.record(previous)])
            except Exception as e:
                logger.error(f"Rollback failed: could not restore stored entry of {owner}: {e}")
            raise
        self.ledger.put(entry)
        metrics.record_claim(amount)

        logger.info(f"{owner} claimed {amount} at block {now}")
        self.bus.emit(StakingEvent.REWARDS_CLAIMED, staker=owner, amount=amount, block=now)
        return amount

    # ------------------------------------------------------------------
    # Administrator pass-through
    # ------------------------------------------------------------------

    @_operation("set_reward_per_block")
    def set_reward_per_block(self, rate: int):
        return self.admin.set_reward_per_block(rate)

    @_operation("set_unbonding_period")
    def set_unbonding_period(self, blocks: int):
        self.admin.set_unbonding_period(blocks)

    @_operation("set_reward_delay_period")
    def set_reward_delay_period(self, seconds: int):
        self.admin.set_reward_delay_period(seconds)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_stake_info(self, address: str) -> StakeInfo:
        """Staked units and the balance a settlement at the current block would yield."""
        with self._lock:
            entry = self.ledger.get(address)
            return StakeInfo(
                staked_units=entry.staked_units,
                projected_rewards=self.ledger.project(address, self.clock.height()),
            )

    def staker_info(self, address: str) -> StakerInfo:
        with self._lock:
            return self.ledger.get(address)

    def pending_withdrawals(self, address: str) -> List[PendingWithdrawal]:
        with self._lock:
            return self.withdrawals.for_owner(address)

    def next_claim_at(self, address: str) -> Optional[int]:
        with self._lock:
            return self.claim_gate.next_claim_at(self.ledger.get(address))

    def rate_schedule(self) -> Tuple[RateChange, ...]:
        return self.schedule.changes
