# MIT License
# Copyright (c) 2025 Hashborn

"""
Withdrawal Queue and Claim Gate

The queue tracks per-item unbonding requests (block based); the gate tracks
the per-account claim delay (wall-clock seconds). Both read their period
from the shared StakingConfig at evaluation time, so a period change also
applies to requests already waiting.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING

from ...protocol.config.params import StakingConfig
from ...protocol.types.common import ClaimTooSoon, InputError, WithdrawExceedsStaked
from ...protocol.types.staking import PendingWithdrawal, StakerInfo

if TYPE_CHECKING:
    from ..storage.db import StorageDB

logger = logging.getLogger(__name__)

WITHDRAWAL_KEY_PREFIX = "wd:"


class WithdrawalQueue:
    def __init__(self, config: StakingConfig, db: 'StorageDB' = None):
        self.config = config
        self.db = db
        # token_id -> PendingWithdrawal
        self._pending: Dict[int, PendingWithdrawal] = {}

        if db is not None:
            for raw_json in db.get_state_by_prefix(WITHDRAWAL_KEY_PREFIX).values():
                request = PendingWithdrawal.model_validate_json(raw_json)
                self._pending[request.token_id] = request

    def __len__(self) -> int:
        return len(self._pending)

    def get(self, token_id: int) -> Optional[PendingWithdrawal]:
        return self._pending.get(token_id)

    def for_owner(self, owner: str) -> List[PendingWithdrawal]:
        return sorted(
            (r for r in self._pending.values() if r.owner == owner),
            key=lambda r: (r.requested_at_block, r.token_id),
        )

    def ensure_not_pending(self, token_ids: Iterable[int]):
        for token_id in token_ids:
            if token_id in self._pending:
                raise InputError(f"Withdrawal already requested for token {token_id}")

    def prepare(self, owner: str, token_ids: Iterable[int], now: int) -> List[PendingWithdrawal]:
        """Builds the requests for `token_ids` without queueing them."""
        token_ids = list(token_ids)
        self.ensure_not_pending(token_ids)
        return [PendingWithdrawal(token_id=t, owner=owner, requested_at_block=now) for t in token_ids]

    def add(self, requests: Iterable[PendingWithdrawal]):
        for request in requests:
            self._pending[request.token_id] = request

    def ensure_mature(self, owner: str, token_ids: Iterable[int], now: int):
        """Raises WithdrawExceedsStaked unless every item has a mature request by `owner`."""
        period = self.config.unbonding_period
        for token_id in token_ids:
            request = self._pending.get(token_id)
            if request is None or request.owner != owner:
                raise WithdrawExceedsStaked(f"Withdrawing more than staked: token {token_id} has no withdrawal request")
            if not request.is_mature(now, period):
                raise WithdrawExceedsStaked(
                    f"Withdrawing more than staked: token {token_id} unbonding until block "
                    f"{request.matures_at(period)} (now {now})"
                )

    def consume(self, token_ids: Iterable[int]):
        for token_id in token_ids:
            self._pending.pop(token_id, None)

    # --- Persistence ---
    @staticmethod
    def key(token_id: int) -> str:
        return f"{WITHDRAWAL_KEY_PREFIX}{token_id}"

    def records(self, requests: Iterable[PendingWithdrawal]) -> List[Tuple[str, str]]:
        return [(self.key(r.token_id), r.model_dump_json()) for r in requests]


class ClaimGate:
    """Enforces the minimum wall-clock delay between two claims of one account."""

    def __init__(self, config: StakingConfig):
        self.config = config

    def next_claim_at(self, entry: StakerInfo) -> Optional[int]:
        if entry.last_claim_timestamp is None:
            return None
        return entry.last_claim_timestamp + self.config.reward_delay_period

    def check(self, entry: StakerInfo, now_ts: int):
        allowed_at = self.next_claim_at(entry)
        if allowed_at is not None and now_ts < allowed_at:
            raise ClaimTooSoon(
                f"Claiming not allowed yet. Please wait for the delay period. "
                f"(next claim at {allowed_at}, now {now_ts})"
            )
