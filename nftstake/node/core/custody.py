# MIT License
# Copyright (c) 2025 Hashborn

"""
Asset collaborators.

The staking core only needs to lock/unlock collateral items and to credit
reward units. The in-memory implementations follow ERC-721 / ERC-20
semantics closely enough for devnet nodes and tests: items need an owner
and an approval before they can be pulled into custody, and payouts come
out of a funded pool.

Given a StorageDB they write every change through to it (items under
`nft:`, operator approvals under `nftop:`, balances under `bal:`) before
updating memory, so a restarted node sees the same owners, locks and
balances as its ledger.
"""

import json
import logging
import threading
from typing import Dict, Optional, Protocol, Set, TYPE_CHECKING

from ...protocol.types.common import InputError, InsufficientRewardPool, NotApproved, NotOwned
from ...protocol.types.staking import CollectionItem

if TYPE_CHECKING:
    from ..storage.db import StorageDB

logger = logging.getLogger(__name__)

CUSTODY_ADDRESS = "nftstake1custody"
REWARD_POOL_ADDRESS = "nftstake1rewardpool"

NFT_KEY_PREFIX = "nft:"
OPERATOR_KEY_PREFIX = "nftop:"
BALANCE_KEY_PREFIX = "bal:"


class CollateralCustody(Protocol):
    def lock(self, owner: str, token_id: int) -> None:
        ...

    def unlock(self, owner: str, token_id: int) -> None:
        ...


class RewardLedger(Protocol):
    def credit(self, recipient: str, amount: int) -> None:
        ...


class InMemoryNFTCollection:
    def __init__(self, custodian: str = CUSTODY_ADDRESS, db: 'StorageDB' = None):
        self.custodian = custodian
        self.db = db
        self._items: Dict[int, CollectionItem] = {}
        self._approved_for_all: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

        if db is not None:
            self._load()

    def _load(self):
        for raw_json in self.db.get_state_by_prefix(NFT_KEY_PREFIX).values():
            item = CollectionItem.model_validate_json(raw_json)
            self._items[item.token_id] = item
        for key, raw_json in self.db.get_state_by_prefix(OPERATOR_KEY_PREFIX).items():
            self._approved_for_all[key[len(OPERATOR_KEY_PREFIX):]] = set(json.loads(raw_json))
        logger.info(f"Loaded {len(self._items)} collection item(s), "
                    f"{sum(1 for i in self._items.values() if i.locked_for)} in custody")

    def _save(self, item: CollectionItem):
        if self.db is not None:
            self.db.set_state(f"{NFT_KEY_PREFIX}{item.token_id}", item.model_dump_json())
        self._items[item.token_id] = item

    def mint(self, to: str, token_id: int):
        with self._lock:
            if token_id in self._items:
                raise InputError(f"Token {token_id} already minted")
            self._save(CollectionItem(token_id=token_id, owner=to))
        logger.debug(f"Minted token {token_id} to {to}")

    def owner_of(self, token_id: int) -> Optional[str]:
        item = self._items.get(token_id)
        return item.owner if item else None

    def set_approval_for_all(self, owner: str, operator: str, approved: bool = True):
        with self._lock:
            operators = set(self._approved_for_all.get(owner, set()))
            if approved:
                operators.add(operator)
            else:
                operators.discard(operator)
            if self.db is not None:
                self.db.set_state(f"{OPERATOR_KEY_PREFIX}{owner}", json.dumps(sorted(operators)))
            self._approved_for_all[owner] = operators

    def approve(self, owner: str, operator: str, token_id: int):
        with self._lock:
            item = self._items.get(token_id)
            if item is None or item.owner != owner:
                raise NotOwned(f"{owner} does not own token {token_id}")
            self._save(item.model_copy(update={"approved": operator}))

    def is_approved(self, owner: str, operator: str, token_id: int) -> bool:
        item = self._items.get(token_id)
        return (
            operator in self._approved_for_all.get(owner, set())
            or (item is not None and item.approved == operator)
        )

    def lock(self, owner: str, token_id: int) -> None:
        with self._lock:
            item = self._items.get(token_id)
            if item is None:
                raise NotOwned(f"Token {token_id} does not exist")
            # Approval is checked against the real owner first
            if not self.is_approved(item.owner, self.custodian, token_id):
                raise NotApproved(f"Custodian not approved for token {token_id}")
            if item.owner != owner:
                raise NotOwned(f"{owner} does not own token {token_id}")
            self._save(item.model_copy(update={"owner": self.custodian, "approved": None, "locked_for": owner}))

    def unlock(self, owner: str, token_id: int) -> None:
        with self._lock:
            item = self._items.get(token_id)
            if item is None or item.locked_for != owner:
                raise NotOwned(f"Token {token_id} is not held in custody for {owner}")
            self._save(item.model_copy(update={"owner": owner, "locked_for": None}))


class InMemoryRewardToken:
    def __init__(self, pool_address: str = REWARD_POOL_ADDRESS, db: 'StorageDB' = None):
        self.pool_address = pool_address
        self.db = db
        self._balances: Dict[str, int] = {}
        self._lock = threading.Lock()

        if db is not None:
            for key, raw in db.get_state_by_prefix(BALANCE_KEY_PREFIX).items():
                self._balances[key[len(BALANCE_KEY_PREFIX):]] = int(raw)

    def _save(self, balances: Dict[str, int]):
        if self.db is not None:
            self.db.write_batch([(f"{BALANCE_KEY_PREFIX}{a}", str(v)) for a, v in balances.items()])
        self._balances.update(balances)

    def mint(self, to: str, amount: int):
        if amount < 0:
            raise InputError("Cannot mint a negative amount")
        with self._lock:
            self._save({to: self._balances.get(to, 0) + amount})

    def fund_pool(self, amount: int):
        self.mint(self.pool_address, amount)

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def has_balance(self, address: str) -> bool:
        """True once `address` has ever held a balance, even one spent down to zero."""
        return address in self._balances

    @property
    def pool_balance(self) -> int:
        return self.balance_of(self.pool_address)

    def credit(self, recipient: str, amount: int) -> None:
        with self._lock:
            available = self._balances.get(self.pool_address, 0)
            if available < amount:
                raise InsufficientRewardPool(
                    f"Reward pool has {available}, cannot pay {amount} to {recipient}"
                )
            self._save({
                self.pool_address: available - amount,
                recipient: self._balances.get(recipient, 0) + amount,
            })
