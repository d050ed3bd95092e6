# MIT License
# Copyright (c) 2025 Hashborn

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from typing import List, Optional
from prometheus_client import CONTENT_TYPE_LATEST
from ..core.staker import Staker
from ..core.custody import InMemoryNFTCollection
from ..observability.metrics import export_metrics, update_metrics
from ...protocol.types.common import (
    CollaboratorFailure,
    ConfigurationError,
    InputError,
    PreconditionNotMet,
    StakingError,
)
import logging

logger = logging.getLogger(__name__)

app = FastAPI(title="NFT Staking Node RPC")

# Injected by the node CLI (or tests)
staker: Optional[Staker] = None


class ItemsRequest(BaseModel):
    owner: str
    token_ids: List[int]


class ClaimRequest(BaseModel):
    owner: str


class RateRequest(BaseModel):
    reward_per_block: int


class PeriodRequest(BaseModel):
    value: int


class MintRequest(BaseModel):
    owner: str
    token_id: int


class ApprovalRequest(BaseModel):
    owner: str
    approved: bool = True


def _status_for(exc: StakingError) -> int:
    if isinstance(exc, (InputError, ConfigurationError)):
        return 400
    if isinstance(exc, PreconditionNotMet):
        return 409
    if isinstance(exc, CollaboratorFailure):
        return 502
    return 400


@app.exception_handler(StakingError)
async def staking_error_handler(request: Request, exc: StakingError):
    return JSONResponse(
        status_code=_status_for(exc),
        content={"error": exc.code, "detail": str(exc)},
    )


def _require_staker() -> Staker:
    if not staker:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return staker


def _collection() -> InMemoryNFTCollection:
    s = _require_staker()
    if not isinstance(s.custody, InMemoryNFTCollection):
        raise HTTPException(status_code=404, detail="Devnet collection not available")
    return s.custody


@app.get("/status")
async def get_status():
    s = _require_staker()
    return {
        "network": s.config.network_id,
        "height": s.clock.height(),
        "timestamp": s.clock.timestamp(),
        "reward_per_block": str(s.schedule.current_rate),
        "reward_delay_period": s.config.reward_delay_period,
        "unbonding_period": s.config.unbonding_period,
        "total_staked": s.ledger.total_staked(),
        "pending_withdrawals": len(s.withdrawals),
    }


@app.get("/stake/{address}")
async def get_stake_info(address: str):
    s = _require_staker()
    info = s.get_stake_info(address)
    return {
        "address": address,
        "staked_units": info.staked_units,
        "projected_rewards": str(info.projected_rewards),
    }


@app.get("/staker/{address}")
async def get_staker_info(address: str):
    s = _require_staker()
    entry = s.staker_info(address)
    return {
        "address": entry.address,
        "state": entry.state.value,
        "staked_units": entry.staked_units,
        "token_ids": entry.token_ids,
        "checkpoint_block": entry.checkpoint_block,
        "accrued_balance": str(entry.accrued_balance),
        "last_claim_timestamp": entry.last_claim_timestamp,
        "next_claim_at": s.next_claim_at(address),
    }


@app.get("/withdrawals/{address}")
async def get_withdrawals(address: str):
    s = _require_staker()
    period = s.config.unbonding_period
    return {
        "address": address,
        "unbonding_period": period,
        "pending": [
            {
                "token_id": r.token_id,
                "requested_at_block": r.requested_at_block,
                "matures_at_block": r.matures_at(period),
            }
            for r in s.pending_withdrawals(address)
        ],
    }


@app.get("/rates")
async def get_rates():
    s = _require_staker()
    return {
        "current": str(s.schedule.current_rate),
        "changes": [
            {"effective_from_block": c.effective_from_block, "reward_per_block": str(c.reward_per_block)}
            for c in s.rate_schedule()
        ],
    }


@app.get("/metrics")
async def get_metrics():
    s = _require_staker()
    update_metrics(s)
    return Response(content=export_metrics(), media_type=CONTENT_TYPE_LATEST)


# --- Staking operations ---

@app.post("/stake")
async def stake(req: ItemsRequest):
    entry = _require_staker().stake(req.owner, req.token_ids)
    return {"status": "staked", "staked_units": entry.staked_units}


@app.post("/request-withdraw")
async def request_withdraw(req: ItemsRequest):
    requests = _require_staker().request_withdraw(req.owner, req.token_ids)
    return {"status": "requested", "token_ids": [r.token_id for r in requests]}


@app.post("/withdraw")
async def withdraw(req: ItemsRequest):
    entry = _require_staker().withdraw(req.owner, req.token_ids)
    return {"status": "withdrawn", "staked_units": entry.staked_units}


@app.post("/claim")
async def claim(req: ClaimRequest):
    amount = _require_staker().claim_rewards(req.owner)
    return {"status": "claimed", "amount": str(amount)}


# --- Administrator ---

@app.post("/admin/reward-rate")
async def set_reward_rate(req: RateRequest):
    change = _require_staker().set_reward_per_block(req.reward_per_block)
    return {
        "status": "updated",
        "effective_from_block": change.effective_from_block,
        "reward_per_block": str(change.reward_per_block),
    }


@app.post("/admin/unbonding-period")
async def set_unbonding_period(req: PeriodRequest):
    _require_staker().set_unbonding_period(req.value)
    return {"status": "updated", "unbonding_period": req.value}


@app.post("/admin/claim-delay")
async def set_claim_delay(req: PeriodRequest):
    _require_staker().set_reward_delay_period(req.value)
    return {"status": "updated", "reward_delay_period": req.value}


# --- Devnet helpers (in-memory collection only) ---

@app.post("/devnet/mint")
async def devnet_mint(req: MintRequest):
    _collection().mint(req.owner, req.token_id)
    return {"status": "minted", "owner": req.owner, "token_id": req.token_id}


@app.post("/devnet/approve")
async def devnet_approve(req: ApprovalRequest):
    collection = _collection()
    collection.set_approval_for_all(req.owner, collection.custodian, req.approved)
    return {"status": "ok", "owner": req.owner, "approved": req.approved}
