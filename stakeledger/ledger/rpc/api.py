from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel
from typing import Optional
from ...protocol.config.params import CURRENT_NETWORK
from ...protocol.types.common import ErrorCategory, LedgerError, ValidationError
from ..core.accounts import TokenBank
from ..core.pools import default_pool_config
from ..core.staking import StakingService
import logging

logger = logging.getLogger(__name__)

app = FastAPI(title="StakeLedger Node RPC")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, specify exact origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
service: Optional[StakingService] = None
# Set on devnet only; enables /dev/mint
bank: Optional[TokenBank] = None

_STATUS_BY_CATEGORY = {
    ErrorCategory.ADMISSION: 400,
    ErrorCategory.STATE: 409,
    ErrorCategory.AUTHORIZATION: 403,
    ErrorCategory.NO_OP: 409,
    ErrorCategory.CONFIGURATION: 422,
    ErrorCategory.INVARIANT: 500,
}


class StakeRequest(BaseModel):
    account: str
    stake_id: str
    amount: int


class StakeRef(BaseModel):
    account: str
    stake_id: str


class AdminStakeRequest(BaseModel):
    caller: str
    account: str
    stake_id: str


class CallerRequest(BaseModel):
    caller: str


class RewardRequest(BaseModel):
    caller: str
    amount: int


class PoolSpec(BaseModel):
    """Pool creation body; omitted lock and early-unstake terms come from the network profile."""
    pool_id: str
    stake_token: str
    stake_token_decimals: int
    reward_token: str
    reward_token_decimals: int
    pool_apr_wei: int
    stake_duration_days: Optional[int] = None
    early_unstake_cooldown_period_days: Optional[int] = None
    early_unstake_min_penalty_percent_wei: Optional[int] = None
    early_unstake_max_penalty_percent_wei: Optional[int] = None
    revshare_stake_duration_extension_days: int = 0


class CreatePoolRequest(BaseModel):
    caller: str
    config: PoolSpec


class PoolParamsRequest(BaseModel):
    caller: str
    cooldown_period_days: Optional[int] = None
    min_penalty_percent_wei: Optional[int] = None
    max_penalty_percent_wei: Optional[int] = None
    revshare_extension_days: Optional[int] = None


class AdminWalletRequest(BaseModel):
    caller: str
    wallet: str


class MintRequest(BaseModel):
    token: str
    address: str
    amount: int


def _require_service() -> StakingService:
    if not service:
        raise HTTPException(status_code=503, detail="Node not initialized")
    return service


def _http_error(e: LedgerError) -> HTTPException:
    status = _STATUS_BY_CATEGORY.get(e.category, 400)
    if e.reason in ("uninitialized", "uninitialized stake"):
        status = 404
    return HTTPException(status_code=status, detail=e.to_dict())


def _call(fn, *args, **kwargs):
    try:
        return fn(*args, **kwargs)
    except LedgerError as e:
        raise _http_error(e)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/")
async def root():
    return {"message": "StakeLedger Node RPC", "version": "1.0"}

@app.get("/status")
async def get_status():
    svc = _require_service()
    return {
        "pools": len(svc.pools.list_pools()),
        "stakes": len(svc.stakes),
        "paused": svc.paused,
        "admin_wallet": svc.admin_wallet,
        "time": svc.clock(),
    }

# ═══════════════════════════════════════════════════════════════════
# QUERIES
# ═══════════════════════════════════════════════════════════════════

@app.get("/pools")
async def list_pools():
    svc = _require_service()
    return {"pools": svc.pools.list_pools()}

@app.get("/pools/{pool_id}")
async def get_pool(pool_id: str):
    svc = _require_service()
    return _call(svc.get_pool_config, pool_id)

@app.get("/pools/{pool_id}/stats")
async def get_pool_stats(pool_id: str):
    svc = _require_service()
    return _call(svc.get_pool_stats, pool_id)

@app.get("/pools/{pool_id}/stakes/{account}/{stake_id}")
async def get_stake(pool_id: str, account: str, stake_id: str):
    svc = _require_service()
    return _call(svc.get_stake_info, pool_id, account, stake_id)

@app.get("/pools/{pool_id}/stakes/{account}/{stake_id}/unstaking")
async def get_unstaking(pool_id: str, account: str, stake_id: str):
    svc = _require_service()
    return _call(svc.get_unstaking_info, pool_id, account, stake_id)

@app.get("/pools/{pool_id}/stakes/{account}/{stake_id}/claimable")
async def get_claimable(pool_id: str, account: str, stake_id: str):
    svc = _require_service()
    amount = _call(svc.get_claimable_reward, pool_id, account, stake_id)
    return {"pool_id": pool_id, "account": account, "stake_id": stake_id, "claimable": amount}

@app.get("/pools/{pool_id}/stakes/{account}/{stake_id}/estimated-reward")
async def get_estimated_reward(pool_id: str, account: str, stake_id: str, unstake_timestamp: int):
    svc = _require_service()
    amount = _call(svc.get_estimated_reward_at_unstaking, pool_id, account, stake_id, unstake_timestamp)
    return {"unstake_timestamp": unstake_timestamp, "estimated_reward": amount}

# ═══════════════════════════════════════════════════════════════════
# STAKER OPERATIONS
# ═══════════════════════════════════════════════════════════════════

@app.post("/pools/{pool_id}/stake")
async def stake(pool_id: str, req: StakeRequest):
    svc = _require_service()
    return _call(svc.stake, pool_id, req.account, req.stake_id, req.amount)

@app.post("/pools/{pool_id}/claim")
async def claim(pool_id: str, req: StakeRef):
    svc = _require_service()
    amount = _call(svc.claim_reward, pool_id, req.account, req.stake_id)
    return {"status": "claimed", "amount": amount}

@app.post("/pools/{pool_id}/unstake")
async def unstake(pool_id: str, req: StakeRef):
    svc = _require_service()
    return _call(svc.unstake, pool_id, req.account, req.stake_id)

@app.post("/pools/{pool_id}/withdraw")
async def withdraw(pool_id: str, req: StakeRef):
    svc = _require_service()
    amount = _call(svc.withdraw_unstake, pool_id, req.account, req.stake_id)
    return {"status": "withdrawn", "amount": amount}

# ═══════════════════════════════════════════════════════════════════
# ADMIN OPERATIONS
# ═══════════════════════════════════════════════════════════════════

@app.post("/pools")
async def create_pool(req: CreatePoolRequest):
    svc = _require_service()
    config = default_pool_config(CURRENT_NETWORK, **req.config.model_dump())
    return _call(svc.create_pool, req.caller, config)

@app.post("/pools/{pool_id}/open")
async def open_pool(pool_id: str, req: CallerRequest):
    return _call(_require_service().open_pool, req.caller, pool_id)

@app.post("/pools/{pool_id}/close")
async def close_pool(pool_id: str, req: CallerRequest):
    return _call(_require_service().close_pool, req.caller, pool_id)

@app.post("/pools/{pool_id}/suspend")
async def suspend_pool(pool_id: str, req: CallerRequest):
    return _call(_require_service().suspend_pool, req.caller, pool_id)

@app.post("/pools/{pool_id}/resume")
async def resume_pool(pool_id: str, req: CallerRequest):
    return _call(_require_service().resume_pool, req.caller, pool_id)

@app.post("/pools/{pool_id}/params")
async def set_pool_params(pool_id: str, req: PoolParamsRequest):
    svc = _require_service()
    params = req.model_dump(exclude={"caller"}, exclude_none=True)
    return _call(svc.set_pool_params, req.caller, pool_id, **params)

@app.post("/pools/{pool_id}/reward")
async def add_pool_reward(pool_id: str, req: RewardRequest):
    svc = _require_service()
    return _call(svc.add_pool_reward, req.caller, pool_id, req.amount)

@app.post("/pools/{pool_id}/revoke")
async def revoke_stake(pool_id: str, req: AdminStakeRequest):
    svc = _require_service()
    return _call(svc.revoke_stake, req.caller, pool_id, req.account, req.stake_id)

@app.post("/pools/{pool_id}/suspend-stake")
async def suspend_stake(pool_id: str, req: AdminStakeRequest):
    svc = _require_service()
    return _call(svc.suspend_stake, req.caller, pool_id, req.account, req.stake_id)

@app.post("/pools/{pool_id}/resume-stake")
async def resume_stake(pool_id: str, req: AdminStakeRequest):
    svc = _require_service()
    return _call(svc.resume_stake, req.caller, pool_id, req.account, req.stake_id)

@app.post("/pools/{pool_id}/remove-revoked-stakes")
async def remove_revoked_stakes(pool_id: str, req: CallerRequest):
    svc = _require_service()
    amount = _call(svc.remove_revoked_stakes, req.caller, pool_id)
    return {"status": "removed", "amount": amount}

@app.post("/pools/{pool_id}/remove-unstake-penalty")
async def remove_unstake_penalty(pool_id: str, req: CallerRequest):
    svc = _require_service()
    amount = _call(svc.remove_unstake_penalty, req.caller, pool_id)
    return {"status": "removed", "amount": amount}

@app.post("/pools/{pool_id}/remove-unallocated-reward")
async def remove_unallocated_pool_reward(pool_id: str, req: CallerRequest):
    svc = _require_service()
    amount = _call(svc.remove_unallocated_pool_reward, req.caller, pool_id)
    return {"status": "removed", "amount": amount}

@app.post("/admin/wallet")
async def set_admin_wallet(req: AdminWalletRequest):
    svc = _require_service()
    _call(svc.set_admin_wallet, req.caller, req.wallet)
    return {"admin_wallet": svc.admin_wallet}

@app.post("/admin/pause")
async def pause(req: CallerRequest):
    svc = _require_service()
    _call(svc.pause, req.caller)
    return {"paused": svc.paused}

@app.post("/admin/unpause")
async def unpause(req: CallerRequest):
    svc = _require_service()
    _call(svc.unpause, req.caller)
    return {"paused": svc.paused}

@app.post("/dev/mint")
async def dev_mint(req: MintRequest):
    """Devnet faucet for the in-memory token bank."""
    if not bank:
        raise HTTPException(status_code=404, detail="Minting disabled")
    if req.amount <= 0:
        raise HTTPException(status_code=400, detail="Mint amount must be positive")
    bank.mint(req.token, req.address, req.amount)
    return {"address": req.address, "token": req.token, "balance": bank.balance_of(req.token, req.address)}

@app.get("/metrics")
async def get_metrics():
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    try:
        from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
        from ..observability.metrics import metrics_registry

        metrics_data = generate_latest(metrics_registry)

        return Response(
            content=metrics_data,
            media_type=CONTENT_TYPE_LATEST
        )
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Metrics error: {str(e)}")
