from pydantic import BaseModel
from typing import Optional


class PoolConfig(BaseModel):
    """Static parameters of one staking pool. Amounts and percents are 18-decimal fixed point."""
    pool_id: str
    stake_token: str                  # Token identity (address / denom)
    stake_token_decimals: int         # 0..18
    reward_token: str
    reward_token_decimals: int        # 0..18
    stake_duration_days: int          # Fixed lock duration, > 0
    pool_apr_wei: int                 # Annual rate, 100% == 100 * 10**18

    # Admin-tunable
    early_unstake_cooldown_period_days: int = 0
    early_unstake_min_penalty_percent_wei: int = 0
    early_unstake_max_penalty_percent_wei: int = 0
    revshare_stake_duration_extension_days: int = 0   # Read by the revenue-share service only

    # Pool flags
    is_open: bool = True
    is_active: bool = True


class PoolStats(BaseModel):
    """
    Additive per-pool counters in canonical (18-decimal) units.

    Only the ledger mutates these, one delta per transition. Derived values
    (pool reward, remaining reward, pool size) are never stored here.
    """
    pool_id: str

    total_staked_wei: int = 0
    reward_to_be_distributed_wei: int = 0       # Reward committed at stake time
    total_reward_added_wei: int = 0             # Funded
    total_reward_claimed_wei: int = 0
    total_reward_removed_wei: int = 0           # Unallocated reward swept

    total_revoked_reward_wei: int = 0
    total_revoked_stake_wei: int = 0
    total_revoked_stake_removed_wei: int = 0

    total_unstaked_before_mature_wei: int = 0
    total_unstaked_after_mature_wei: int = 0
    total_unstaked_reward_before_mature_wei: int = 0   # Forfeited reward tail
    total_unstake_penalty_amount_wei: int = 0
    total_unstake_penalty_removed_wei: int = 0

    total_withdrawn_unstake_wei: int = 0


class PoolStatsInfo(BaseModel):
    """PoolStats as seen from outside: native token units plus derived values."""
    pool_id: str
    is_open: bool
    is_active: bool

    pool_reward_amount: int
    pool_remaining_reward: int
    pool_size: Optional[int]          # None when APR is zero (unbounded)
    reward_to_be_distributed: int

    total_staked: int
    total_reward_added: int
    total_reward_claimed: int
    total_reward_removed: int
    total_revoked_reward: int
    total_revoked_stake: int
    total_revoked_stake_removed: int
    total_unstaked_before_mature: int
    total_unstaked_after_mature: int
    total_unstaked_reward_before_mature: int
    total_unstake_penalty_amount: int
    total_unstake_penalty_removed: int
    total_withdrawn_unstake: int
