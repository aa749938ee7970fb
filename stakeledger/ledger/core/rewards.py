# MIT License
# Copyright (c) 2025 Hashborn

"""
Reward and early-exit penalty math.

Pure functions over canonical (18-decimal) integers. Every monetary result is
floored to the relevant token's native precision so that stored amounts are
always whole native units.
"""
from typing import Optional
from ...protocol.config.params import DAYS_IN_YEAR, PERCENT_100_WEI, SECONDS_IN_DAY
from ...protocol.types.common import MathError
from .units import truncate_wei


def maturity_timestamp(stake_timestamp: int, stake_duration_days: int) -> int:
    if stake_duration_days <= 0:
        raise MathError("stake duration", {"days": stake_duration_days})
    return stake_timestamp + stake_duration_days * SECONDS_IN_DAY


def estimate_reward_at_maturity(
    stake_amount_wei: int,
    pool_apr_wei: int,
    stake_duration_days: int,
    reward_token_decimals: int,
) -> int:
    """
    Reward owed for holding `stake_amount_wei` for the full duration.

    reward = amount * apr * days / (365 * 100%)
    """
    reward_wei = (stake_amount_wei * pool_apr_wei * stake_duration_days) // (
        DAYS_IN_YEAR * PERCENT_100_WEI
    )
    return truncate_wei(reward_wei, reward_token_decimals)


def is_matured(maturity_ts: int, current_ts: int, unstake_ts: int) -> bool:
    timestamp = unstake_ts if unstake_ts > 0 else current_ts
    return maturity_ts > 0 and timestamp >= maturity_ts


def _check_window(stake_ts: int, maturity_ts: int, current_ts: int, unstake_ts: int):
    if maturity_ts <= stake_ts:
        raise MathError("maturity timestamp", {"stake": stake_ts, "maturity": maturity_ts})
    effective = unstake_ts if unstake_ts > 0 else current_ts
    if effective < stake_ts:
        raise MathError("unstake before stake", {"stake": stake_ts, "at": effective})


def reward_at_effective_time(
    reward_at_maturity_wei: int,
    stake_ts: int,
    maturity_ts: int,
    current_ts: int,
    unstake_ts: int,
    reward_token_decimals: int,
) -> int:
    """
    Time-proportional share of the maturity reward.

    The accrual clock stops at the unstake time (capped at maturity) once the
    stake is unstaked, and at maturity otherwise.
    """
    _check_window(stake_ts, maturity_ts, current_ts, unstake_ts)

    if unstake_ts > 0:
        effective_ts = min(unstake_ts, maturity_ts)
    elif is_matured(maturity_ts, current_ts, unstake_ts):
        effective_ts = maturity_ts
    else:
        effective_ts = current_ts

    reward_wei = reward_at_maturity_wei * (effective_ts - stake_ts) // (maturity_ts - stake_ts)
    return truncate_wei(reward_wei, reward_token_decimals)


def claimable_reward(
    reward_at_maturity_wei: int,
    reward_claimed_wei: int,
    stake_ts: int,
    maturity_ts: int,
    current_ts: int,
    unstake_ts: int,
    reward_token_decimals: int,
) -> int:
    if is_matured(maturity_ts, current_ts, unstake_ts):
        effective_reward_wei = reward_at_maturity_wei
    elif unstake_ts > 0:
        effective_reward_wei = reward_at_effective_time(
            reward_at_maturity_wei, stake_ts, maturity_ts, current_ts, unstake_ts,
            reward_token_decimals,
        )
    else:
        # Nothing accrues before maturity while the stake is still locked
        effective_reward_wei = 0

    return max(0, effective_reward_wei - reward_claimed_wei)


def early_unstake_penalty_percent(
    max_penalty_percent_wei: int,
    min_penalty_percent_wei: int,
    stake_ts: int,
    maturity_ts: int,
    current_ts: int,
    unstake_ts: int,
) -> int:
    """
    Linear interpolation from max (at stake time) down to min (at maturity).

    Computed as (max * full - (max - min) * elapsed) // full so both ends are
    exact and the result is floored once.
    """
    if is_matured(maturity_ts, current_ts, unstake_ts):
        return 0

    _check_window(stake_ts, maturity_ts, current_ts, unstake_ts)
    effective_ts = unstake_ts if unstake_ts > 0 else current_ts
    elapsed = effective_ts - stake_ts
    full = maturity_ts - stake_ts
    diff = max_penalty_percent_wei - min_penalty_percent_wei

    return (max_penalty_percent_wei * full - diff * elapsed) // full


def unstake_penalty_amount(
    stake_amount_wei: int,
    penalty_percent_wei: int,
    stake_token_decimals: int,
) -> int:
    return truncate_wei(stake_amount_wei * penalty_percent_wei // PERCENT_100_WEI, stake_token_decimals)


def unstake_amount(stake_amount_wei: int, penalty_amount_wei: int) -> int:
    return stake_amount_wei - penalty_amount_wei


def cooldown_expiry_timestamp(cooldown_period_days: int, unstake_ts: int, matured: bool) -> int:
    if matured:
        return unstake_ts
    return unstake_ts + cooldown_period_days * SECONDS_IN_DAY


def pool_size(
    stake_duration_days: int,
    pool_apr_wei: int,
    pool_reward_wei: int,
    stake_token_decimals: int,
) -> Optional[int]:
    """
    Largest principal whose full-duration reward fits in `pool_reward_wei`.

    Returns None when the APR is zero: no reward is consumed, so the pool
    is unbounded.
    """
    if pool_apr_wei == 0:
        return None
    if pool_reward_wei <= 0:
        return 0
    size_wei = (DAYS_IN_YEAR * PERCENT_100_WEI * pool_reward_wei) // (stake_duration_days * pool_apr_wei)
    return truncate_wei(size_wei, stake_token_decimals)
