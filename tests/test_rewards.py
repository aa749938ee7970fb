# MIT License
# Copyright (c) 2025 Hashborn

"""
Reward / penalty math tests.

Covers:
1. Reward at maturity and pool size as inverse formulas
2. Time-proportional accrual and claimable monotonicity
3. Early-exit penalty endpoints and interpolation
4. Cooldown waiver for matured stakes
"""

import pytest

from stakeledger.protocol.config.params import PERCENT_100_WEI, WEI
from stakeledger.protocol.types.common import MathError
from stakeledger.ledger.core import rewards

T0 = 1_700_000_000
DAY = 86_400


def test_maturity_timestamp():
    assert rewards.maturity_timestamp(T0, 30) == T0 + 30 * DAY
    with pytest.raises(MathError):
        rewards.maturity_timestamp(T0, 0)


def test_reward_at_maturity():
    # 10% APR for a full year is a tenth of the principal
    assert rewards.estimate_reward_at_maturity(1000 * WEI, 10 * WEI, 365, 18) == 100 * WEI

    amount = 1000 * WEI
    reward = rewards.estimate_reward_at_maturity(amount, 50 * WEI, 180, 18)
    assert reward == amount * 50 * WEI * 180 // (365 * PERCENT_100_WEI)

    # Truncated to whole reward-token units
    reward_6 = rewards.estimate_reward_at_maturity(amount, 50 * WEI, 180, 6)
    assert reward_6 % 10**12 == 0
    assert reward - 10**12 < reward_6 <= reward


def test_pool_size_inverts_reward_formula():
    size = rewards.pool_size(365, 10 * WEI, 100 * WEI, 18)
    assert size == 1000 * WEI
    assert rewards.estimate_reward_at_maturity(size, 10 * WEI, 365, 18) == 100 * WEI

    assert rewards.pool_size(365, 0, 100 * WEI, 18) is None
    assert rewards.pool_size(365, 10 * WEI, 0, 18) == 0


def test_reward_at_effective_time():
    maturity = T0 + 180 * DAY
    reward = 1_000_000

    assert rewards.reward_at_effective_time(reward, T0, maturity, T0, 0, 18) == 0
    assert rewards.reward_at_effective_time(reward, T0, maturity, T0 + 90 * DAY, 0, 18) == reward // 2
    # Capped at maturity
    assert rewards.reward_at_effective_time(reward, T0, maturity, maturity + 99 * DAY, 0, 18) == reward
    # Unstake time freezes the clock
    frozen = rewards.reward_at_effective_time(reward, T0, maturity, maturity + DAY, T0 + 45 * DAY, 18)
    assert frozen == reward // 4

    with pytest.raises(MathError, match="unstake before stake"):
        rewards.reward_at_effective_time(reward, T0, maturity, T0 - 1, 0, 18)
    with pytest.raises(MathError, match="maturity timestamp"):
        rewards.reward_at_effective_time(reward, T0, T0, T0, 0, 18)


def test_claimable_is_monotonic_until_maturity():
    maturity = T0 + 180 * DAY
    reward = 246_575 * WEI

    previous = 0
    for day in range(0, 181, 5):
        value = rewards.claimable_reward(reward, 0, T0, maturity, T0 + day * DAY, 0, 18)
        assert value >= previous
        previous = value

    # Nothing is claimable while locked, everything at maturity
    assert rewards.claimable_reward(reward, 0, T0, maturity, maturity - 1, 0, 18) == 0
    assert rewards.claimable_reward(reward, 0, T0, maturity, maturity, 0, 18) == reward
    assert rewards.claimable_reward(reward, reward, T0, maturity, maturity + DAY, 0, 18) == 0


def test_claimable_constant_after_unstake():
    maturity = T0 + 180 * DAY
    reward = 1_000_000 * WEI
    unstake_ts = T0 + 60 * DAY

    values = {
        rewards.claimable_reward(reward, 0, T0, maturity, unstake_ts + d * DAY, unstake_ts, 18)
        for d in (0, 1, 30, 200, 1000)
    }
    assert values == {reward // 3}


def test_penalty_endpoints():
    maturity = T0 + 180 * DAY
    max_pct, min_pct = 50 * WEI, 10 * WEI

    # Exact at stake time
    assert rewards.early_unstake_penalty_percent(max_pct, min_pct, T0, maturity, T0, 0) == max_pct
    # Midpoint
    assert rewards.early_unstake_penalty_percent(max_pct, min_pct, T0, maturity, T0 + 90 * DAY, 0) == 30 * WEI
    # Just before maturity: close to min, never below it
    last = rewards.early_unstake_penalty_percent(max_pct, min_pct, T0, maturity, maturity - 1, 0)
    assert min_pct <= last < min_pct + WEI
    # Matured: no penalty
    assert rewards.early_unstake_penalty_percent(max_pct, min_pct, T0, maturity, maturity, 0) == 0


def test_penalty_is_non_increasing():
    maturity = T0 + 180 * DAY
    previous = None
    for hour in range(0, 180 * 24, 97):
        pct = rewards.early_unstake_penalty_percent(50 * WEI, 10 * WEI, T0, maturity, T0 + hour * 3600, 0)
        if previous is not None:
            assert pct <= previous
        previous = pct


def test_penalty_amount_and_cooldown():
    assert rewards.unstake_penalty_amount(1000 * WEI, 30 * WEI, 18) == 300 * WEI
    # 6-decimal stake token: 1.000003 * 30% = 0.3000009, floored to micro units
    assert rewards.unstake_penalty_amount(1_000_003 * 10**12, 30 * WEI, 6) == 300_000 * 10**12
    assert rewards.unstake_amount(1000 * WEI, 300 * WEI) == 700 * WEI

    assert rewards.cooldown_expiry_timestamp(7, T0, False) == T0 + 7 * DAY
    assert rewards.cooldown_expiry_timestamp(7, T0, True) == T0
