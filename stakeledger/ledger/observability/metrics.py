# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports staking ledger metrics in Prometheus format.

Metrics:
- Ledger calls by operation and outcome
- Rejections by error category
- Per-pool aggregates (staked, remaining reward, unswept amounts)
"""

from prometheus_client import Counter, Gauge, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# CALL METRICS
# ═══════════════════════════════════════════════════════════════════

ledger_calls_total = Counter(
    'stakeledger_calls_total',
    'Total number of committed ledger calls',
    ['operation'],
    registry=metrics_registry
)

ledger_rejections_total = Counter(
    'stakeledger_rejections_total',
    'Total number of rejected ledger calls',
    ['operation', 'category'],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# POOL METRICS (native token units)
# ═══════════════════════════════════════════════════════════════════

pool_total_staked = Gauge(
    'stakeledger_pool_total_staked',
    'Total principal ever staked in the pool',
    ['pool_id'],
    registry=metrics_registry
)

pool_remaining_reward = Gauge(
    'stakeledger_pool_remaining_reward',
    'Funded reward not yet committed to any stake',
    ['pool_id'],
    registry=metrics_registry
)

pool_reward_claimed = Gauge(
    'stakeledger_pool_reward_claimed',
    'Total reward paid out to stakers',
    ['pool_id'],
    registry=metrics_registry
)

pool_unswept_penalty = Gauge(
    'stakeledger_pool_unswept_penalty',
    'Early-unstake penalties not yet swept',
    ['pool_id'],
    registry=metrics_registry
)

pool_unswept_revoked_stake = Gauge(
    'stakeledger_pool_unswept_revoked_stake',
    'Revoked principal not yet swept',
    ['pool_id'],
    registry=metrics_registry
)


def record_call(operation: str):
    ledger_calls_total.labels(operation=operation).inc()


def record_rejection(operation: str, category: str):
    ledger_rejections_total.labels(operation=operation, category=category).inc()


def update_pool_metrics(info):
    """
    Update per-pool gauges.

    Args:
        info: PoolStatsInfo of the pool
    """
    pool_total_staked.labels(pool_id=info.pool_id).set(info.total_staked)
    pool_remaining_reward.labels(pool_id=info.pool_id).set(info.pool_remaining_reward)
    pool_reward_claimed.labels(pool_id=info.pool_id).set(info.total_reward_claimed)
    pool_unswept_penalty.labels(pool_id=info.pool_id).set(
        info.total_unstake_penalty_amount - info.total_unstake_penalty_removed
    )
    pool_unswept_revoked_stake.labels(pool_id=info.pool_id).set(
        info.total_revoked_stake - info.total_revoked_stake_removed
    )
