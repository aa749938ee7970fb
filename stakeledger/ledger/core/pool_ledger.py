# MIT License
# Copyright (c) 2025 Hashborn

"""
Per-pool aggregate accounting.

The ledger stores only additive counters (PoolStats). Pool reward, remaining
reward and pool size are derived from them on every read. All mutations go
through PoolLedger.apply() with a LedgerDelta produced by a single transition.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional
import logging

from ...protocol.types.common import (
    AdmissionError,
    ConfigurationError,
    InvariantViolation,
    NoOpError,
    StakeOperation,
    StateError,
)
from ...protocol.types.pool import PoolConfig, PoolStats, PoolStatsInfo
from . import rewards
from .units import scale_wei_to_decimals

logger = logging.getLogger(__name__)

COUNTER_FIELDS = frozenset(
    name for name in PoolStats.model_fields if name.endswith("_wei")
)


@dataclass(frozen=True)
class LedgerDelta:
    """Non-negative increments to PoolStats counters produced by one transition."""
    operation: StakeOperation
    increments: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        for name, value in self.increments.items():
            if name not in COUNTER_FIELDS:
                raise ValueError(f"Unknown pool counter: {name}")
            if value < 0:
                raise ValueError(f"Negative increment for {name}: {value}")
        object.__setattr__(self, "increments", MappingProxyType(dict(self.increments)))

    @classmethod
    def of(cls, operation: StakeOperation, **increments: int) -> "LedgerDelta":
        return cls(operation, {k: v for k, v in increments.items() if v})

    def get(self, name: str) -> int:
        return self.increments.get(name, 0)


# ═══════════════════════════════════════════════════════════════════
# DERIVED VALUES
# ═══════════════════════════════════════════════════════════════════

def pool_reward_amount(stats: PoolStats) -> int:
    return (
        stats.total_reward_added_wei
        + stats.total_revoked_reward_wei
        + stats.total_unstaked_reward_before_mature_wei
        - stats.total_reward_removed_wei
    )


def pool_remaining_reward(stats: PoolStats) -> int:
    return pool_reward_amount(stats) - stats.reward_to_be_distributed_wei


def pool_size(config: PoolConfig, stats: PoolStats) -> Optional[int]:
    return rewards.pool_size(
        config.stake_duration_days, config.pool_apr_wei, pool_reward_amount(stats),
        config.stake_token_decimals,
    )


def remaining_capacity(config: PoolConfig, stats: PoolStats) -> Optional[int]:
    """Principal that can still be admitted; None means unbounded."""
    return rewards.pool_size(
        config.stake_duration_days, config.pool_apr_wei, pool_remaining_reward(stats),
        config.stake_token_decimals,
    )


def unswept_revoked_stake(stats: PoolStats) -> int:
    return stats.total_revoked_stake_wei - stats.total_revoked_stake_removed_wei


def unswept_unstake_penalty(stats: PoolStats) -> int:
    return stats.total_unstake_penalty_amount_wei - stats.total_unstake_penalty_removed_wei


def unallocated_reward(stats: PoolStats) -> int:
    return pool_remaining_reward(stats)


def check_invariants(stats: PoolStats):
    remaining = pool_remaining_reward(stats)
    if remaining < 0:
        raise InvariantViolation("negative remaining reward", {"pool_id": stats.pool_id, "remaining": remaining})
    if unswept_revoked_stake(stats) < 0:
        raise InvariantViolation("revoked stake over-swept", {"pool_id": stats.pool_id})
    if unswept_unstake_penalty(stats) < 0:
        raise InvariantViolation("penalty over-swept", {"pool_id": stats.pool_id})


def stats_info(config: PoolConfig, stats: PoolStats) -> PoolStatsInfo:
    stake_dec = config.stake_token_decimals
    reward_dec = config.reward_token_decimals

    def s(v: int) -> int:
        return scale_wei_to_decimals(v, stake_dec)

    def r(v: int) -> int:
        return scale_wei_to_decimals(v, reward_dec)

    size = pool_size(config, stats)
    return PoolStatsInfo(
        pool_id=config.pool_id,
        is_open=config.is_open,
        is_active=config.is_active,
        pool_reward_amount=r(pool_reward_amount(stats)),
        pool_remaining_reward=r(pool_remaining_reward(stats)),
        pool_size=None if size is None else s(size),
        reward_to_be_distributed=r(stats.reward_to_be_distributed_wei),
        total_staked=s(stats.total_staked_wei),
        total_reward_added=r(stats.total_reward_added_wei),
        total_reward_claimed=r(stats.total_reward_claimed_wei),
        total_reward_removed=r(stats.total_reward_removed_wei),
        total_revoked_reward=r(stats.total_revoked_reward_wei),
        total_revoked_stake=s(stats.total_revoked_stake_wei),
        total_revoked_stake_removed=s(stats.total_revoked_stake_removed_wei),
        total_unstaked_before_mature=s(stats.total_unstaked_before_mature_wei),
        total_unstaked_after_mature=s(stats.total_unstaked_after_mature_wei),
        total_unstaked_reward_before_mature=r(stats.total_unstaked_reward_before_mature_wei),
        total_unstake_penalty_amount=s(stats.total_unstake_penalty_amount_wei),
        total_unstake_penalty_removed=s(stats.total_unstake_penalty_removed_wei),
        total_withdrawn_unstake=s(stats.total_withdrawn_unstake_wei),
    )


# ═══════════════════════════════════════════════════════════════════
# POOL-LEVEL DELTAS
# ═══════════════════════════════════════════════════════════════════

def check_admission(config: PoolConfig, stats: PoolStats, stake_amount_wei: int):
    """Reject principal the funded reward cannot service for the full duration."""
    capacity = remaining_capacity(config, stats)
    if capacity is not None and stake_amount_wei > capacity:
        raise AdmissionError("insufficient", {
            "pool_id": config.pool_id,
            "stake_amount_wei": stake_amount_wei,
            "remaining_capacity_wei": capacity,
        })


def add_reward_delta(config: PoolConfig, reward_amount_wei: int) -> LedgerDelta:
    if config.pool_apr_wei == 0:
        raise ConfigurationError("0 apr", {"pool_id": config.pool_id})
    if reward_amount_wei <= 0:
        raise AdmissionError("reward amount", {"pool_id": config.pool_id})
    return LedgerDelta.of(StakeOperation.ADD_REWARD, total_reward_added_wei=reward_amount_wei)


def remove_revoked_stakes_delta(stats: PoolStats) -> LedgerDelta:
    amount = unswept_revoked_stake(stats)
    if amount <= 0:
        raise NoOpError("no revoked", {"pool_id": stats.pool_id})
    return LedgerDelta.of(StakeOperation.REMOVE_REVOKED_STAKES, total_revoked_stake_removed_wei=amount)


def remove_unstake_penalty_delta(stats: PoolStats) -> LedgerDelta:
    amount = unswept_unstake_penalty(stats)
    if amount <= 0:
        raise NoOpError("no penalty", {"pool_id": stats.pool_id})
    return LedgerDelta.of(StakeOperation.REMOVE_UNSTAKE_PENALTY, total_unstake_penalty_removed_wei=amount)


def remove_unallocated_reward_delta(stats: PoolStats) -> LedgerDelta:
    amount = unallocated_reward(stats)
    if amount <= 0:
        raise NoOpError("no unallocated", {"pool_id": stats.pool_id})
    return LedgerDelta.of(StakeOperation.REMOVE_UNALLOCATED_REWARD, total_reward_removed_wei=amount)


class PoolLedger:
    """Owns the PoolStats of every pool and applies deltas to them."""

    def __init__(self, stats: Dict[str, PoolStats] = None):
        self._stats: Dict[str, PoolStats] = stats if stats is not None else {}

    def open_pool(self, pool_id: str) -> PoolStats:
        if pool_id in self._stats:
            raise StateError("exists", {"pool_id": pool_id})
        stats = PoolStats(pool_id=pool_id)
        self._stats[pool_id] = stats
        return stats

    def has_pool(self, pool_id: str) -> bool:
        return pool_id in self._stats

    def get_stats(self, pool_id: str) -> PoolStats:
        stats = self._stats.get(pool_id)
        if stats is None:
            raise StateError("uninitialized", {"pool_id": pool_id})
        return stats

    def all_stats(self) -> Dict[str, PoolStats]:
        return dict(self._stats)

    def preview(self, pool_id: str, delta: LedgerDelta) -> PoolStats:
        """Returns the stats that apply() would commit, without committing."""
        current = self.get_stats(pool_id)
        updates = {
            name: getattr(current, name) + value
            for name, value in delta.increments.items()
        }
        candidate = current.model_copy(update=updates)
        check_invariants(candidate)
        return candidate

    def apply(self, pool_id: str, delta: LedgerDelta) -> PoolStats:
        candidate = self.preview(pool_id, delta)
        self._stats[pool_id] = candidate
        logger.debug(f"Applied {delta.operation.value} to pool {pool_id}: {dict(delta.increments)}")
        return candidate

    def restore(self, stats: PoolStats):
        """Puts back a previously read snapshot (rollback / load from storage)."""
        self._stats[stats.pool_id] = stats
