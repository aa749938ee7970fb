# MIT License
# Copyright (c) 2025 Hashborn

"""
Stake lifecycle state machine.

Each transition checks its preconditions against one StakeRecord and returns
a Transition: the updated copy of the record, the LedgerDelta for the pool,
and the token movement the caller must perform once both are committed.
Nothing here touches tokens, locks or pool counters.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ...protocol.types.common import AdmissionError, NoOpError, StakeOperation, StateError
from ...protocol.types.pool import PoolConfig, PoolStats
from ...protocol.types.stake import StakeRecord
from . import rewards
from .pool_ledger import LedgerDelta, check_admission


class StakeState(str, Enum):
    UNINITIALIZED = "UNINITIALIZED"
    ACTIVE = "ACTIVE"
    UNSTAKED = "UNSTAKED"
    WITHDRAWN = "WITHDRAWN"
    REVOKED = "REVOKED"


class TokenRole(str, Enum):
    STAKE = "STAKE"
    REWARD = "REWARD"


@dataclass(frozen=True)
class TokenMovement:
    direction: str          # "in" (account -> pool) or "out" (pool -> account)
    token_role: TokenRole
    amount_wei: int


@dataclass(frozen=True)
class Transition:
    operation: StakeOperation
    record: StakeRecord
    delta: LedgerDelta
    movement: Optional[TokenMovement] = None


@dataclass(frozen=True)
class UnstakeTerms:
    """Economics an unstake at `as_of` would freeze."""
    as_of: int
    matured: bool
    penalty_percent_wei: int
    penalty_amount_wei: int
    unstake_amount_wei: int
    reward_at_unstake_wei: int
    cooldown_expiry_timestamp: int


def state_of(record: Optional[StakeRecord]) -> StakeState:
    if record is None or not record.is_initialized:
        return StakeState.UNINITIALIZED
    if record.is_revoked:
        return StakeState.REVOKED
    if record.is_withdrawn:
        return StakeState.WITHDRAWN
    if record.is_unstaked:
        return StakeState.UNSTAKED
    return StakeState.ACTIVE


def _require_initialized(record: Optional[StakeRecord]) -> StakeRecord:
    if record is None or not record.is_initialized:
        raise StateError("uninitialized stake")
    return record


def _require_not_revoked(record: StakeRecord):
    if record.is_revoked:
        raise StateError("revoked", {"key": record.key})


def _require_not_suspended(record: StakeRecord):
    if not record.is_active:
        raise StateError("stake suspended", {"key": record.key})


# ═══════════════════════════════════════════════════════════════════
# TRANSITIONS
# ═══════════════════════════════════════════════════════════════════

def stake(
    config: PoolConfig,
    stats: PoolStats,
    existing: Optional[StakeRecord],
    account: str,
    stake_id: str,
    stake_amount_wei: int,
    now: int,
) -> Transition:
    if existing is not None and existing.is_initialized:
        raise AdmissionError("exists", {"key": existing.key})
    if stake_amount_wei <= 0:
        raise AdmissionError("stake amount", {"amount_wei": stake_amount_wei})

    check_admission(config, stats, stake_amount_wei)

    reward_at_maturity_wei = rewards.estimate_reward_at_maturity(
        stake_amount_wei, config.pool_apr_wei, config.stake_duration_days,
        config.reward_token_decimals,
    )
    record = StakeRecord(
        pool_id=config.pool_id,
        account=account,
        stake_id=stake_id,
        stake_amount_wei=stake_amount_wei,
        stake_timestamp=now,
        stake_maturity_timestamp=rewards.maturity_timestamp(now, config.stake_duration_days),
        estimated_reward_at_maturity_wei=reward_at_maturity_wei,
        is_active=True,
        is_initialized=True,
    )
    delta = LedgerDelta.of(
        StakeOperation.STAKE,
        total_staked_wei=stake_amount_wei,
        reward_to_be_distributed_wei=reward_at_maturity_wei,
    )
    return Transition(
        StakeOperation.STAKE, record, delta,
        TokenMovement("in", TokenRole.STAKE, stake_amount_wei),
    )


def claimable(config: PoolConfig, record: StakeRecord, now: int) -> int:
    return rewards.claimable_reward(
        record.estimated_reward_at_maturity_wei,
        record.reward_claimed_wei,
        record.stake_timestamp,
        record.stake_maturity_timestamp,
        now,
        record.unstake_timestamp,
        config.reward_token_decimals,
    )


def claim(config: PoolConfig, record: Optional[StakeRecord], now: int) -> Transition:
    record = _require_initialized(record)
    _require_not_revoked(record)
    _require_not_suspended(record)

    amount_wei = claimable(config, record, now)
    if amount_wei <= 0:
        raise NoOpError("zero reward", {"key": record.key})

    updated = record.model_copy(update={
        "reward_claimed_wei": record.reward_claimed_wei + amount_wei,
    })
    delta = LedgerDelta.of(StakeOperation.CLAIM, total_reward_claimed_wei=amount_wei)
    return Transition(
        StakeOperation.CLAIM, updated, delta,
        TokenMovement("out", TokenRole.REWARD, amount_wei),
    )


def unstake_terms(config: PoolConfig, record: StakeRecord, as_of: int) -> UnstakeTerms:
    matured = rewards.is_matured(record.stake_maturity_timestamp, as_of, as_of)
    penalty_percent_wei = rewards.early_unstake_penalty_percent(
        config.early_unstake_max_penalty_percent_wei,
        config.early_unstake_min_penalty_percent_wei,
        record.stake_timestamp,
        record.stake_maturity_timestamp,
        as_of,
        as_of,
    )
    penalty_amount_wei = rewards.unstake_penalty_amount(
        record.stake_amount_wei, penalty_percent_wei, config.stake_token_decimals,
    )
    reward_at_unstake_wei = rewards.reward_at_effective_time(
        record.estimated_reward_at_maturity_wei,
        record.stake_timestamp,
        record.stake_maturity_timestamp,
        as_of,
        as_of,
        config.reward_token_decimals,
    )
    return UnstakeTerms(
        as_of=as_of,
        matured=matured,
        penalty_percent_wei=penalty_percent_wei,
        penalty_amount_wei=penalty_amount_wei,
        unstake_amount_wei=rewards.unstake_amount(record.stake_amount_wei, penalty_amount_wei),
        reward_at_unstake_wei=reward_at_unstake_wei,
        cooldown_expiry_timestamp=rewards.cooldown_expiry_timestamp(
            config.early_unstake_cooldown_period_days, as_of, matured,
        ),
    )


def unstake(config: PoolConfig, record: Optional[StakeRecord], now: int) -> Transition:
    record = _require_initialized(record)
    _require_not_revoked(record)
    _require_not_suspended(record)
    if record.is_unstaked:
        raise StateError("unstaked", {"key": record.key})

    terms = unstake_terms(config, record, now)
    if terms.unstake_amount_wei == 0:
        # A full penalty leaves nothing to withdraw
        raise NoOpError("zero unstake", {"key": record.key})
    updated = record.model_copy(update={
        "unstake_amount_wei": terms.unstake_amount_wei,
        "unstake_penalty_amount_wei": terms.penalty_amount_wei,
        "unstake_timestamp": now,
        "unstake_cooldown_expiry_timestamp": terms.cooldown_expiry_timestamp,
        "estimated_reward_at_unstake_wei": terms.reward_at_unstake_wei,
    })

    if terms.matured:
        delta = LedgerDelta.of(
            StakeOperation.UNSTAKE,
            total_unstaked_after_mature_wei=terms.unstake_amount_wei,
        )
    else:
        delta = LedgerDelta.of(
            StakeOperation.UNSTAKE,
            total_unstaked_before_mature_wei=terms.unstake_amount_wei,
            total_unstaked_reward_before_mature_wei=(
                record.estimated_reward_at_maturity_wei - terms.reward_at_unstake_wei
            ),
            total_unstake_penalty_amount_wei=terms.penalty_amount_wei,
        )
    # Economics are fixed here; tokens move at withdraw
    return Transition(StakeOperation.UNSTAKE, updated, delta)


def withdraw(config: PoolConfig, record: Optional[StakeRecord], now: int) -> Transition:
    record = _require_initialized(record)
    _require_not_revoked(record)
    _require_not_suspended(record)
    if not record.is_unstaked:
        raise StateError("not unstake", {"key": record.key})
    if record.is_withdrawn:
        raise StateError("withdrawn", {"key": record.key})
    if now < record.unstake_cooldown_expiry_timestamp:
        raise StateError("cooldown", {
            "key": record.key,
            "cooldown_expiry_timestamp": record.unstake_cooldown_expiry_timestamp,
        })

    updated = record.model_copy(update={"withdraw_unstake_timestamp": now})
    delta = LedgerDelta.of(
        StakeOperation.WITHDRAW,
        total_withdrawn_unstake_wei=record.unstake_amount_wei,
    )
    return Transition(
        StakeOperation.WITHDRAW, updated, delta,
        TokenMovement("out", TokenRole.STAKE, record.unstake_amount_wei),
    )


def revoke(config: PoolConfig, record: Optional[StakeRecord], now: int) -> Transition:
    record = _require_initialized(record)
    _require_not_revoked(record)
    if record.is_withdrawn:
        raise StateError("withdrawn", {"key": record.key})

    if record.is_unstaked:
        revoked_stake_wei = record.unstake_amount_wei
    else:
        revoked_stake_wei = record.stake_amount_wei

    if record.reward_claimed_wei > 0:
        revoked_reward_wei = 0
    elif record.is_unstaked:
        revoked_reward_wei = record.estimated_reward_at_unstake_wei
    else:
        revoked_reward_wei = record.estimated_reward_at_maturity_wei

    updated = record.model_copy(update={
        "revoked_stake_amount_wei": revoked_stake_wei,
        "revoked_reward_amount_wei": revoked_reward_wei,
        "revoke_timestamp": now,
    })
    delta = LedgerDelta.of(
        StakeOperation.REVOKE,
        total_revoked_stake_wei=revoked_stake_wei,
        total_revoked_reward_wei=revoked_reward_wei,
    )
    # Principal becomes pool-owned and is swept separately
    return Transition(StakeOperation.REVOKE, updated, delta)


def _require_adjustable(record: Optional[StakeRecord]) -> StakeRecord:
    record = _require_initialized(record)
    _require_not_revoked(record)
    if record.is_withdrawn:
        raise StateError("withdrawn", {"key": record.key})
    return record


def suspend(record: Optional[StakeRecord]) -> Transition:
    record = _require_adjustable(record)
    if not record.is_active:
        raise StateError("stake suspended", {"key": record.key})
    updated = record.model_copy(update={"is_active": False})
    return Transition(StakeOperation.SUSPEND, updated, LedgerDelta.of(StakeOperation.SUSPEND))


def resume(record: Optional[StakeRecord]) -> Transition:
    record = _require_adjustable(record)
    if record.is_active:
        raise StateError("stake active", {"key": record.key})
    updated = record.model_copy(update={"is_active": True})
    return Transition(StakeOperation.RESUME, updated, LedgerDelta.of(StakeOperation.RESUME))
