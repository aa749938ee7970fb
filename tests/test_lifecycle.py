import pytest

from stakeledger.protocol.config.params import PERCENT_100_WEI, WEI
from stakeledger.protocol.types.common import (
    AdmissionError,
    NoOpError,
    StakeOperation,
    StateError,
)
from stakeledger.protocol.types.pool import PoolStats
from stakeledger.ledger.core import lifecycle
from stakeledger.ledger.core.lifecycle import StakeState, TokenRole

from conftest import DAY, T0, make_pool_config

STAKE = 1000 * WEI


@pytest.fixture
def config():
    return make_pool_config()


@pytest.fixture
def funded():
    return PoolStats(pool_id="pool-1", total_reward_added_wei=10_000 * WEI)


@pytest.fixture
def record(config, funded):
    return lifecycle.stake(config, funded, None, "alice", "s1", STAKE, T0).record


def test_stake_transition(config, funded):
    t = lifecycle.stake(config, funded, None, "alice", "s1", STAKE, T0)
    assert t.operation == StakeOperation.STAKE
    assert t.record.is_initialized and t.record.is_active
    assert t.record.stake_maturity_timestamp == T0 + 180 * DAY
    assert t.delta.get("total_staked_wei") == STAKE
    assert t.delta.get("reward_to_be_distributed_wei") == t.record.estimated_reward_at_maturity_wei
    assert t.movement.direction == "in"
    assert t.movement.token_role == TokenRole.STAKE
    assert lifecycle.state_of(t.record) == StakeState.ACTIVE


def test_stake_admission_errors(config, funded, record):
    with pytest.raises(AdmissionError, match="exists"):
        lifecycle.stake(config, funded, record, "alice", "s1", STAKE, T0)
    with pytest.raises(AdmissionError, match="stake amount"):
        lifecycle.stake(config, funded, None, "alice", "s2", 0, T0)
    with pytest.raises(AdmissionError, match="insufficient"):
        lifecycle.stake(config, PoolStats(pool_id="pool-1"), None, "alice", "s2", STAKE, T0)


def test_unstake_before_maturity(config, record):
    now = T0 + 90 * DAY
    t = lifecycle.unstake(config, record, now)
    r = t.record

    assert r.unstake_timestamp == now
    assert r.unstake_penalty_amount_wei == 300 * WEI   # 30% at the midpoint
    assert r.unstake_amount_wei == 700 * WEI
    assert r.unstake_cooldown_expiry_timestamp == now + 7 * DAY
    assert r.estimated_reward_at_unstake_wei == record.estimated_reward_at_maturity_wei // 2

    assert t.movement is None
    assert t.delta.get("total_unstaked_before_mature_wei") == 700 * WEI
    assert t.delta.get("total_unstake_penalty_amount_wei") == 300 * WEI
    assert t.delta.get("total_unstaked_reward_before_mature_wei") == (
        record.estimated_reward_at_maturity_wei - r.estimated_reward_at_unstake_wei
    )
    assert lifecycle.state_of(r) == StakeState.UNSTAKED

    with pytest.raises(StateError, match="unstaked"):
        lifecycle.unstake(config, r, now + 1)


def test_unstake_after_maturity_waives_penalty_and_cooldown(config, record):
    now = T0 + 200 * DAY
    t = lifecycle.unstake(config, record, now)
    assert t.record.unstake_penalty_amount_wei == 0
    assert t.record.unstake_amount_wei == STAKE
    assert t.record.unstake_cooldown_expiry_timestamp == now
    assert t.delta.get("total_unstaked_after_mature_wei") == STAKE
    assert t.delta.get("total_unstaked_before_mature_wei") == 0


def test_claim(config, record):
    with pytest.raises(NoOpError, match="zero reward"):
        lifecycle.claim(config, record, T0 + 10 * DAY)

    t = lifecycle.claim(config, record, T0 + 200 * DAY)
    assert t.movement.amount_wei == record.estimated_reward_at_maturity_wei
    assert t.movement.token_role == TokenRole.REWARD
    assert t.record.reward_claimed_wei == record.estimated_reward_at_maturity_wei

    with pytest.raises(NoOpError, match="zero reward"):
        lifecycle.claim(config, t.record, T0 + 201 * DAY)

    with pytest.raises(StateError, match="uninitialized stake"):
        lifecycle.claim(config, None, T0)


def test_withdraw(config, record):
    with pytest.raises(StateError, match="not unstake"):
        lifecycle.withdraw(config, record, T0 + DAY)

    unstaked = lifecycle.unstake(config, record, T0 + 90 * DAY).record
    with pytest.raises(StateError, match="cooldown"):
        lifecycle.withdraw(config, unstaked, T0 + 96 * DAY)

    t = lifecycle.withdraw(config, unstaked, T0 + 97 * DAY)
    assert t.movement.amount_wei == 700 * WEI
    assert t.movement.direction == "out"
    assert t.delta.get("total_withdrawn_unstake_wei") == 700 * WEI
    assert lifecycle.state_of(t.record) == StakeState.WITHDRAWN

    with pytest.raises(StateError, match="withdrawn"):
        lifecycle.withdraw(config, t.record, T0 + 98 * DAY)


def test_full_penalty_unstake_is_a_no_op(funded):
    config = make_pool_config(early_unstake_max_penalty_percent_wei=PERCENT_100_WEI)
    record = lifecycle.stake(config, funded, None, "alice", "s1", STAKE, T0).record

    with pytest.raises(NoOpError, match="zero unstake"):
        lifecycle.unstake(config, record, T0)
    assert lifecycle.unstake(config, record, T0 + DAY).record.unstake_amount_wei > 0


def test_revoke_amounts(config, record):
    # Active, nothing claimed: full principal and full reward
    t = lifecycle.revoke(config, record, T0 + DAY)
    assert t.record.revoked_stake_amount_wei == STAKE
    assert t.record.revoked_reward_amount_wei == record.estimated_reward_at_maturity_wei
    assert lifecycle.state_of(t.record) == StakeState.REVOKED
    with pytest.raises(StateError, match="revoked"):
        lifecycle.revoke(config, t.record, T0 + 2 * DAY)

    # Unstaked: the post-penalty amount and the frozen reward
    unstaked = lifecycle.unstake(config, record, T0 + 90 * DAY).record
    t = lifecycle.revoke(config, unstaked, T0 + 91 * DAY)
    assert t.record.revoked_stake_amount_wei == unstaked.unstake_amount_wei
    assert t.record.revoked_reward_amount_wei == unstaked.estimated_reward_at_unstake_wei

    # Claimed anything: no reward to revoke
    claimed = lifecycle.claim(config, record, T0 + 200 * DAY).record
    t = lifecycle.revoke(config, claimed, T0 + 201 * DAY)
    assert t.record.revoked_reward_amount_wei == 0
    assert t.delta.get("total_revoked_reward_wei") == 0

    # Withdrawn: rejected
    withdrawn = lifecycle.withdraw(config, unstaked, T0 + 100 * DAY).record
    with pytest.raises(StateError, match="withdrawn"):
        lifecycle.revoke(config, withdrawn, T0 + 101 * DAY)


def test_suspend_and_resume(config, record):
    suspended = lifecycle.suspend(record).record
    assert not suspended.is_active
    with pytest.raises(StateError, match="stake suspended"):
        lifecycle.suspend(suspended)
    with pytest.raises(StateError, match="stake suspended"):
        lifecycle.claim(config, suspended, T0 + 200 * DAY)
    with pytest.raises(StateError, match="stake suspended"):
        lifecycle.unstake(config, suspended, T0 + DAY)

    unstaked_then_suspended = lifecycle.suspend(lifecycle.unstake(config, record, T0 + 90 * DAY).record).record
    with pytest.raises(StateError, match="stake suspended"):
        lifecycle.withdraw(config, unstaked_then_suspended, T0 + 200 * DAY)

    resumed = lifecycle.resume(suspended)
    assert resumed.record.is_active
    assert not resumed.delta.increments
    with pytest.raises(StateError, match="stake active"):
        lifecycle.resume(resumed.record)
