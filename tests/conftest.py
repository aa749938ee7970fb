import pytest

from stakeledger.protocol.config.params import WEI
from stakeledger.protocol.types.common import Role
from stakeledger.protocol.types.pool import PoolConfig
from stakeledger.ledger.core.accounts import TokenBank, RoleRegistry, ManualClock
from stakeledger.ledger.core.events import EventBus
from stakeledger.ledger.core.staking import StakingService

T0 = 1_700_000_000
DAY = 86_400

ADMIN = "admin"
GOV = "gov"
TREASURY = "treasury"
ALICE = "alice"
BOB = "bob"

STK = "STK"
RWD = "RWD"


def make_pool_config(**overrides) -> PoolConfig:
    """180-day pool at 50% APR, 10%..50% early-exit penalty, 7 day cooldown."""
    fields = dict(
        pool_id="pool-1",
        stake_token=STK,
        stake_token_decimals=18,
        reward_token=RWD,
        reward_token_decimals=18,
        stake_duration_days=180,
        pool_apr_wei=50 * WEI,
        early_unstake_cooldown_period_days=7,
        early_unstake_min_penalty_percent_wei=10 * WEI,
        early_unstake_max_penalty_percent_wei=50 * WEI,
    )
    fields.update(overrides)
    return PoolConfig(**fields)


@pytest.fixture
def clock():
    return ManualClock(T0)


@pytest.fixture
def bank():
    return TokenBank()


@pytest.fixture
def roles():
    registry = RoleRegistry()
    registry.grant_role(Role.CONTRACT_ADMIN, ADMIN)
    registry.grant_role(Role.GOVERNANCE, GOV)
    return registry


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def service(bank, roles, clock, bus):
    return StakingService(
        token_bank=bank,
        access=roles,
        clock=clock,
        admin_wallet=TREASURY,
        events=bus,
    )


@pytest.fixture
def pool(service, bank):
    """Default pool funded with 10,000 RWD; Alice and Bob hold 100,000 STK each."""
    config = service.create_pool(ADMIN, make_pool_config())
    bank.mint(RWD, ADMIN, 1_000_000 * WEI)
    service.add_pool_reward(ADMIN, config.pool_id, 10_000 * WEI)
    bank.mint(STK, ALICE, 100_000 * WEI)
    bank.mint(STK, BOB, 100_000 * WEI)
    return config
