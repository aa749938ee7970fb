from pydantic import BaseModel


class StakeRecord(BaseModel):
    """
    One stake, keyed by (pool_id, account, stake_id). Canonical units.

    Timestamps are unix seconds; 0 means "has not happened".
    """
    pool_id: str
    account: str
    stake_id: str

    stake_amount_wei: int = 0
    stake_timestamp: int = 0
    stake_maturity_timestamp: int = 0

    estimated_reward_at_maturity_wei: int = 0
    estimated_reward_at_unstake_wei: int = 0     # Frozen once, at unstake
    reward_claimed_wei: int = 0

    unstake_amount_wei: int = 0
    unstake_penalty_amount_wei: int = 0
    unstake_timestamp: int = 0
    unstake_cooldown_expiry_timestamp: int = 0
    withdraw_unstake_timestamp: int = 0

    revoked_reward_amount_wei: int = 0
    revoked_stake_amount_wei: int = 0
    revoke_timestamp: int = 0

    is_active: bool = False       # False while suspended
    is_initialized: bool = False

    @property
    def key(self) -> str:
        return f"{self.pool_id}:{self.account}:{self.stake_id}"

    @property
    def is_unstaked(self) -> bool:
        return self.unstake_timestamp > 0

    @property
    def is_withdrawn(self) -> bool:
        return self.withdraw_unstake_timestamp > 0

    @property
    def is_revoked(self) -> bool:
        return self.revoke_timestamp > 0


class StakeInfo(BaseModel):
    """StakeRecord in native token units."""
    pool_id: str
    account: str
    stake_id: str

    stake_amount: int
    stake_timestamp: int
    stake_maturity_timestamp: int
    estimated_reward_at_maturity: int
    estimated_reward_at_unstake: int
    reward_claimed: int

    unstake_amount: int
    unstake_penalty_amount: int
    unstake_timestamp: int
    unstake_cooldown_expiry_timestamp: int
    withdraw_unstake_timestamp: int

    revoked_reward_amount: int
    revoked_stake_amount: int
    revoke_timestamp: int

    is_active: bool
    is_initialized: bool


class UnstakingInfo(BaseModel):
    """What an unstake would fix if it happened at `as_of`."""
    pool_id: str
    account: str
    stake_id: str
    as_of: int

    estimated_unstake_amount: int
    estimated_unstake_penalty_amount: int
    estimated_reward_at_unstake: int
    estimated_cooldown_expiry_timestamp: int
    is_matured: bool
