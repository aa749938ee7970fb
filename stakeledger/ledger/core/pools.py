"""
Pool configuration registry.

Validates pool parameters once at creation and keeps the open/active flags
and the four admin-tunable parameters. Unknown pool ids are "uninitialized".
"""
from typing import Dict, List, Optional
import logging

from ...protocol.config.params import CURRENT_NETWORK, PERCENT_100_WEI, LedgerConfig
from ...protocol.types.common import ConfigurationError, StateError
from ...protocol.types.pool import PoolConfig
from .units import validate_decimals

logger = logging.getLogger(__name__)


def default_pool_config(network: LedgerConfig, **fields) -> PoolConfig:
    """
    Builds a PoolConfig, filling the lock duration and early-unstake terms
    from the network profile where the caller left them out (or None).
    """
    defaults = {
        "stake_duration_days": network.default_stake_duration_days,
        "early_unstake_cooldown_period_days": network.default_cooldown_period_days,
        "early_unstake_min_penalty_percent_wei": network.default_min_penalty_percent_wei,
        "early_unstake_max_penalty_percent_wei": network.default_max_penalty_percent_wei,
    }
    for name, value in defaults.items():
        if fields.get(name) is None:
            fields[name] = value
    return PoolConfig(**fields)


def validate_pool_config(config: PoolConfig, max_stake_duration_days: Optional[int] = None):
    if not config.pool_id:
        raise ConfigurationError("pool id")
    if not config.stake_token:
        raise ConfigurationError("stake token")
    if not config.reward_token:
        raise ConfigurationError("reward token")
    try:
        validate_decimals(config.stake_token_decimals)
    except ConfigurationError:
        raise ConfigurationError("stake decimals", {"decimals": config.stake_token_decimals})
    try:
        validate_decimals(config.reward_token_decimals)
    except ConfigurationError:
        raise ConfigurationError("reward decimals", {"decimals": config.reward_token_decimals})
    if config.stake_duration_days <= 0:
        raise ConfigurationError("stake duration", {"days": config.stake_duration_days})
    if max_stake_duration_days is not None and config.stake_duration_days > max_stake_duration_days:
        raise ConfigurationError(
            "stake duration", {"days": config.stake_duration_days, "max_days": max_stake_duration_days}
        )
    if config.pool_apr_wei < 0:
        raise ConfigurationError("pool APR", {"apr_wei": config.pool_apr_wei})
    _validate_tunables(
        config.early_unstake_cooldown_period_days,
        config.early_unstake_min_penalty_percent_wei,
        config.early_unstake_max_penalty_percent_wei,
        config.revshare_stake_duration_extension_days,
    )


def _validate_tunables(cooldown_days: int, min_penalty: int, max_penalty: int, revshare_days: int):
    if cooldown_days < 0:
        raise ConfigurationError("cooldown", {"days": cooldown_days})
    if min_penalty < 0 or min_penalty > PERCENT_100_WEI:
        raise ConfigurationError("min penalty", {"percent_wei": min_penalty})
    if max_penalty < 0 or max_penalty > PERCENT_100_WEI:
        raise ConfigurationError("max penalty", {"percent_wei": max_penalty})
    if min_penalty > max_penalty:
        raise ConfigurationError("min > max penalty", {"min": min_penalty, "max": max_penalty})
    if revshare_days < 0:
        raise ConfigurationError("revshare extension", {"days": revshare_days})


class PoolRegistry:
    def __init__(
        self,
        pools: Dict[str, PoolConfig] = None,
        max_stake_duration_days: Optional[int] = CURRENT_NETWORK.max_stake_duration_days,
    ):
        self._pools: Dict[str, PoolConfig] = pools if pools is not None else {}
        self.max_stake_duration_days = max_stake_duration_days

    def create_pool(self, config: PoolConfig) -> PoolConfig:
        validate_pool_config(config, self.max_stake_duration_days)
        if config.pool_id in self._pools:
            raise StateError("exists", {"pool_id": config.pool_id})
        self._pools[config.pool_id] = config
        logger.info(
            f"Pool {config.pool_id} created: {config.stake_token}/{config.reward_token}, "
            f"{config.stake_duration_days}d, apr_wei={config.pool_apr_wei}"
        )
        return config

    def get_pool(self, pool_id: str) -> PoolConfig:
        config = self._pools.get(pool_id)
        if config is None:
            raise StateError("uninitialized", {"pool_id": pool_id})
        return config

    def find_pool(self, pool_id: str) -> Optional[PoolConfig]:
        return self._pools.get(pool_id)

    def list_pools(self) -> List[PoolConfig]:
        return list(self._pools.values())

    def restore(self, config: PoolConfig) -> PoolConfig:
        self._pools[config.pool_id] = config
        return config

    def open_pool(self, pool_id: str) -> PoolConfig:
        config = self.get_pool(pool_id)
        if config.is_open:
            raise StateError("opened", {"pool_id": pool_id})
        return self.restore(config.model_copy(update={"is_open": True}))

    def close_pool(self, pool_id: str) -> PoolConfig:
        config = self.get_pool(pool_id)
        if not config.is_open:
            raise StateError("closed", {"pool_id": pool_id})
        return self.restore(config.model_copy(update={"is_open": False}))

    def suspend_pool(self, pool_id: str) -> PoolConfig:
        config = self.get_pool(pool_id)
        if not config.is_active:
            raise StateError("suspended", {"pool_id": pool_id})
        return self.restore(config.model_copy(update={"is_active": False}))

    def resume_pool(self, pool_id: str) -> PoolConfig:
        config = self.get_pool(pool_id)
        if config.is_active:
            raise StateError("active", {"pool_id": pool_id})
        return self.restore(config.model_copy(update={"is_active": True}))

    def set_pool_params(
        self,
        pool_id: str,
        cooldown_period_days: int = None,
        min_penalty_percent_wei: int = None,
        max_penalty_percent_wei: int = None,
        revshare_extension_days: int = None,
    ) -> PoolConfig:
        config = self.get_pool(pool_id)
        updates = {
            "early_unstake_cooldown_period_days": cooldown_period_days,
            "early_unstake_min_penalty_percent_wei": min_penalty_percent_wei,
            "early_unstake_max_penalty_percent_wei": max_penalty_percent_wei,
            "revshare_stake_duration_extension_days": revshare_extension_days,
        }
        updates = {k: v for k, v in updates.items() if v is not None}
        candidate = config.model_copy(update=updates)
        _validate_tunables(
            candidate.early_unstake_cooldown_period_days,
            candidate.early_unstake_min_penalty_percent_wei,
            candidate.early_unstake_max_penalty_percent_wei,
            candidate.revshare_stake_duration_extension_days,
        )
        logger.info(f"Pool {pool_id} params updated: {updates}")
        return self.restore(candidate)
