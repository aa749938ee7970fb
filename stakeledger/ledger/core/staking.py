# MIT License
# Copyright (c) 2025 Hashborn

"""
Staking service.

Wires the pool registry, the pool ledger and the stake lifecycle to the
token and access-control collaborators. Every mutating call runs under the
lock of its pool and is all-or-nothing: the new record and pool counters are
committed first, then tokens move exactly once; if the transfer fails the
commit is rolled back.

Amounts crossing this boundary are native token units.
"""
from contextlib import contextmanager
from typing import Callable, Dict, Optional, Tuple
import json
import logging
import threading

from ...protocol.types.common import (
    AdmissionError,
    AuthorizationError,
    ConfigurationError,
    LedgerError,
    Role,
    StakeOperation,
    StateError,
)
from ...protocol.types.pool import PoolConfig, PoolStats, PoolStatsInfo
from ...protocol.types.stake import StakeInfo, StakeRecord, UnstakingInfo
from ..observability.metrics import record_call, record_rejection, update_pool_metrics
from ..storage.db import StorageDB
from . import lifecycle, rewards
from .accounts import AccessControl, TokenTransfer, system_clock
from .events import EventBus, LedgerEvent, event_bus
from .lifecycle import TokenMovement, TokenRole, Transition
from .pool_ledger import (
    LedgerDelta,
    PoolLedger,
    add_reward_delta,
    remove_revoked_stakes_delta,
    remove_unallocated_reward_delta,
    remove_unstake_penalty_delta,
    stats_info,
)
from .pools import PoolRegistry
from .units import scale_wei_to_decimals, to_canonical

logger = logging.getLogger(__name__)

StakeKey = Tuple[str, str, str]


def storage_key(namespace: str, *parts: str) -> str:
    """
    DB key for a pool, its stats or a stake. The id parts are JSON-encoded
    so that ids containing ':' cannot collide.
    """
    return f"{namespace}:{json.dumps(list(parts))}"


def stake_info(config: PoolConfig, record: StakeRecord) -> StakeInfo:
    s_dec = config.stake_token_decimals
    r_dec = config.reward_token_decimals
    return StakeInfo(
        pool_id=record.pool_id,
        account=record.account,
        stake_id=record.stake_id,
        stake_amount=scale_wei_to_decimals(record.stake_amount_wei, s_dec),
        stake_timestamp=record.stake_timestamp,
        stake_maturity_timestamp=record.stake_maturity_timestamp,
        estimated_reward_at_maturity=scale_wei_to_decimals(record.estimated_reward_at_maturity_wei, r_dec),
        estimated_reward_at_unstake=scale_wei_to_decimals(record.estimated_reward_at_unstake_wei, r_dec),
        reward_claimed=scale_wei_to_decimals(record.reward_claimed_wei, r_dec),
        unstake_amount=scale_wei_to_decimals(record.unstake_amount_wei, s_dec),
        unstake_penalty_amount=scale_wei_to_decimals(record.unstake_penalty_amount_wei, s_dec),
        unstake_timestamp=record.unstake_timestamp,
        unstake_cooldown_expiry_timestamp=record.unstake_cooldown_expiry_timestamp,
        withdraw_unstake_timestamp=record.withdraw_unstake_timestamp,
        revoked_reward_amount=scale_wei_to_decimals(record.revoked_reward_amount_wei, r_dec),
        revoked_stake_amount=scale_wei_to_decimals(record.revoked_stake_amount_wei, s_dec),
        revoke_timestamp=record.revoke_timestamp,
        is_active=record.is_active,
        is_initialized=record.is_initialized,
    )


class StakingService:
    def __init__(
        self,
        token_bank: TokenTransfer,
        access: AccessControl,
        clock: Callable[[], int] = system_clock,
        db: Optional[StorageDB] = None,
        admin_wallet: str = "",
        events: EventBus = event_bus,
    ):
        self.token_bank = token_bank
        self.access = access
        self.clock = clock
        self.db = db
        self.events = events

        self.pools = PoolRegistry()
        self.ledger = PoolLedger()
        self.stakes: Dict[StakeKey, StakeRecord] = {}

        self.admin_wallet = admin_wallet
        self.paused = False

        self._lock = threading.RLock()           # Service-wide flags
        self._registry_lock = threading.Lock()   # Guards _pool_locks
        self._pool_locks: Dict[str, threading.RLock] = {}

    # ═══════════════════════════════════════════════════════════════════
    # PLUMBING
    # ═══════════════════════════════════════════════════════════════════

    def _pool_lock(self, pool_id: str) -> threading.RLock:
        """Locks exist only for created or loaded pools."""
        with self._registry_lock:
            lock = self._pool_locks.get(pool_id)
        if lock is None:
            raise StateError("uninitialized", {"pool_id": pool_id})
        return lock

    def _add_pool_lock(self, pool_id: str):
        with self._registry_lock:
            self._pool_locks.setdefault(pool_id, threading.RLock())

    @contextmanager
    def _guard(self, operation: str):
        try:
            yield
        except LedgerError as e:
            record_rejection(operation, e.category.value)
            logger.warning(f"{operation} rejected: {e}")
            self.events.emit(
                LedgerEvent.CALL_REJECTED,
                operation=operation,
                reason=e.reason,
                category=e.category.value,
            )
            raise

    def _require_role(self, role: Role, caller: str):
        if not self.access.has_role(role, caller):
            raise AuthorizationError("unauthorized", {"role": role.value, "caller": caller})

    def _require_not_paused(self):
        if self.paused:
            raise StateError("paused")

    @staticmethod
    def _require_ids(account: str, stake_id: str):
        if not account:
            raise AdmissionError("account")
        if not stake_id:
            raise AdmissionError("stake id")

    def _require_active_pool(self, config: PoolConfig):
        if not config.is_active:
            raise StateError("pool suspended", {"pool_id": config.pool_id})

    def _require_admin_wallet(self) -> str:
        if not self.admin_wallet:
            raise ConfigurationError("admin wallet")
        return self.admin_wallet

    def _get_record(self, pool_id: str, account: str, stake_id: str) -> Optional[StakeRecord]:
        return self.stakes.get((pool_id, account, stake_id))

    def _require_record(self, pool_id: str, account: str, stake_id: str) -> StakeRecord:
        record = self._get_record(pool_id, account, stake_id)
        if record is None or not record.is_initialized:
            raise StateError("uninitialized stake", {"pool_id": pool_id, "account": account, "stake_id": stake_id})
        return record

    def _native(self, config: PoolConfig, movement: TokenMovement) -> Tuple[str, int]:
        if movement.token_role == TokenRole.STAKE:
            return config.stake_token, scale_wei_to_decimals(movement.amount_wei, config.stake_token_decimals)
        return config.reward_token, scale_wei_to_decimals(movement.amount_wei, config.reward_token_decimals)

    def _move_tokens(self, config: PoolConfig, movement: Optional[TokenMovement], counterparty: str) -> int:
        if movement is None:
            return 0
        token, amount = self._native(config, movement)
        if amount == 0:
            return 0
        if movement.direction == "in":
            self.token_bank.transfer_in(token, counterparty, amount)
        else:
            self.token_bank.transfer_out(token, counterparty, amount)
        return amount

    def _commit(
        self,
        config: PoolConfig,
        delta: LedgerDelta,
        record: Optional[StakeRecord] = None,
        movement: Optional[TokenMovement] = None,
        counterparty: str = "",
    ) -> int:
        """
        Commits the pool delta and the record, then moves tokens.

        Returns the native amount transferred. On a failed transfer both the
        pool counters and the record are put back and the error propagates.
        """
        pool_id = config.pool_id
        previous_stats = self.ledger.get_stats(pool_id)
        key = (record.pool_id, record.account, record.stake_id) if record else None
        previous_record = self.stakes.get(key) if key else None

        # apply() checks invariants on a copy before committing
        self.ledger.apply(pool_id, delta)
        if key:
            self.stakes[key] = record

        try:
            amount = self._move_tokens(config, movement, counterparty)
        except Exception as e:
            self.ledger.restore(previous_stats)
            if key:
                if previous_record is None:
                    self.stakes.pop(key, None)
                else:
                    self.stakes[key] = previous_record
            logger.error(f"{delta.operation.value} on pool {pool_id} rolled back: transfer failed: {e}")
            raise

        self._persist(pool_id, record)
        return amount

    def _finish(self, operation: StakeOperation, config: PoolConfig, amount: int, now: int, **data):
        record_call(operation.value)
        update_pool_metrics(stats_info(config, self.ledger.get_stats(config.pool_id)))
        self.events.emit(
            LedgerEvent.for_operation(operation),
            pool_id=config.pool_id,
            amount=amount,
            timestamp=now,
            **data,
        )

    def _run_transition(self, config: PoolConfig, transition: Transition, counterparty: str, now: int) -> int:
        record = transition.record
        amount = self._commit(config, transition.delta, record, transition.movement, counterparty)
        logger.info(
            f"{transition.operation.value} {record.key}: amount={amount}"
        )
        self._finish(
            transition.operation, config, amount, now,
            account=record.account, stake_id=record.stake_id,
        )
        return amount

    # ═══════════════════════════════════════════════════════════════════
    # PERSISTENCE
    # ═══════════════════════════════════════════════════════════════════

    def _persist(self, pool_id: str, record: Optional[StakeRecord] = None):
        if not self.db:
            return
        items = {storage_key("stats", pool_id): self.ledger.get_stats(pool_id).model_dump_json()}
        if record is not None:
            items[storage_key("stake", record.pool_id, record.account, record.stake_id)] = record.model_dump_json()
        self.db.set_many(items)

    def _persist_pool(self, config: PoolConfig):
        if self.db:
            self.db.set_state(storage_key("pool", config.pool_id), config.model_dump_json())

    def _persist_flags(self):
        if self.db:
            self.db.set_many({
                "admin_wallet": self.admin_wallet,
                "paused": "1" if self.paused else "0",
            })

    def load(self):
        """Rebuilds in-memory state from the attached StorageDB."""
        if not self.db:
            return
        for raw in self.db.get_state_by_prefix("pool:").values():
            config = PoolConfig.model_validate_json(raw)
            self.pools.restore(config)
        for raw in self.db.get_state_by_prefix("stats:").values():
            self.ledger.restore(PoolStats.model_validate_json(raw))
        for raw in self.db.get_state_by_prefix("stake:").values():
            record = StakeRecord.model_validate_json(raw)
            self.stakes[(record.pool_id, record.account, record.stake_id)] = record

        wallet = self.db.get_state("admin_wallet")
        if wallet is not None:
            self.admin_wallet = wallet
        self.paused = self.db.get_state("paused") == "1"

        for config in self.pools.list_pools():
            if not self.ledger.has_pool(config.pool_id):
                self.ledger.open_pool(config.pool_id)
            self._add_pool_lock(config.pool_id)
            update_pool_metrics(stats_info(config, self.ledger.get_stats(config.pool_id)))
        logger.info(f"Loaded {len(self.pools.list_pools())} pools and {len(self.stakes)} stakes")

    # ═══════════════════════════════════════════════════════════════════
    # QUERIES
    # ═══════════════════════════════════════════════════════════════════

    def get_pool_config(self, pool_id: str) -> PoolConfig:
        return self.pools.get_pool(pool_id)

    def get_pool_stats(self, pool_id: str) -> PoolStatsInfo:
        config = self.pools.get_pool(pool_id)
        return stats_info(config, self.ledger.get_stats(pool_id))

    def get_stake_info(self, pool_id: str, account: str, stake_id: str) -> StakeInfo:
        """Unknown stakes come back zeroed with is_initialized=False."""
        config = self.pools.get_pool(pool_id)
        record = self._get_record(pool_id, account, stake_id)
        if record is None:
            record = StakeRecord(pool_id=pool_id, account=account, stake_id=stake_id)
        return stake_info(config, record)

    def get_unstaking_info(self, pool_id: str, account: str, stake_id: str) -> UnstakingInfo:
        """What an unstake issued now would fix."""
        config = self.pools.get_pool(pool_id)
        record = self._require_record(pool_id, account, stake_id)
        if record.is_revoked:
            raise StateError("revoked stake", {"key": record.key})
        if record.is_unstaked:
            raise StateError("unstaked", {"key": record.key})

        terms = lifecycle.unstake_terms(config, record, self.clock())
        return UnstakingInfo(
            pool_id=pool_id,
            account=account,
            stake_id=stake_id,
            as_of=terms.as_of,
            estimated_unstake_amount=scale_wei_to_decimals(terms.unstake_amount_wei, config.stake_token_decimals),
            estimated_unstake_penalty_amount=scale_wei_to_decimals(terms.penalty_amount_wei, config.stake_token_decimals),
            estimated_reward_at_unstake=scale_wei_to_decimals(terms.reward_at_unstake_wei, config.reward_token_decimals),
            estimated_cooldown_expiry_timestamp=terms.cooldown_expiry_timestamp,
            is_matured=terms.matured,
        )

    def get_claimable_reward(self, pool_id: str, account: str, stake_id: str) -> int:
        config = self.pools.get_pool(pool_id)
        record = self._require_record(pool_id, account, stake_id)
        if record.is_revoked:
            return 0
        amount_wei = lifecycle.claimable(config, record, self.clock())
        return scale_wei_to_decimals(amount_wei, config.reward_token_decimals)

    def get_estimated_reward_at_unstaking(
        self, pool_id: str, account: str, stake_id: str, unstake_timestamp: int
    ) -> int:
        config = self.pools.get_pool(pool_id)
        record = self._require_record(pool_id, account, stake_id)
        if record.is_revoked:
            return 0
        amount_wei = rewards.reward_at_effective_time(
            record.estimated_reward_at_maturity_wei,
            record.stake_timestamp,
            record.stake_maturity_timestamp,
            unstake_timestamp,
            unstake_timestamp,
            config.reward_token_decimals,
        )
        return scale_wei_to_decimals(amount_wei, config.reward_token_decimals)

    # ═══════════════════════════════════════════════════════════════════
    # STAKER OPERATIONS
    # ═══════════════════════════════════════════════════════════════════

    def stake(self, pool_id: str, account: str, stake_id: str, stake_amount: int) -> StakeInfo:
        with self._guard(StakeOperation.STAKE.value):
            self._require_ids(account, stake_id)
            self._require_not_paused()
            if stake_amount <= 0:
                raise AdmissionError("stake amount", {"amount": stake_amount})

            with self._pool_lock(pool_id):
                config = self.pools.get_pool(pool_id)
                if not config.is_open:
                    raise StateError("pool closed", {"pool_id": pool_id})
                self._require_active_pool(config)

                now = self.clock()
                transition = lifecycle.stake(
                    config,
                    self.ledger.get_stats(pool_id),
                    self._get_record(pool_id, account, stake_id),
                    account,
                    stake_id,
                    to_canonical(stake_amount, config.stake_token_decimals),
                    now,
                )
                self._run_transition(config, transition, account, now)
                return stake_info(config, transition.record)

    def claim_reward(self, pool_id: str, account: str, stake_id: str) -> int:
        """Pays out the claimable reward; returns the amount in reward-token units."""
        with self._guard(StakeOperation.CLAIM.value):
            self._require_ids(account, stake_id)
            self._require_not_paused()
            with self._pool_lock(pool_id):
                config = self.pools.get_pool(pool_id)
                self._require_active_pool(config)
                now = self.clock()
                transition = lifecycle.claim(config, self._get_record(pool_id, account, stake_id), now)
                return self._run_transition(config, transition, account, now)

    def unstake(self, pool_id: str, account: str, stake_id: str) -> StakeInfo:
        with self._guard(StakeOperation.UNSTAKE.value):
            self._require_ids(account, stake_id)
            self._require_not_paused()
            with self._pool_lock(pool_id):
                config = self.pools.get_pool(pool_id)
                self._require_active_pool(config)
                now = self.clock()
                transition = lifecycle.unstake(config, self._get_record(pool_id, account, stake_id), now)
                self._run_transition(config, transition, account, now)
                return stake_info(config, transition.record)

    def withdraw_unstake(self, pool_id: str, account: str, stake_id: str) -> int:
        """Returns the unstaked principal; the amount is in stake-token units."""
        with self._guard(StakeOperation.WITHDRAW.value):
            self._require_ids(account, stake_id)
            self._require_not_paused()
            with self._pool_lock(pool_id):
                config = self.pools.get_pool(pool_id)
                self._require_active_pool(config)
                now = self.clock()
                transition = lifecycle.withdraw(config, self._get_record(pool_id, account, stake_id), now)
                return self._run_transition(config, transition, account, now)

    # ═══════════════════════════════════════════════════════════════════
    # ADMIN: STAKES
    # ═══════════════════════════════════════════════════════════════════

    def revoke_stake(self, caller: str, pool_id: str, account: str, stake_id: str) -> StakeInfo:
        with self._guard(StakeOperation.REVOKE.value):
            self._require_role(Role.CONTRACT_ADMIN, caller)
            self._require_ids(account, stake_id)
            with self._pool_lock(pool_id):
                config = self.pools.get_pool(pool_id)
                now = self.clock()
                transition = lifecycle.revoke(config, self._get_record(pool_id, account, stake_id), now)
                self._run_transition(config, transition, account, now)
                return stake_info(config, transition.record)

    def suspend_stake(self, caller: str, pool_id: str, account: str, stake_id: str) -> StakeInfo:
        with self._guard(StakeOperation.SUSPEND.value):
            self._require_role(Role.CONTRACT_ADMIN, caller)
            self._require_ids(account, stake_id)
            with self._pool_lock(pool_id):
                config = self.pools.get_pool(pool_id)
                transition = lifecycle.suspend(self._get_record(pool_id, account, stake_id))
                self._run_transition(config, transition, account, self.clock())
                return stake_info(config, transition.record)

    def resume_stake(self, caller: str, pool_id: str, account: str, stake_id: str) -> StakeInfo:
        with self._guard(StakeOperation.RESUME.value):
            self._require_role(Role.CONTRACT_ADMIN, caller)
            self._require_ids(account, stake_id)
            with self._pool_lock(pool_id):
                config = self.pools.get_pool(pool_id)
                transition = lifecycle.resume(self._get_record(pool_id, account, stake_id))
                self._run_transition(config, transition, account, self.clock())
                return stake_info(config, transition.record)

    # ═══════════════════════════════════════════════════════════════════
    # ADMIN: POOL FUNDS
    # ═══════════════════════════════════════════════════════════════════

    def _pool_operation(
        self,
        config: PoolConfig,
        delta: LedgerDelta,
        movement: TokenMovement,
        counterparty: str,
    ) -> int:
        now = self.clock()
        amount = self._commit(config, delta, movement=movement, counterparty=counterparty)
        logger.info(f"{delta.operation.value} on pool {config.pool_id}: amount={amount}, counterparty={counterparty}")
        self._finish(delta.operation, config, amount, now, counterparty=counterparty)
        return amount

    def add_pool_reward(self, caller: str, pool_id: str, reward_amount: int) -> PoolStatsInfo:
        """Funds the pool with reward tokens taken from the caller."""
        with self._guard(StakeOperation.ADD_REWARD.value):
            self._require_role(Role.CONTRACT_ADMIN, caller)
            with self._pool_lock(pool_id):
                config = self.pools.get_pool(pool_id)
                amount_wei = to_canonical(max(reward_amount, 0), config.reward_token_decimals)
                delta = add_reward_delta(config, amount_wei)
                self._pool_operation(
                    config, delta, TokenMovement("in", TokenRole.REWARD, amount_wei), caller,
                )
                return self.get_pool_stats(pool_id)

    def remove_revoked_stakes(self, caller: str, pool_id: str) -> int:
        with self._guard(StakeOperation.REMOVE_REVOKED_STAKES.value):
            self._require_role(Role.CONTRACT_ADMIN, caller)
            with self._pool_lock(pool_id):
                config = self.pools.get_pool(pool_id)
                delta = remove_revoked_stakes_delta(self.ledger.get_stats(pool_id))
                wallet = self._require_admin_wallet()
                return self._pool_operation(
                    config, delta,
                    TokenMovement("out", TokenRole.STAKE, delta.get("total_revoked_stake_removed_wei")),
                    wallet,
                )

    def remove_unstake_penalty(self, caller: str, pool_id: str) -> int:
        with self._guard(StakeOperation.REMOVE_UNSTAKE_PENALTY.value):
            self._require_role(Role.CONTRACT_ADMIN, caller)
            with self._pool_lock(pool_id):
                config = self.pools.get_pool(pool_id)
                delta = remove_unstake_penalty_delta(self.ledger.get_stats(pool_id))
                wallet = self._require_admin_wallet()
                return self._pool_operation(
                    config, delta,
                    TokenMovement("out", TokenRole.STAKE, delta.get("total_unstake_penalty_removed_wei")),
                    wallet,
                )

    def remove_unallocated_pool_reward(self, caller: str, pool_id: str) -> int:
        with self._guard(StakeOperation.REMOVE_UNALLOCATED_REWARD.value):
            self._require_role(Role.CONTRACT_ADMIN, caller)
            with self._pool_lock(pool_id):
                config = self.pools.get_pool(pool_id)
                delta = remove_unallocated_reward_delta(self.ledger.get_stats(pool_id))
                wallet = self._require_admin_wallet()
                return self._pool_operation(
                    config, delta,
                    TokenMovement("out", TokenRole.REWARD, delta.get("total_reward_removed_wei")),
                    wallet,
                )

    # ═══════════════════════════════════════════════════════════════════
    # ADMIN: POOLS
    # ═══════════════════════════════════════════════════════════════════

    def create_pool(self, caller: str, config: PoolConfig) -> PoolConfig:
        with self._guard("CREATE_POOL"):
            self._require_role(Role.CONTRACT_ADMIN, caller)
            # Service-wide lock: the pool has no lock of its own yet
            with self._lock:
                created = self.pools.create_pool(config)
                self.ledger.open_pool(created.pool_id)
                self._persist_pool(created)
                self._persist(created.pool_id)
                self._add_pool_lock(created.pool_id)
                update_pool_metrics(stats_info(created, self.ledger.get_stats(created.pool_id)))
                return created

    def _update_pool(self, operation: str, caller: str, pool_id: str, update: Callable[[], PoolConfig]) -> PoolConfig:
        with self._guard(operation):
            self._require_role(Role.CONTRACT_ADMIN, caller)
            with self._pool_lock(pool_id):
                config = update()
                self._persist_pool(config)
                logger.info(f"{operation} {pool_id}: open={config.is_open}, active={config.is_active}")
                return config

    def open_pool(self, caller: str, pool_id: str) -> PoolConfig:
        return self._update_pool("OPEN_POOL", caller, pool_id, lambda: self.pools.open_pool(pool_id))

    def close_pool(self, caller: str, pool_id: str) -> PoolConfig:
        return self._update_pool("CLOSE_POOL", caller, pool_id, lambda: self.pools.close_pool(pool_id))

    def suspend_pool(self, caller: str, pool_id: str) -> PoolConfig:
        return self._update_pool("SUSPEND_POOL", caller, pool_id, lambda: self.pools.suspend_pool(pool_id))

    def resume_pool(self, caller: str, pool_id: str) -> PoolConfig:
        return self._update_pool("RESUME_POOL", caller, pool_id, lambda: self.pools.resume_pool(pool_id))

    def set_pool_params(self, caller: str, pool_id: str, **params) -> PoolConfig:
        """Accepts cooldown_period_days, min/max_penalty_percent_wei, revshare_extension_days."""
        return self._update_pool(
            "SET_POOL_PARAMS", caller, pool_id, lambda: self.pools.set_pool_params(pool_id, **params)
        )

    # ═══════════════════════════════════════════════════════════════════
    # GOVERNANCE
    # ═══════════════════════════════════════════════════════════════════

    def set_admin_wallet(self, caller: str, wallet: str):
        with self._guard("SET_ADMIN_WALLET"):
            self._require_role(Role.GOVERNANCE, caller)
            if not wallet:
                raise AdmissionError("account")
            with self._lock:
                self.admin_wallet = wallet
                self._persist_flags()
            logger.info(f"Admin wallet set to {wallet}")

    def pause(self, caller: str):
        with self._guard("PAUSE"):
            self._require_role(Role.GOVERNANCE, caller)
            with self._lock:
                if self.paused:
                    raise StateError("paused")
                self.paused = True
                self._persist_flags()
            logger.info(f"Staking paused by {caller}")

    def unpause(self, caller: str):
        with self._guard("UNPAUSE"):
            self._require_role(Role.GOVERNANCE, caller)
            with self._lock:
                if not self.paused:
                    raise StateError("not paused")
                self.paused = False
                self._persist_flags()
            logger.info(f"Staking unpaused by {caller}")
