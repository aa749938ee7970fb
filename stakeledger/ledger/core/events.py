"""
Ledger events.

Every committed stake or pool call emits one LedgerEvent; rejected calls emit
CALL_REJECTED. Delivery is synchronous, after the commit.
"""
from enum import Enum
from typing import Any, Callable, Dict, List, Union
import logging

from ...protocol.types.common import StakeOperation

logger = logging.getLogger(__name__)


class LedgerEvent(str, Enum):
    STAKED = "staked"
    REWARD_CLAIMED = "reward_claimed"
    UNSTAKED = "unstaked"
    UNSTAKE_WITHDRAWN = "unstake_withdrawn"
    STAKE_REVOKED = "stake_revoked"
    STAKE_SUSPENDED = "stake_suspended"
    STAKE_RESUMED = "stake_resumed"
    POOL_REWARD_ADDED = "pool_reward_added"
    REVOKED_STAKES_REMOVED = "revoked_stakes_removed"
    UNSTAKE_PENALTY_REMOVED = "unstake_penalty_removed"
    UNALLOCATED_REWARD_REMOVED = "unallocated_reward_removed"
    CALL_REJECTED = "call_rejected"

    @classmethod
    def for_operation(cls, operation: StakeOperation) -> "LedgerEvent":
        return _EVENT_BY_OPERATION[operation]


_EVENT_BY_OPERATION = {
    StakeOperation.STAKE: LedgerEvent.STAKED,
    StakeOperation.CLAIM: LedgerEvent.REWARD_CLAIMED,
    StakeOperation.UNSTAKE: LedgerEvent.UNSTAKED,
    StakeOperation.WITHDRAW: LedgerEvent.UNSTAKE_WITHDRAWN,
    StakeOperation.REVOKE: LedgerEvent.STAKE_REVOKED,
    StakeOperation.SUSPEND: LedgerEvent.STAKE_SUSPENDED,
    StakeOperation.RESUME: LedgerEvent.STAKE_RESUMED,
    StakeOperation.ADD_REWARD: LedgerEvent.POOL_REWARD_ADDED,
    StakeOperation.REMOVE_REVOKED_STAKES: LedgerEvent.REVOKED_STAKES_REMOVED,
    StakeOperation.REMOVE_UNSTAKE_PENALTY: LedgerEvent.UNSTAKE_PENALTY_REMOVED,
    StakeOperation.REMOVE_UNALLOCATED_REWARD: LedgerEvent.UNALLOCATED_REWARD_REMOVED,
}


class EventBus:
    """
    Listeners per LedgerEvent.

    A failing listener is logged and never affects the committed call.
    """

    def __init__(self):
        self.listeners: Dict[LedgerEvent, List[Callable]] = {}

    def subscribe(self, event: Union[LedgerEvent, str], callback: Callable) -> None:
        """
        Args:
            event: LedgerEvent or its value (e.g. 'staked'); unknown names raise ValueError
            callback: Called with the event data as keyword arguments
        """
        event = LedgerEvent(event)
        self.listeners.setdefault(event, []).append(callback)
        logger.debug(f"Subscribed to event: {event.value}")

    def emit(self, event: LedgerEvent, **data: Any) -> None:
        listeners = self.listeners.get(event, [])
        if not listeners:
            return

        logger.debug(f"Emitting event: {event.value} to {len(listeners)} listener(s)")
        for callback in listeners:
            try:
                callback(**data)
            except Exception as e:
                logger.error(f"Error in event callback for {event.value}: {e}", exc_info=True)


# Global event bus instance
event_bus = EventBus()
