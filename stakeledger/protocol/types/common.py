# MIT License
# Copyright (c) 2025 Hashborn

from enum import Enum
from typing import Optional


class Role(str, Enum):
    GOVERNANCE = "GOVERNANCE"           # Admin wallet, pause/unpause
    CONTRACT_ADMIN = "CONTRACT_ADMIN"   # Revoke, suspend, fund and sweep


class StakeOperation(str, Enum):
    STAKE = "STAKE"
    CLAIM = "CLAIM"
    UNSTAKE = "UNSTAKE"
    WITHDRAW = "WITHDRAW"
    REVOKE = "REVOKE"
    SUSPEND = "SUSPEND"
    RESUME = "RESUME"

    # Pool-level operations
    ADD_REWARD = "ADD_REWARD"
    REMOVE_REVOKED_STAKES = "REMOVE_REVOKED_STAKES"
    REMOVE_UNSTAKE_PENALTY = "REMOVE_UNSTAKE_PENALTY"
    REMOVE_UNALLOCATED_REWARD = "REMOVE_UNALLOCATED_REWARD"


class ErrorCategory(str, Enum):
    ADMISSION = "admission"
    STATE = "state"
    AUTHORIZATION = "authorization"
    NO_OP = "no_op"
    CONFIGURATION = "configuration"
    INVARIANT = "invariant"


class ProtocolError(Exception):
    pass


class ValidationError(ProtocolError):
    pass


class LedgerError(ProtocolError):
    """
    Base error for every rejected ledger call.

    `reason` is a short stable string ("exists", "cooldown", ...) that callers
    match on; `category` tells whether anything could have happened at all.
    """
    category = ErrorCategory.STATE

    def __init__(self, reason: str, details: Optional[dict] = None):
        self.reason = reason
        self.details = details or {}
        super().__init__(reason)

    def __str__(self) -> str:
        if not self.details:
            return self.reason
        return f"{self.reason}: {self.details}"

    def to_dict(self) -> dict:
        return {
            "category": self.category.value,
            "reason": self.reason,
            "details": self.details,
        }


class AdmissionError(LedgerError):
    category = ErrorCategory.ADMISSION


class StateError(LedgerError):
    category = ErrorCategory.STATE


class AuthorizationError(LedgerError):
    category = ErrorCategory.AUTHORIZATION


class NoOpError(LedgerError):
    category = ErrorCategory.NO_OP


class ConfigurationError(LedgerError):
    category = ErrorCategory.CONFIGURATION


class MathError(LedgerError):
    category = ErrorCategory.STATE


class InvariantViolation(LedgerError):
    category = ErrorCategory.INVARIANT
