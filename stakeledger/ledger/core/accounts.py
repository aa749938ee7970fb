from pydantic import BaseModel, Field
from typing import Dict, Protocol, Set, Tuple
import logging
import threading
import time

from ...protocol.types.common import Role

logger = logging.getLogger(__name__)

# Account that holds every token the staking service has custody of
CUSTODY_ADDRESS = "stakeledger-custody"


class Account(BaseModel):
    address: str
    # token -> balance in native units
    balances: Dict[str, int] = Field(default_factory=dict)

    def balance_of(self, token: str) -> int:
        return self.balances.get(token, 0)


# ═══════════════════════════════════════════════════════════════════
# COLLABORATOR INTERFACES
# ═══════════════════════════════════════════════════════════════════

class TokenTransfer(Protocol):
    def transfer_in(self, token: str, from_address: str, amount: int) -> None: ...
    def transfer_out(self, token: str, to_address: str, amount: int) -> None: ...


class AccessControl(Protocol):
    def has_role(self, role: Role, address: str) -> bool: ...


class TokenBank:
    """
    In-memory token balances implementing TokenTransfer.

    Amounts are native token units. Used by the node and by tests; a deployment
    backed by a real token contract supplies its own TokenTransfer.
    """

    def __init__(self, custody_address: str = CUSTODY_ADDRESS):
        self.custody_address = custody_address
        self._accounts: Dict[str, Account] = {}
        self._lock = threading.Lock()

    def get_account(self, address: str) -> Account:
        if address not in self._accounts:
            self._accounts[address] = Account(address=address)
        return self._accounts[address]

    def balance_of(self, token: str, address: str) -> int:
        return self.get_account(address).balance_of(token)

    def mint(self, token: str, address: str, amount: int):
        with self._lock:
            acc = self.get_account(address)
            acc.balances[token] = acc.balance_of(token) + amount

    def _move(self, token: str, sender: str, recipient: str, amount: int):
        if amount <= 0:
            raise ValueError(f"Transfer amount must be positive, got {amount}")
        with self._lock:
            src = self.get_account(sender)
            if src.balance_of(token) < amount:
                raise ValueError(
                    f"Insufficient balance: {sender} has {src.balance_of(token)} {token}, need {amount}"
                )
            dst = self.get_account(recipient)
            src.balances[token] = src.balance_of(token) - amount
            dst.balances[token] = dst.balance_of(token) + amount
        logger.debug(f"Moved {amount} {token}: {sender} -> {recipient}")

    def transfer_in(self, token: str, from_address: str, amount: int) -> None:
        self._move(token, from_address, self.custody_address, amount)

    def transfer_out(self, token: str, to_address: str, amount: int) -> None:
        self._move(token, self.custody_address, to_address, amount)


class RoleRegistry:
    """AccessControl backed by an explicit set of (role, address) grants."""

    def __init__(self):
        self._grants: Set[Tuple[Role, str]] = set()

    def grant_role(self, role: Role, address: str):
        self._grants.add((role, address))
        logger.info(f"Granted {role.value} to {address}")

    def revoke_role(self, role: Role, address: str):
        self._grants.discard((role, address))
        logger.info(f"Revoked {role.value} from {address}")

    def has_role(self, role: Role, address: str) -> bool:
        return (role, address) in self._grants


# ═══════════════════════════════════════════════════════════════════
# CLOCKS
# ═══════════════════════════════════════════════════════════════════

def system_clock() -> int:
    return int(time.time())


class ManualClock:
    """Clock that only moves when told to; never goes backwards."""

    def __init__(self, start: int):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def set(self, timestamp: int):
        if timestamp < self.now:
            raise ValueError(f"Clock cannot go backwards: {timestamp} < {self.now}")
        self.now = timestamp

    def advance(self, seconds: int):
        self.set(self.now + seconds)
