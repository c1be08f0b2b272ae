"""
Governance Token Ledger

Implements an in-memory weight ledger with:
  - Integer balances (1 token = 1 vote)
  - Transfer locks requested by a spender (e.g. the voting engine) so that
    weight cannot move between voters while a vote is open
  - Operator-gated mint, burn and seize, callable as resolution actions
  - Self-management: holders opting out of operator-cast votes
  - snapshot()/revert() so governance batches can roll it back
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..logger import get_logger
from ..addresses import normalize_address

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════

class TokenError(Exception):
    """Base exception for ledger operations."""


class InsufficientBalanceError(TokenError):
    """Raised when a holder balance is too low."""


class TokenLockedError(TokenError):
    """Raised when a transfer falls inside an active lock window."""


class NotTokenOperatorError(TokenError):
    """Raised when a restricted call comes from a non-operator."""


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TransferEvent:
    sender: str
    recipient: str
    amount: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Transfer",
            "from": self.sender,
            "to": self.recipient,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class MintEvent:
    recipient: str
    amount: int

    def to_dict(self) -> Dict[str, Any]:
        return {"event": "Mint", "to": self.recipient, "amount": self.amount}


@dataclass(frozen=True)
class BurnEvent:
    holder: str
    amount: int

    def to_dict(self) -> Dict[str, Any]:
        return {"event": "Burn", "from": self.holder, "amount": self.amount}


@dataclass(frozen=True)
class SeizeEvent:
    account: str
    beneficiary: str
    amount: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Seize",
            "account": self.account,
            "beneficiary": self.beneficiary,
            "amount": self.amount,
        }


@dataclass(frozen=True)
class LockDefinedEvent:
    spender: str
    start_at: int
    end_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "LockDefined",
            "spender": self.spender,
            "startAt": self.start_at,
            "endAt": self.end_at,
        }


@dataclass(frozen=True)
class SelfManagedEvent:
    holder: str
    self_managed: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"event": "SelfManaged", "holder": self.holder, "selfManaged": self.self_managed}


@dataclass(frozen=True)
class TokenLock:
    """Transfers are refused in [start_at, end_at) unless sent by *spender*."""
    spender: str
    start_at: int
    end_at: int

    def is_active(self, t: int) -> bool:
        return self.start_at <= t < self.end_at


# ══════════════════════════════════════════════════════════════════════
#  GOVERNANCE TOKEN
# ══════════════════════════════════════════════════════════════════════

class GovernanceToken:
    """
    Token whose balances are the voting weights of a governance engine.

    Mirrors the parts of an ERC-20 the engine needs:
        - balance_of(address) → int
        - total_supply() → int
        - transfer(sender, recipient, amount, now)

    Restricted calls (mint, burn, seize, lock) take the calling address
    first, so they can be routed as resolution actions.
    """

    def __init__(
        self,
        name: str,
        symbol: str,
        balances: Optional[Dict[str, int]] = None,
        operators: Sequence[str] = (),
    ):
        if not name:
            raise TokenError("Token name cannot be empty")
        if not symbol:
            raise TokenError("Token symbol cannot be empty")

        self.name = name
        self.symbol = symbol
        self._balances: Dict[str, int] = {}
        self._total_supply = 0
        self._self_managed: Dict[str, bool] = {}
        self._locks: Dict[str, TokenLock] = {}
        self._operators = {normalize_address(a) for a in operators}
        self._events: List[Any] = []

        for holder, amount in (balances or {}).items():
            if amount < 0:
                raise TokenError(f"Initial balance of {holder} cannot be negative")
            holder = normalize_address(holder)
            self._balances[holder] = self._balances.get(holder, 0) + int(amount)
            self._total_supply += int(amount)

        logger.info(f"Token deployed: {symbol} ({name}), supply={self._total_supply}")

    # ── Read-only views ───────────────────────────────────────────────

    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, holder: str) -> int:
        return self._balances.get(normalize_address(holder), 0)

    def is_self_managed(self, holder: str) -> bool:
        return self._self_managed.get(normalize_address(holder), False)

    def lock_of(self, spender: str) -> Optional[TokenLock]:
        return self._locks.get(normalize_address(spender))

    @property
    def events(self) -> List[Any]:
        return list(self._events)

    # ── Operators ─────────────────────────────────────────────────────

    def add_operator(self, address: str) -> None:
        """Authorize an address (typically the governance engine) to mint/burn/seize."""
        address = normalize_address(address)
        self._operators.add(address)
        logger.info(f"Token operator added: {address} for {self.symbol}")

    def remove_operator(self, address: str) -> None:
        self._operators.discard(normalize_address(address))

    def _require_operator(self, caller: str) -> str:
        caller = normalize_address(caller)
        if caller not in self._operators:
            raise NotTokenOperatorError(f"{caller} is not an operator of {self.symbol}")
        return caller

    # ── Locks ─────────────────────────────────────────────────────────

    def lock(self, spender: str, start_at: int, end_at: int) -> LockDefinedEvent:
        """(Re)define the lock window requested by *spender*."""
        if end_at < start_at:
            raise TokenError(f"Lock end {end_at} precedes start {start_at}")
        spender = normalize_address(spender)
        self._locks[spender] = TokenLock(spender=spender, start_at=start_at, end_at=end_at)
        event = LockDefinedEvent(spender=spender, start_at=start_at, end_at=end_at)
        self._events.append(event)
        logger.info(f"Lock {self.symbol}: [{start_at}, {end_at}) by {spender}")
        return event

    def _require_unlocked(self, sender: str, now: int) -> None:
        for lock in self._locks.values():
            if lock.is_active(now) and sender != lock.spender:
                raise TokenLockedError(
                    f"{self.symbol} is locked until {lock.end_at} by {lock.spender}"
                )

    # ── Transfers ─────────────────────────────────────────────────────

    def transfer(self, sender: str, recipient: str, amount: int, now: int = 0) -> TransferEvent:
        sender = normalize_address(sender)
        recipient = normalize_address(recipient)
        if amount <= 0:
            raise TokenError("Transfer amount must be positive")
        self._require_unlocked(sender, now)

        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalanceError(
                f"{sender} balance {balance} < transfer amount {amount}"
            )
        self._balances[sender] = balance - amount
        self._balances[recipient] = self._balances.get(recipient, 0) + amount

        event = TransferEvent(sender=sender, recipient=recipient, amount=amount)
        self._events.append(event)
        logger.debug(f"Transfer: {sender} → {recipient} {amount} {self.symbol}")
        return event

    # ── Supply management ─────────────────────────────────────────────

    def mint(self, caller: str, recipients: Sequence[str], amounts: Sequence[int]) -> List[MintEvent]:
        self._require_operator(caller)
        if len(recipients) != len(amounts):
            raise TokenError("Recipients and amounts differ in length")
        if any(amount <= 0 for amount in amounts):
            raise TokenError("Mint amount must be positive")

        events = []
        for recipient, amount in zip(recipients, amounts):
            recipient = normalize_address(recipient)
            self._balances[recipient] = self._balances.get(recipient, 0) + int(amount)
            self._total_supply += int(amount)
            event = MintEvent(recipient=recipient, amount=int(amount))
            self._events.append(event)
            events.append(event)
            logger.info(f"Mint: {amount} {self.symbol} → {recipient}")
        return events

    def burn(self, caller: str, amount: int) -> BurnEvent:
        """Burn from the caller's own balance."""
        caller = self._require_operator(caller)
        if amount <= 0:
            raise TokenError("Burn amount must be positive")
        balance = self.balance_of(caller)
        if balance < amount:
            raise InsufficientBalanceError(f"{caller} balance {balance} < burn amount {amount}")

        self._balances[caller] = balance - amount
        self._total_supply -= amount
        event = BurnEvent(holder=caller, amount=amount)
        self._events.append(event)
        logger.info(f"Burn: {caller} burned {amount} {self.symbol}")
        return event

    def seize(self, caller: str, account: str, amount: int) -> SeizeEvent:
        """Move *amount* from *account* to the caller."""
        caller = self._require_operator(caller)
        account = normalize_address(account)
        if amount <= 0:
            raise TokenError("Seize amount must be positive")
        balance = self.balance_of(account)
        if balance < amount:
            raise InsufficientBalanceError(f"{account} balance {balance} < seize amount {amount}")

        self._balances[account] = balance - amount
        self._balances[caller] = self._balances.get(caller, 0) + amount
        event = SeizeEvent(account=account, beneficiary=caller, amount=amount)
        self._events.append(event)
        logger.warning(f"Seize: {amount} {self.symbol} from {account} → {caller}")
        return event

    # ── Self-management ───────────────────────────────────────────────

    def manage_self(self, holder: str, self_managed: bool = True) -> SelfManagedEvent:
        holder = normalize_address(holder)
        self._self_managed[holder] = bool(self_managed)
        event = SelfManagedEvent(holder=holder, self_managed=bool(self_managed))
        self._events.append(event)
        return event

    # ── Journal ───────────────────────────────────────────────────────

    def snapshot(self) -> Tuple[Dict[str, int], int, Dict[str, bool], Dict[str, TokenLock], int]:
        return (
            dict(self._balances),
            self._total_supply,
            dict(self._self_managed),
            dict(self._locks),
            len(self._events),
        )

    def revert(self, snapshot) -> None:
        balances, total_supply, self_managed, locks, events = snapshot
        self._balances = dict(balances)
        self._total_supply = total_supply
        self._self_managed = dict(self_managed)
        self._locks = dict(locks)
        del self._events[events:]

    # ── Serialization ─────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "totalSupply": self._total_supply,
            "holders": len([b for b in self._balances.values() if b > 0]),
            "locks": {
                s: {"startAt": l.start_at, "endAt": l.end_at} for s, l in self._locks.items()
            },
        }

    def __repr__(self) -> str:
        return f"<GovernanceToken {self.symbol} supply={self._total_supply}>"
