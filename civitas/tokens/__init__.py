"""
Civitas Token Ledger

Provides:
  - GovernanceToken : in-memory ledger whose balances are voting weights
  - TokenError      : base exception of ledger operations
"""

from .ledger import (
    GovernanceToken,
    TokenLock,
    TokenError,
    InsufficientBalanceError,
    TokenLockedError,
    NotTokenOperatorError,
)

__all__ = [
    "GovernanceToken",
    "TokenLock",
    "TokenError",
    "InsufficientBalanceError",
    "TokenLockedError",
    "NotTokenOperatorError",
]
