"""
Access Control

Provides:
  - AccessControl: protocol the engine consults for roles and ownership
  - AccessRegistry: in-memory reference implementation
"""

from typing import Any, Dict, Optional, Protocol, Set, Tuple

from ..logger import get_logger
from ..addresses import method_selector, normalize_address, selector_hex

logger = get_logger(__name__)


class AccessControl(Protocol):
    """Role and ownership lookups used to gate governance entry points."""

    def is_operator(self, caller: str) -> bool: ...

    def has_privilege(self, caller: str, selector: bytes) -> bool: ...

    def owner_of(self, address: str) -> Optional[str]: ...


class AccessRegistry:
    """
    Operators, per-method privileges and address ownership.

    Operators pass every role check. A privilege grants one method selector
    to one address. Ownership links a managed address (e.g. a custody
    account) to the address allowed to act for it.
    """

    def __init__(self, operators=()):
        self._operators: Set[str] = set()
        self._privileges: Set[Tuple[str, bytes]] = set()
        self._owners: Dict[str, str] = {}
        for operator in operators:
            self.grant_operator(operator)

    # ── Operators ─────────────────────────────────────────────────────

    def grant_operator(self, address: str) -> None:
        address = normalize_address(address)
        self._operators.add(address)
        logger.info(f"Operator granted: {address}")

    def revoke_operator(self, address: str) -> None:
        self._operators.discard(normalize_address(address))

    def is_operator(self, caller: str) -> bool:
        return normalize_address(caller) in self._operators

    # ── Privileges ────────────────────────────────────────────────────

    def grant_privilege(self, address: str, signature: Any) -> bytes:
        address = normalize_address(address)
        selector = method_selector(signature)
        self._privileges.add((address, selector))
        logger.info(f"Privilege {selector_hex(selector)} granted to {address}")
        return selector

    def revoke_privilege(self, address: str, signature: Any) -> None:
        self._privileges.discard((normalize_address(address), method_selector(signature)))

    def has_privilege(self, caller: str, selector: bytes) -> bool:
        caller = normalize_address(caller)
        return caller in self._operators or (caller, selector) in self._privileges

    # ── Ownership ─────────────────────────────────────────────────────

    def define_owner(self, address: str, owner: Optional[str]) -> None:
        address = normalize_address(address)
        if owner is None:
            self._owners.pop(address, None)
            return
        self._owners[address] = normalize_address(owner)
        logger.info(f"Owner of {address} → {self._owners[address]}")

    def owner_of(self, address: str) -> Optional[str]:
        return self._owners.get(normalize_address(address))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operators": sorted(self._operators),
            "privileges": sorted(
                f"{address}:{selector_hex(selector)}" for address, selector in self._privileges
            ),
            "owners": dict(self._owners),
        }

    def __repr__(self) -> str:
        return f"<AccessRegistry operators={len(self._operators)} owners={len(self._owners)}>"
