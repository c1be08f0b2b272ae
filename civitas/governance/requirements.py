"""
Resolution Requirements

Maps (target, method selector) pairs to the majority, quorum and execution
threshold a proposal must meet. Majority and quorum are parts-per-million.

Lookup falls back from the most to the least specific entry:
    (target, selector) → (target, ANY_METHOD)
    → (ANY_TARGET, selector) → (ANY_TARGET, ANY_METHOD)
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from ..logger import get_logger
from ..addresses import method_selector, normalize_address, selector_hex
from ..constants import (
    ANY_METHOD,
    ANY_TARGET,
    DEFAULT_EXECUTION_THRESHOLD,
    DEFAULT_MAJORITY,
    DEFAULT_QUORUM,
    PERCENT,
)
from .errors import DefaultRequirementError, InvalidRequirementError

logger = get_logger(__name__)

RequirementKey = Tuple[str, bytes]


@dataclass(frozen=True)
class ResolutionRequirement:
    """Approval policy for one (target, selector) pair."""
    majority: int = 0
    quorum: int = 0
    execution_threshold: int = 0

    @property
    def is_configured(self) -> bool:
        return self.majority > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "majority": self.majority,
            "quorum": self.quorum,
            "executionThreshold": self.execution_threshold,
        }


DEFAULT_REQUIREMENT = ResolutionRequirement(
    majority=DEFAULT_MAJORITY,
    quorum=DEFAULT_QUORUM,
    execution_threshold=DEFAULT_EXECUTION_THRESHOLD,
)


class ResolutionRequirementStore:
    """
    Requirement table with wildcard defaults.

    The universal (ANY_TARGET, ANY_METHOD) entry always exists and can never
    be given a zero majority or quorum. Every accepted batch bumps the store
    version.
    """

    def __init__(self, default: ResolutionRequirement = DEFAULT_REQUIREMENT):
        self._requirements: Dict[RequirementKey, ResolutionRequirement] = {}
        self._version = 1
        self._check_default(default)
        self._requirements[(ANY_TARGET, ANY_METHOD)] = default

    @staticmethod
    def _check_default(requirement: ResolutionRequirement) -> None:
        if requirement.majority == 0 or requirement.quorum == 0:
            raise DefaultRequirementError(
                "Universal default requirement needs a non-zero majority and quorum"
            )

    @property
    def version(self) -> int:
        return self._version

    def requirement(self, target: str, selector: Any) -> ResolutionRequirement:
        """Stored entry for the exact pair; all zeros when unconfigured."""
        key = (normalize_address(target), method_selector(selector))
        return self._requirements.get(key, ResolutionRequirement())

    def resolve(self, target: str, selector: Any) -> ResolutionRequirement:
        """Most specific configured requirement applying to a call."""
        target = normalize_address(target)
        selector = method_selector(selector)
        for key in (
            (target, selector),
            (target, ANY_METHOD),
            (ANY_TARGET, selector),
        ):
            found = self._requirements.get(key)
            if found is not None and found.is_configured:
                return found
        return self._requirements[(ANY_TARGET, ANY_METHOD)]

    def update(
        self,
        targets: Sequence[str],
        selectors: Sequence[Any],
        majorities: Sequence[int],
        quorums: Sequence[int],
        execution_thresholds: Sequence[int],
    ) -> List[Tuple[str, bytes, ResolutionRequirement]]:
        """
        Apply a batch of requirement changes.

        The whole batch is validated before anything is written. A zero
        majority clears a non-default entry.

        Returns:
            [(target, selector, requirement), ...] in input order
        """
        size = len(targets)
        if not (len(selectors) == len(majorities) == len(quorums)
                == len(execution_thresholds) == size):
            raise InvalidRequirementError("Requirement arrays differ in length", code="VD13")

        changes: List[Tuple[str, bytes, ResolutionRequirement]] = []
        for i in range(size):
            target = normalize_address(targets[i])
            selector = method_selector(selectors[i])
            requirement = ResolutionRequirement(
                majority=int(majorities[i]),
                quorum=int(quorums[i]),
                execution_threshold=int(execution_thresholds[i]),
            )
            if not (0 <= requirement.majority <= PERCENT and 0 <= requirement.quorum <= PERCENT):
                raise InvalidRequirementError(
                    f"Majority/quorum must be within [0, {PERCENT}] ppm", code="VD18"
                )
            if requirement.execution_threshold < 0:
                raise InvalidRequirementError("Execution threshold cannot be negative", code="VD18")
            if (target, selector) == (ANY_TARGET, ANY_METHOD):
                self._check_default(requirement)
            changes.append((target, selector, requirement))

        for target, selector, requirement in changes:
            if requirement.is_configured or (target, selector) == (ANY_TARGET, ANY_METHOD):
                self._requirements[(target, selector)] = requirement
            else:
                self._requirements.pop((target, selector), None)
            logger.info(
                f"Requirement {target}:{selector_hex(selector)} → "
                f"majority={requirement.majority} quorum={requirement.quorum} "
                f"threshold={requirement.execution_threshold}"
            )
        self._version += 1
        return changes

    def entries(self) -> Dict[RequirementKey, ResolutionRequirement]:
        return dict(self._requirements)

    # ── Journal ───────────────────────────────────────────────────────

    def snapshot(self) -> Tuple[Dict[RequirementKey, ResolutionRequirement], int]:
        return dict(self._requirements), self._version

    def revert(self, snapshot: Tuple[Dict[RequirementKey, ResolutionRequirement], int]) -> None:
        requirements, version = snapshot
        self._requirements = dict(requirements)
        self._version = version

    def __repr__(self) -> str:
        return f"<ResolutionRequirementStore entries={len(self._requirements)} v{self._version}>"
