"""
Session Proposals

Defines proposal lifecycle states, the resolution action payload, the
Proposal dataclass and the ProposalRegistry that stores proposals per
session and keeps dependency / alternative bookkeeping consistent.

Proposal ``id`` owns bit ``1 << (id - 1)`` in vote masks and in
``alternatives_mask``.
"""

import copy
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple

from ..logger import get_logger
from ..addresses import method_selector, normalize_address, selector_hex
from .errors import (
    InsufficientWeightError,
    InvalidAlternativeError,
    InvalidDependencyError,
    NotAuthorError,
    ProposalLockedError,
    TooManyProposalsError,
    UnknownProposalError,
)
from .requirements import ResolutionRequirement
from .rules import SessionRule, SessionRuleConfig

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class ProposalState(IntEnum):
    """Lifecycle stage, derived from the session state at query time."""
    UNDEFINED = 0     # No such proposal
    DEFINED = 1       # Session planned or campaigning; still editable
    CANCELLED = 2     # Withdrawn by its author
    LOCKED = 3        # Voting in progress
    APPROVED = 4      # Met its requirements; executable
    REJECTED = 5      # Failed its requirements
    RESOLVED = 6      # Action executed
    CLOSED = 7        # Session closed without execution
    ARCHIVED = 8      # Session archived; storage freed


# ══════════════════════════════════════════════════════════════════════
#  RESOLUTION ACTION
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ResolutionAction:
    """
    Opaque call bound to a proposal.

    Fields:
        signature: Method signature, e.g. "mint(address[],uint256[])".
                   Empty for a blank proposal (a pure poll).
        args:      Positional arguments passed to the target method
    """
    signature: str = ""
    args: Tuple[Any, ...] = ()

    @property
    def selector(self) -> bytes:
        return method_selector(self.signature)

    @property
    def is_blank(self) -> bool:
        return not self.signature

    def to_dict(self) -> Dict[str, Any]:
        return {
            "signature": self.signature,
            "selector": selector_hex(self.selector),
            "args": list(self.args),
        }


BLANK_ACTION = ResolutionAction()


# ══════════════════════════════════════════════════════════════════════
#  PROPOSAL
# ══════════════════════════════════════════════════════════════════════

@dataclass
class Proposal:
    """
    A decision item within a session.

    Fields:
        session_id:            Owning session
        id:                    Sequential id within the session (from 1)
        name / url:            Human-readable description
        content_hash:          Opaque hash binding an off-chain document
        resolution_target:     Address the action is dispatched to
        resolution_action:     Call executed once the proposal resolves
        proposed_by:           Author address
        requirement_majority:  ppm of participation approvals must reach
        requirement_quorum:    ppm of voting supply approvals must reach
        execution_threshold:   Absolute approvals required to execute
        depends_on:            Proposal that must resolve first (0 = none)
        alternative_of:        Reference proposal of its group (0 = none)
        alternatives_mask:     Group bits, set on the reference proposal only
        approvals:             Accumulated vote weight
    """
    session_id: int
    id: int
    name: str
    url: str = ""
    content_hash: str = ""
    resolution_target: str = ""
    resolution_action: ResolutionAction = BLANK_ACTION
    proposed_by: str = ""
    requirement_majority: int = 0
    requirement_quorum: int = 0
    execution_threshold: int = 0
    depends_on: int = 0
    alternative_of: int = 0
    alternatives_mask: int = 0
    approvals: int = 0
    resolution_executed: bool = False
    cancelled: bool = False

    @property
    def bit(self) -> int:
        return 1 << (self.id - 1)

    @property
    def group_id(self) -> int:
        """Reference proposal id of this proposal's alternative group."""
        return self.alternative_of or self.id

    def apply_requirement(self, requirement: ResolutionRequirement) -> None:
        self.requirement_majority = requirement.majority
        self.requirement_quorum = requirement.quorum
        self.execution_threshold = requirement.execution_threshold

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "proposalId": self.id,
            "name": self.name,
            "url": self.url,
            "contentHash": self.content_hash,
            "resolutionTarget": self.resolution_target,
            "resolutionAction": self.resolution_action.to_dict(),
            "proposedBy": self.proposed_by,
            "requirementMajority": self.requirement_majority,
            "requirementQuorum": self.requirement_quorum,
            "executionThreshold": self.execution_threshold,
            "dependsOn": self.depends_on,
            "alternativeOf": self.alternative_of,
            "alternativesMask": self.alternatives_mask,
            "approvals": self.approvals,
            "resolutionExecuted": self.resolution_executed,
            "cancelled": self.cancelled,
        }

    def __repr__(self) -> str:
        return (
            f"<Proposal #{self.session_id}.{self.id} '{self.name}' "
            f"approvals={self.approvals} executed={self.resolution_executed}>"
        )


# ══════════════════════════════════════════════════════════════════════
#  ANTI-SPAM THRESHOLD
# ══════════════════════════════════════════════════════════════════════

def new_proposal_threshold(rule: SessionRule, total_supply: int, count: int) -> int:
    """
    Weight required to add a proposal when *count* already exist.

    Flat at the base threshold up to ``open_proposals``, then grows with the
    square of the excess, reaching half the supply at ``max_proposals`` and
    continuing past it for operators.
    """
    base = rule.new_proposal_threshold
    open_limit = rule.open_proposals
    max_limit = rule.max_proposals
    if count <= open_limit or max_limit <= open_limit or total_supply <= base:
        return base
    span = max_limit - open_limit
    excess = count - open_limit
    return base + (total_supply // 2 - base) * excess * excess // (span * span)


# ══════════════════════════════════════════════════════════════════════
#  REGISTRY
# ══════════════════════════════════════════════════════════════════════

class ProposalRegistry:
    """
    Per-session proposal storage.

    Responsibilities:
        - Admission (anti-spam threshold, proposal caps)
        - Dependency and alternative reference validation
        - Alternative group masks
        - Freeing storage of archived sessions
    """

    def __init__(self, rule_config: SessionRuleConfig):
        self._rules = rule_config
        self._proposals: Dict[int, List[Proposal]] = {}

    # ── Queries ───────────────────────────────────────────────────────

    def count(self, session_id: int) -> int:
        return len(self._proposals.get(session_id, ()))

    def proposals(self, session_id: int) -> List[Proposal]:
        return list(self._proposals.get(session_id, ()))

    def get(self, session_id: int, proposal_id: int) -> Proposal:
        proposals = self._proposals.get(session_id, [])
        if not 1 <= proposal_id <= len(proposals):
            raise UnknownProposalError(
                f"Proposal #{session_id}.{proposal_id} does not exist"
            )
        return proposals[proposal_id - 1]

    def find(self, session_id: int, proposal_id: int) -> Optional[Proposal]:
        proposals = self._proposals.get(session_id, [])
        if 1 <= proposal_id <= len(proposals):
            return proposals[proposal_id - 1]
        return None

    def group_members(self, session_id: int, proposal: Proposal) -> List[Proposal]:
        """Members of *proposal*'s alternative group, itself included."""
        reference = self.get(session_id, proposal.group_id)
        mask = reference.alternatives_mask
        if not mask:
            return [proposal]
        return [
            p for p in self._proposals[session_id]
            if mask & p.bit
        ]

    def threshold(self, total_supply: int, count: int) -> int:
        return new_proposal_threshold(self._rules.rule, total_supply, count)

    # ── Admission ─────────────────────────────────────────────────────

    def check_admission(
        self,
        session_id: int,
        proposer: str,
        weight: int,
        total_supply: int,
        is_operator: bool,
    ) -> None:
        """Raise unless *proposer* may add one more proposal."""
        rule = self._rules.rule
        count = self.count(session_id)
        if is_operator:
            if count >= rule.max_proposals_operator:
                raise TooManyProposalsError(
                    f"Session #{session_id} holds {count} proposals "
                    f"(operator cap {rule.max_proposals_operator})"
                )
            return
        if count >= rule.max_proposals:
            raise TooManyProposalsError(
                f"Session #{session_id} holds {count} proposals (cap {rule.max_proposals})"
            )
        required = new_proposal_threshold(rule, total_supply, count)
        if weight < required:
            raise InsufficientWeightError(
                f"{proposer} weight {weight} < required {required}"
            )

    # ── Reference validation ──────────────────────────────────────────

    def _check_references(
        self,
        session_id: int,
        proposal_id: int,
        depends_on: int,
        alternative_of: int,
    ) -> None:
        count = self.count(session_id)

        if depends_on:
            if depends_on == proposal_id or not 1 <= depends_on <= count:
                raise InvalidDependencyError(
                    f"Proposal #{session_id}.{proposal_id} cannot depend on {depends_on}"
                )
            seen = {proposal_id}
            cursor = depends_on
            while cursor:
                if cursor in seen:
                    raise InvalidDependencyError(
                        f"Dependency cycle through proposal {cursor}"
                    )
                seen.add(cursor)
                cursor = self.get(session_id, cursor).depends_on

        if alternative_of:
            if alternative_of == proposal_id or not 1 <= alternative_of <= count:
                raise InvalidAlternativeError(
                    f"Proposal #{session_id}.{proposal_id} cannot be an alternative of "
                    f"{alternative_of}"
                )
            reference = self.get(session_id, alternative_of)
            if reference.cancelled or reference.alternative_of:
                raise InvalidAlternativeError(
                    f"Proposal {alternative_of} cannot head an alternative group"
                )
            existing = self.find(session_id, proposal_id)
            if existing is not None and existing.alternatives_mask & ~existing.bit:
                raise InvalidAlternativeError(
                    f"Proposal {proposal_id} already heads an alternative group"
                )

    def _attach_alternative(self, session_id: int, proposal: Proposal) -> None:
        if proposal.alternative_of:
            reference = self.get(session_id, proposal.alternative_of)
            reference.alternatives_mask |= reference.bit | proposal.bit

    def _detach_alternative(self, session_id: int, proposal: Proposal) -> None:
        if proposal.alternative_of:
            reference = self.get(session_id, proposal.alternative_of)
            reference.alternatives_mask &= ~proposal.bit

    # ── Mutations ─────────────────────────────────────────────────────

    def define(
        self,
        session_id: int,
        *,
        name: str,
        url: str,
        content_hash: str,
        resolution_target: str,
        resolution_action: ResolutionAction,
        proposed_by: str,
        requirement: ResolutionRequirement,
        depends_on: int = 0,
        alternative_of: int = 0,
    ) -> Proposal:
        """Append a new proposal to *session_id*."""
        proposal_id = self.count(session_id) + 1
        self._check_references(session_id, proposal_id, depends_on, alternative_of)

        proposal = Proposal(
            session_id=session_id,
            id=proposal_id,
            name=name,
            url=url,
            content_hash=content_hash,
            resolution_target=normalize_address(resolution_target),
            resolution_action=resolution_action,
            proposed_by=proposed_by,
            depends_on=depends_on,
            alternative_of=alternative_of,
        )
        proposal.apply_requirement(requirement)
        self._proposals.setdefault(session_id, []).append(proposal)
        self._attach_alternative(session_id, proposal)

        logger.info(
            f"Proposal #{session_id}.{proposal_id} '{name}' defined by {proposed_by} "
            f"(dependsOn={depends_on}, alternativeOf={alternative_of})"
        )
        return proposal

    def update(
        self,
        session_id: int,
        proposal_id: int,
        caller: str,
        *,
        name: str,
        url: str,
        content_hash: str,
        resolution_target: str,
        resolution_action: ResolutionAction,
        requirement: ResolutionRequirement,
        depends_on: int = 0,
        alternative_of: int = 0,
    ) -> Proposal:
        """Rewrite a proposal; only its author may do so."""
        proposal = self.get(session_id, proposal_id)
        if proposal.proposed_by != caller:
            raise NotAuthorError(f"{caller} is not the author of proposal {proposal_id}")
        if proposal.cancelled:
            raise ProposalLockedError(f"Proposal #{session_id}.{proposal_id} is cancelled")
        self._check_references(session_id, proposal_id, depends_on, alternative_of)

        self._detach_alternative(session_id, proposal)
        proposal.name = name
        proposal.url = url
        proposal.content_hash = content_hash
        proposal.resolution_target = normalize_address(resolution_target)
        proposal.resolution_action = resolution_action
        proposal.depends_on = depends_on
        proposal.alternative_of = alternative_of
        proposal.apply_requirement(requirement)
        self._attach_alternative(session_id, proposal)

        logger.info(f"Proposal #{session_id}.{proposal_id} updated by {caller}")
        return proposal

    def cancel(self, session_id: int, proposal_id: int, caller: str) -> Proposal:
        """Withdraw a proposal; only its author may do so."""
        proposal = self.get(session_id, proposal_id)
        if proposal.proposed_by != caller:
            raise NotAuthorError(f"{caller} is not the author of proposal {proposal_id}")
        if proposal.cancelled:
            raise ProposalLockedError(f"Proposal #{session_id}.{proposal_id} is cancelled")
        self._detach_alternative(session_id, proposal)
        proposal.cancelled = True
        logger.info(f"Proposal #{session_id}.{proposal_id} cancelled by {caller}")
        return proposal

    def drop_session(self, session_id: int) -> int:
        """Free the proposals of an archived session; returns how many."""
        dropped = self._proposals.pop(session_id, [])
        return len(dropped)

    # ── Journal ───────────────────────────────────────────────────────

    def snapshot(self) -> Dict[int, List[Proposal]]:
        return copy.deepcopy(self._proposals)

    def revert(self, snapshot: Dict[int, List[Proposal]]) -> None:
        self._proposals = copy.deepcopy(snapshot)

    def __repr__(self) -> str:
        total = sum(len(p) for p in self._proposals.values())
        return f"<ProposalRegistry sessions={len(self._proposals)} proposals={total}>"
