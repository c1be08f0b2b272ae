"""
Governance Events

Structured records of every state change. The event log is the only
persisted log format of the engine and is consumed by off-chain indexers,
so event names and dictionary keys are part of the compatibility surface.
"""

from dataclasses import dataclass
from typing import Any, ClassVar, Dict, List, Tuple

from ..addresses import selector_hex


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class GovernanceEvent:
    """Base class; ``name`` is the indexer-facing event name."""
    name: ClassVar[str] = "GovernanceEvent"

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name}


@dataclass(frozen=True)
class SessionScheduled(GovernanceEvent):
    """Emitted when a proposal opens a new session."""
    name: ClassVar[str] = "SessionScheduled"
    session_id: int
    vote_at: int

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, "sessionId": self.session_id, "voteAt": self.vote_at}


@dataclass(frozen=True)
class SessionArchived(GovernanceEvent):
    """Emitted when the oldest retained session is archived."""
    name: ClassVar[str] = "SessionArchived"
    session_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, "sessionId": self.session_id}


@dataclass(frozen=True)
class ProposalDefined(GovernanceEvent):
    name: ClassVar[str] = "ProposalDefined"
    session_id: int
    proposal_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, "sessionId": self.session_id, "proposalId": self.proposal_id}


@dataclass(frozen=True)
class ProposalUpdated(GovernanceEvent):
    name: ClassVar[str] = "ProposalUpdated"
    session_id: int
    proposal_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, "sessionId": self.session_id, "proposalId": self.proposal_id}


@dataclass(frozen=True)
class ProposalCancelled(GovernanceEvent):
    name: ClassVar[str] = "ProposalCancelled"
    session_id: int
    proposal_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, "sessionId": self.session_id, "proposalId": self.proposal_id}


@dataclass(frozen=True)
class VoteCast(GovernanceEvent):
    """Emitted once per counted ballot."""
    name: ClassVar[str] = "Vote"
    session_id: int
    voter: str
    weight: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "sessionId": self.session_id,
            "voter": self.voter,
            "weight": self.weight,
        }


@dataclass(frozen=True)
class SponsorDefined(GovernanceEvent):
    name: ClassVar[str] = "SponsorDefined"
    voter: str
    address: str
    until: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "voter": self.voter,
            "address": self.address,
            "until": self.until,
        }


@dataclass(frozen=True)
class ResolutionExecuted(GovernanceEvent):
    name: ClassVar[str] = "ResolutionExecuted"
    session_id: int
    proposal_id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"event": self.name, "sessionId": self.session_id, "proposalId": self.proposal_id}


@dataclass(frozen=True)
class SessionRuleUpdated(GovernanceEvent):
    """Carries every field of the new rule."""
    name: ClassVar[str] = "SessionRuleUpdated"
    campaign_period: int
    voting_period: int
    execution_period: int
    grace_period: int
    period_offset: int
    open_proposals: int
    max_proposals: int
    max_proposals_operator: int
    new_proposal_threshold: int
    non_voting_addresses: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "campaignPeriod": self.campaign_period,
            "votingPeriod": self.voting_period,
            "executionPeriod": self.execution_period,
            "gracePeriod": self.grace_period,
            "periodOffset": self.period_offset,
            "openProposals": self.open_proposals,
            "maxProposals": self.max_proposals,
            "maxProposalsOperator": self.max_proposals_operator,
            "newProposalThreshold": self.new_proposal_threshold,
            "nonVotingAddresses": list(self.non_voting_addresses),
        }


@dataclass(frozen=True)
class ResolutionRequirementUpdated(GovernanceEvent):
    name: ClassVar[str] = "ResolutionRequirementUpdated"
    target: str
    method_signature: bytes
    majority: int
    quorum: int
    execution_threshold: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.name,
            "target": self.target,
            "methodSignature": selector_hex(self.method_signature),
            "majority": self.majority,
            "quorum": self.quorum,
            "executionThreshold": self.execution_threshold,
        }


# ══════════════════════════════════════════════════════════════════════
#  EVENT LOG
# ══════════════════════════════════════════════════════════════════════

class EventLog:
    """Append-only list of emitted events."""

    def __init__(self):
        self._events: List[GovernanceEvent] = []

    def emit(self, event: GovernanceEvent) -> GovernanceEvent:
        self._events.append(event)
        return event

    def __len__(self) -> int:
        return len(self._events)

    @property
    def events(self) -> List[GovernanceEvent]:
        return list(self._events)

    def since(self, index: int) -> List[GovernanceEvent]:
        return self._events[index:]

    def named(self, name: str) -> List[GovernanceEvent]:
        return [e for e in self._events if e.name == name]

    # ── Journal ───────────────────────────────────────────────────────

    def snapshot(self) -> int:
        return len(self._events)

    def revert(self, snapshot: int) -> None:
        del self._events[snapshot:]
