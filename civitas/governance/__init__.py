"""
Civitas Voting-Session Governance

Provides:
  - SessionRule / SessionRuleConfig                 (rules.py)
  - ResolutionRequirement / ResolutionRequirementStore (requirements.py)
  - Proposal / ProposalRegistry / ResolutionAction  (proposals.py)
  - Session / SessionScheduler                      (sessions.py)
  - VoteTabulator / Sponsor / VoteRecord            (voting.py)
  - CallRouter / Journal / ResolutionExecutor       (execution.py)
  - AccessRegistry                                  (access.py)
  - VotingSessionManager                            (manager.py)
"""

from .errors import (
    ErrorKind,
    GovernanceError,
    AuthorizationError,
    TimingError,
    ExternalCallError,
)
from .rules import RuleVersion, SessionRule, SessionRuleConfig
from .requirements import (
    DEFAULT_REQUIREMENT,
    ResolutionRequirement,
    ResolutionRequirementStore,
)
from .proposals import (
    BLANK_ACTION,
    Proposal,
    ProposalRegistry,
    ProposalState,
    ResolutionAction,
    new_proposal_threshold,
)
from .sessions import Session, SessionScheduler, SessionState
from .voting import Sponsor, VoteRecord, VoteTabulator
from .events import EventLog, GovernanceEvent
from .execution import CallRouter, Journal, ResolutionExecutor, is_approved
from .access import AccessControl, AccessRegistry
from .manager import VotingSessionManager

__all__ = [
    # Errors
    "ErrorKind",
    "GovernanceError",
    "AuthorizationError",
    "TimingError",
    "ExternalCallError",
    # Rules
    "RuleVersion",
    "SessionRule",
    "SessionRuleConfig",
    # Requirements
    "DEFAULT_REQUIREMENT",
    "ResolutionRequirement",
    "ResolutionRequirementStore",
    # Proposals
    "BLANK_ACTION",
    "Proposal",
    "ProposalRegistry",
    "ProposalState",
    "ResolutionAction",
    "new_proposal_threshold",
    # Sessions
    "Session",
    "SessionScheduler",
    "SessionState",
    # Voting
    "Sponsor",
    "VoteRecord",
    "VoteTabulator",
    # Events & execution
    "EventLog",
    "GovernanceEvent",
    "CallRouter",
    "Journal",
    "ResolutionExecutor",
    "is_approved",
    # Facade
    "AccessControl",
    "AccessRegistry",
    "VotingSessionManager",
]
