"""
Session Scheduler

Sessions are anchored on ``vote_at``; every other timestamp is derived from
it and the rule active when the session was scheduled. Session state is never
stored: it is recomputed from those timestamps and the query time, so any two
callers asking about the same instant agree.

    PLANNED ─campaign_at→ CAMPAIGN ─vote_at→ VOTING ─execution_at→ EXECUTION
            ─grace_at→ GRACE ─closed_at→ CLOSED ─archive→ ARCHIVED
"""

import copy
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional, Tuple

from ..logger import get_logger
from ..constants import SESSION_RETENTION_COUNT
from .errors import (
    ProposalDefinitionClosedError,
    SessionNotArchivableError,
    UnknownSessionError,
)
from .proposals import ProposalRegistry
from .rules import SessionRule, SessionRuleConfig

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class SessionState(IntEnum):
    """Phase of a session at a given instant."""
    UNDEFINED = 0
    PLANNED = 1
    CAMPAIGN = 2
    VOTING = 3
    EXECUTION = 4
    GRACE = 5
    CLOSED = 6
    ARCHIVED = 7


# ══════════════════════════════════════════════════════════════════════
#  SESSION
# ══════════════════════════════════════════════════════════════════════

@dataclass
class Session:
    """
    One campaign → vote → execute → grace cycle.

    Fields:
        id:               Sequential id (from 1)
        campaign_at:      Campaign start
        vote_at:          Vote start (anchor)
        execution_at:     Vote end / execution start
        grace_at:         Grace start
        closed_at:        Session end
        proposals_count:  Proposals defined in the session
        participation:    Weight of every voter who voted
        total_supply:     Ledger supply when the session was scheduled
        voting_supply:    Supply minus non-voting weight, set at first vote
        rule_version:     SessionRuleConfig version that scheduled it
    """
    id: int
    campaign_at: int
    vote_at: int
    execution_at: int
    grace_at: int
    closed_at: int
    proposals_count: int = 0
    participation: int = 0
    total_supply: int = 0
    voting_supply: int = 0
    rule_version: int = 1

    @classmethod
    def anchored(cls, session_id: int, vote_at: int, rule: SessionRule, **kwargs: Any) -> "Session":
        execution_at = vote_at + rule.voting_period
        grace_at = execution_at + rule.execution_period
        return cls(
            id=session_id,
            campaign_at=vote_at - rule.campaign_period,
            vote_at=vote_at,
            execution_at=execution_at,
            grace_at=grace_at,
            closed_at=grace_at + rule.grace_period,
            **kwargs,
        )

    def state_at(self, t: int) -> SessionState:
        if t < self.campaign_at:
            return SessionState.PLANNED
        if t < self.vote_at:
            return SessionState.CAMPAIGN
        if t < self.execution_at:
            return SessionState.VOTING
        if t < self.grace_at:
            return SessionState.EXECUTION
        if t < self.closed_at:
            return SessionState.GRACE
        return SessionState.CLOSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.id,
            "campaignAt": self.campaign_at,
            "voteAt": self.vote_at,
            "executionAt": self.execution_at,
            "graceAt": self.grace_at,
            "closedAt": self.closed_at,
            "proposalsCount": self.proposals_count,
            "participation": self.participation,
            "totalSupply": self.total_supply,
            "votingSupply": self.voting_supply,
            "ruleVersion": self.rule_version,
        }

    def __repr__(self) -> str:
        return (
            f"<Session #{self.id} voteAt={self.vote_at} "
            f"proposals={self.proposals_count} participation={self.participation}>"
        )


# ══════════════════════════════════════════════════════════════════════
#  SCHEDULER
# ══════════════════════════════════════════════════════════════════════

class SessionScheduler:
    """
    Schedules sessions on a fixed cadence and keeps a bounded window of
    retained sessions.

    current_session_id starts at 0 (no session), oldest_session_id at 1.
    Sessions with an id below oldest_session_id are archived.
    """

    def __init__(
        self,
        rule_config: SessionRuleConfig,
        registry: ProposalRegistry,
        retention_count: int = SESSION_RETENTION_COUNT,
    ):
        if retention_count < 1:
            raise ValueError("retention_count must be >= 1")
        self._rules = rule_config
        self._registry = registry
        self.retention_count = retention_count
        self._sessions: Dict[int, Session] = {}
        self.current_session_id = 0
        self.oldest_session_id = 1

    # ── Cadence ───────────────────────────────────────────────────────

    def next_session_at(self, t: int) -> int:
        """First aligned vote time leaving a full campaign after *t*."""
        rule = self._rules.rule
        total = rule.period_length
        return ((t + rule.campaign_period) // total + 1) * total + rule.period_offset

    # ── Queries ───────────────────────────────────────────────────────

    def session(self, session_id: int) -> Session:
        found = self._sessions.get(session_id)
        if found is None:
            raise UnknownSessionError(f"Session #{session_id} does not exist")
        return found

    @property
    def current_session(self) -> Optional[Session]:
        return self._sessions.get(self.current_session_id)

    def is_archived(self, session_id: int) -> bool:
        return 1 <= session_id < self.oldest_session_id

    def session_state_at(self, session_id: int, t: int) -> SessionState:
        if session_id not in self._sessions:
            return SessionState.UNDEFINED
        if self.is_archived(session_id):
            return SessionState.ARCHIVED
        return self._sessions[session_id].state_at(t)

    @property
    def retained_count(self) -> int:
        return self.current_session_id - self.oldest_session_id + 1

    def open_session_for_proposals(self, now: int) -> Optional[Session]:
        """
        Session a new proposal attaches to at *now*.

        Returns None when a new session must be scheduled (no session yet, or
        the current one is in GRACE or later). Raises while the current
        session is voting or executing.
        """
        current = self.current_session
        if current is None:
            return None
        state = self.session_state_at(current.id, now)
        if state in (SessionState.PLANNED, SessionState.CAMPAIGN):
            return current
        if state in (SessionState.VOTING, SessionState.EXECUTION):
            raise ProposalDefinitionClosedError(
                f"Session #{current.id} is in {state.name}; proposals are closed"
            )
        return None

    # ── Mutations ─────────────────────────────────────────────────────

    def schedule(self, now: int, total_supply: int) -> Session:
        """Create the next session, aligned on the cadence after *now*."""
        rule = self._rules.rule
        session_id = self.current_session_id + 1
        session = Session.anchored(
            session_id,
            self.next_session_at(now),
            rule,
            total_supply=total_supply,
            rule_version=self._rules.version,
        )
        self._sessions[session_id] = session
        self.current_session_id = session_id
        logger.info(
            f"Session #{session_id} scheduled: campaign={session.campaign_at} "
            f"vote={session.vote_at} execution={session.execution_at} "
            f"closed={session.closed_at}"
        )
        return session

    def needs_archiving(self) -> bool:
        return self.retained_count > self.retention_count

    def archive_oldest(self, now: int) -> Session:
        """
        Archive the oldest retained session and free its proposals.

        Raises UnknownSessionError when nothing is retained and
        SessionNotArchivableError while that session is not CLOSED.
        """
        session_id = self.oldest_session_id
        if session_id > self.current_session_id:
            raise UnknownSessionError("No session left to archive")
        session = self._sessions[session_id]
        state = session.state_at(now)
        if state != SessionState.CLOSED:
            raise SessionNotArchivableError(
                f"Session #{session_id} is {state.name}, not CLOSED"
            )
        dropped = self._registry.drop_session(session_id)
        self.oldest_session_id = session_id + 1
        logger.info(f"Session #{session_id} archived ({dropped} proposals freed)")
        return session

    # ── Journal ───────────────────────────────────────────────────────

    def snapshot(self) -> Tuple[Dict[int, Session], int, int]:
        return copy.deepcopy(self._sessions), self.current_session_id, self.oldest_session_id

    def revert(self, snapshot: Tuple[Dict[int, Session], int, int]) -> None:
        sessions, current, oldest = snapshot
        self._sessions = copy.deepcopy(sessions)
        self.current_session_id = current
        self.oldest_session_id = oldest

    def __repr__(self) -> str:
        return (
            f"<SessionScheduler current={self.current_session_id} "
            f"oldest={self.oldest_session_id}>"
        )
