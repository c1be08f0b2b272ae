"""
Voting Session Manager

Facade binding the governance components to a token ledger and an access
control registry. Every entry point:
  - reads the clock once
  - runs inside a journal transaction (all or nothing)
  - returns the events it emitted

Governable methods of the manager itself are registered on the call router
at the manager's own address, so approved resolutions can change the
session rule and the resolution requirements.
"""

import time
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, List, Optional, Protocol, Sequence

from ..logger import get_logger
from ..addresses import method_selector, normalize_address, normalize_addresses
from ..constants import NULL_ADDRESS, SESSION_RETENTION_COUNT
from .access import AccessControl
from .errors import (
    ExecutionNotAllowedError,
    NotOperatorError,
    NotOwnerError,
    ProposalLockedError,
    UnknownSessionError,
    VotingClosedError,
)
from .events import (
    EventLog,
    GovernanceEvent,
    ProposalCancelled,
    ProposalDefined,
    ProposalUpdated,
    ResolutionRequirementUpdated,
    SessionArchived,
    SessionRuleUpdated,
    SessionScheduled,
    SponsorDefined,
    VoteCast,
)
from .execution import CallRouter, Journal, ResolutionExecutor
from .proposals import (
    BLANK_ACTION,
    Proposal,
    ProposalRegistry,
    ProposalState,
    ResolutionAction,
)
from .requirements import DEFAULT_REQUIREMENT, ResolutionRequirement, ResolutionRequirementStore
from .rules import SessionRule, SessionRuleConfig
from .sessions import Session, SessionScheduler, SessionState
from .voting import Sponsor, VoteRecord, VoteTabulator

if TYPE_CHECKING:
    from ..config.loader import CivitasConfig

logger = get_logger(__name__)

UPDATE_SESSION_RULE_SIGNATURE = (
    "updateSessionRule(uint64,uint64,uint64,uint64,uint64,uint8,uint8,uint8,uint256,address[])"
)
UPDATE_RESOLUTION_REQUIREMENTS_SIGNATURE = (
    "updateResolutionRequirements(address[],bytes4[],uint128[],uint128[],uint256[])"
)


class GovernanceLedger(Protocol):
    """Token ledger operations the manager relies on."""

    def balance_of(self, holder: str) -> int: ...

    def total_supply(self) -> int: ...

    def is_self_managed(self, holder: str) -> bool: ...

    def lock(self, spender: str, start_at: int, end_at: int) -> Any: ...


class VotingSessionManager:
    """
    Governance engine entry points and read views.

    Args:
        ledger:              Weight ledger (balances, supply, locks)
        access:              Operator / privilege / ownership lookups
        address:             Address the manager acts as (lock spender,
                             resolution caller, self-governance target)
        router:              Dispatch table for resolution actions
        rule:                Initial session rule
        default_requirement: Universal (ANY_TARGET, ANY_METHOD) requirement
        retention_count:     Sessions kept before the oldest is archived
        clock:               Callable returning the current unix time
    """

    def __init__(
        self,
        ledger: GovernanceLedger,
        access: AccessControl,
        address: str,
        router: Optional[CallRouter] = None,
        rule: Optional[SessionRule] = None,
        default_requirement: ResolutionRequirement = DEFAULT_REQUIREMENT,
        retention_count: int = SESSION_RETENTION_COUNT,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.address = normalize_address(address)
        self._ledger = ledger
        self._access = access
        self._router = router if router is not None else CallRouter()
        self._clock = clock or (lambda: int(time.time()))

        self._rules = SessionRuleConfig(rule)
        self._requirements = ResolutionRequirementStore(default_requirement)
        self._registry = ProposalRegistry(self._rules)
        self._scheduler = SessionScheduler(self._rules, self._registry, retention_count)
        self._tabulator = VoteTabulator(ledger, self._registry, self._rules)
        self._events = EventLog()
        self._executor = ResolutionExecutor(
            self._registry, self._scheduler, self._router, self._events, self.address
        )
        self._journal = Journal([
            self._rules,
            self._requirements,
            self._registry,
            self._scheduler,
            self._tabulator,
            self._events,
        ])

        self._router.register(
            self.address,
            UPDATE_SESSION_RULE_SIGNATURE,
            self.update_session_rule,
        )
        self._router.register(
            self.address,
            UPDATE_RESOLUTION_REQUIREMENTS_SIGNATURE,
            self.update_resolution_requirements,
        )
        logger.info(f"VotingSessionManager ready at {self.address}")

    @classmethod
    def from_config(
        cls,
        config: "CivitasConfig",
        ledger: GovernanceLedger,
        access: AccessControl,
        router: Optional[CallRouter] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> "VotingSessionManager":
        """Build a manager from a loaded configuration."""
        config.validate()
        config.logging.apply()
        manager = cls(
            ledger,
            access,
            address=config.governance.manager_address,
            router=router,
            rule=config.session_rule.to_rule(),
            default_requirement=config.governance.default_requirement,
            retention_count=config.governance.retention_count,
            clock=clock,
        )
        entries = config.resolution_requirements
        if entries:
            manager._requirements.update(
                [e.target for e in entries],
                [e.signature for e in entries],
                [e.majority for e in entries],
                [e.quorum for e in entries],
                [e.execution_threshold for e in entries],
            )
        return manager

    # ── Internals ─────────────────────────────────────────────────────

    def now(self) -> int:
        return int(self._clock())

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[int]:
        """Yield the event log position; revert everything on failure."""
        journal = Journal(self._journal.participants + self._router.participants)
        start = len(self._events)
        try:
            with journal.transaction():
                yield start
        except Exception as e:
            logger.warning(f"{operation} rejected: {e}")
            raise

    def _require_governor(self, caller: str, signature: str) -> None:
        if caller == self.address:
            return
        if self._access.is_operator(caller):
            return
        if self._access.has_privilege(caller, method_selector(signature)):
            return
        raise NotOperatorError(f"{caller} may not call {signature.split('(')[0]}")

    def _current_session(self) -> Session:
        session = self._scheduler.current_session
        if session is None:
            raise UnknownSessionError("No session has been scheduled")
        return session

    def _require_editable(self, now: int) -> Session:
        session = self._current_session()
        state = self._scheduler.session_state_at(session.id, now)
        if state not in (SessionState.PLANNED, SessionState.CAMPAIGN):
            raise ProposalLockedError(
                f"Session #{session.id} is {state.name}; proposals are locked"
            )
        return session

    def _open_session(self, now: int) -> Session:
        session = self._scheduler.open_session_for_proposals(now)
        if session is not None:
            return session

        session = self._scheduler.schedule(now, self._ledger.total_supply())
        self._events.emit(SessionScheduled(session_id=session.id, vote_at=session.vote_at))
        self._ledger.lock(self.address, session.vote_at, session.execution_at)
        if self._scheduler.needs_archiving():
            archived = self._scheduler.archive_oldest(now)
            self._tabulator.drop_session(archived.id)
            self._events.emit(SessionArchived(session_id=archived.id))
        return session

    # ══════════════════════════════════════════════════════════════════
    #  VIEWS
    # ══════════════════════════════════════════════════════════════════

    @property
    def events(self) -> List[GovernanceEvent]:
        return self._events.events

    @property
    def router(self) -> CallRouter:
        return self._router

    @property
    def session_rule(self) -> SessionRule:
        return self._rules.rule

    @property
    def rule_history(self):
        return self._rules.history

    @property
    def current_session_id(self) -> int:
        return self._scheduler.current_session_id

    @property
    def oldest_session_id(self) -> int:
        return self._scheduler.oldest_session_id

    def next_session_at(self, t: Optional[int] = None) -> int:
        return self._scheduler.next_session_at(self.now() if t is None else t)

    def session(self, session_id: int) -> Session:
        return self._scheduler.session(session_id)

    def session_state_at(self, session_id: int, t: Optional[int] = None) -> SessionState:
        return self._scheduler.session_state_at(session_id, self.now() if t is None else t)

    def proposal(self, session_id: int, proposal_id: int) -> Proposal:
        return self._registry.get(session_id, proposal_id)

    def proposal_data(self, session_id: int, proposal_id: int) -> Dict[str, Any]:
        return self._registry.get(session_id, proposal_id).to_dict()

    def proposals(self, session_id: int) -> List[Proposal]:
        return self._registry.proposals(session_id)

    def proposal_state_at(
        self,
        session_id: int,
        proposal_id: int,
        t: Optional[int] = None,
    ) -> ProposalState:
        return self._executor.proposal_state_at(
            session_id, proposal_id, self.now() if t is None else t
        )

    def is_approved(self, session_id: int, proposal_id: int) -> bool:
        session = self._scheduler.session(session_id)
        return self._executor.is_approved(session, self._registry.get(session_id, proposal_id))

    def resolution_requirement(self, target: str, selector: Any) -> ResolutionRequirement:
        return self._requirements.requirement(target, selector)

    def effective_requirement(self, target: str, selector: Any) -> ResolutionRequirement:
        return self._requirements.resolve(target, selector)

    def new_proposal_threshold_at(self, session_id: int, proposals_count: int) -> int:
        session = self._scheduler.session(session_id)
        return self._registry.threshold(session.total_supply, proposals_count)

    def sponsor_of(self, voter: str) -> Sponsor:
        return self._tabulator.sponsor_of(normalize_address(voter))

    def last_vote_of(self, voter: str) -> int:
        return self._tabulator.last_vote_of(normalize_address(voter))

    def vote_of(self, session_id: int, voter: str) -> Optional[VoteRecord]:
        return self._tabulator.vote_of(session_id, normalize_address(voter))

    # ══════════════════════════════════════════════════════════════════
    #  PROPOSALS
    # ══════════════════════════════════════════════════════════════════

    def define_proposal(
        self,
        caller: str,
        name: str,
        url: str = "",
        content_hash: str = "",
        resolution_target: str = NULL_ADDRESS,
        resolution_action: Optional[ResolutionAction] = None,
        depends_on: int = 0,
        alternative_of: int = 0,
    ) -> List[GovernanceEvent]:
        """
        Define a proposal in the open session, scheduling a new session
        (and archiving the oldest one past the retention bound) if needed.
        """
        caller = normalize_address(caller)
        action = resolution_action or BLANK_ACTION
        with self._transaction("define_proposal") as start:
            now = self.now()
            session = self._open_session(now)
            self._registry.check_admission(
                session.id,
                caller,
                self._ledger.balance_of(caller),
                session.total_supply,
                self._access.is_operator(caller),
            )
            proposal = self._registry.define(
                session.id,
                name=name,
                url=url,
                content_hash=content_hash,
                resolution_target=resolution_target,
                resolution_action=action,
                proposed_by=caller,
                requirement=self._requirements.resolve(resolution_target, action.selector),
                depends_on=depends_on,
                alternative_of=alternative_of,
            )
            session.proposals_count = self._registry.count(session.id)
            self._events.emit(ProposalDefined(session_id=session.id, proposal_id=proposal.id))
        return self._events.since(start)

    def update_proposal(
        self,
        caller: str,
        proposal_id: int,
        name: str,
        url: str = "",
        content_hash: str = "",
        resolution_target: str = NULL_ADDRESS,
        resolution_action: Optional[ResolutionAction] = None,
        depends_on: int = 0,
        alternative_of: int = 0,
    ) -> List[GovernanceEvent]:
        caller = normalize_address(caller)
        action = resolution_action or BLANK_ACTION
        with self._transaction("update_proposal") as start:
            session = self._require_editable(self.now())
            self._registry.update(
                session.id,
                proposal_id,
                caller,
                name=name,
                url=url,
                content_hash=content_hash,
                resolution_target=resolution_target,
                resolution_action=action,
                requirement=self._requirements.resolve(resolution_target, action.selector),
                depends_on=depends_on,
                alternative_of=alternative_of,
            )
            self._events.emit(ProposalUpdated(session_id=session.id, proposal_id=proposal_id))
        return self._events.since(start)

    def cancel_proposal(self, caller: str, proposal_id: int) -> List[GovernanceEvent]:
        caller = normalize_address(caller)
        with self._transaction("cancel_proposal") as start:
            session = self._require_editable(self.now())
            self._registry.cancel(session.id, proposal_id, caller)
            self._events.emit(ProposalCancelled(session_id=session.id, proposal_id=proposal_id))
        return self._events.since(start)

    # ══════════════════════════════════════════════════════════════════
    #  VOTES
    # ══════════════════════════════════════════════════════════════════

    def define_sponsor(self, caller: str, address: str, until: int) -> List[GovernanceEvent]:
        """Let *address* vote on the caller's behalf until *until*."""
        caller = normalize_address(caller)
        address = normalize_address(address)
        with self._transaction("define_sponsor") as start:
            self._tabulator.define_sponsor(caller, address, until)
            self._events.emit(SponsorDefined(voter=caller, address=address, until=until))
        return self._events.since(start)

    def define_sponsor_of(
        self,
        caller: str,
        voter: str,
        address: str,
        until: int,
    ) -> List[GovernanceEvent]:
        """Define the sponsor of *voter*; only the voter's registered owner may."""
        caller = normalize_address(caller)
        voter = normalize_address(voter)
        address = normalize_address(address)
        with self._transaction("define_sponsor_of") as start:
            if self._access.owner_of(voter) != caller:
                raise NotOwnerError(f"{caller} is not the owner of {voter}")
            self._tabulator.define_sponsor(voter, address, until)
            self._events.emit(SponsorDefined(voter=voter, address=address, until=until))
        return self._events.since(start)

    def submit_vote(self, caller: str, mask: int) -> List[GovernanceEvent]:
        return self.submit_votes_on_behalf(caller, [caller], mask)

    def submit_votes_on_behalf(
        self,
        caller: str,
        voters: Sequence[str],
        mask: int,
    ) -> List[GovernanceEvent]:
        """Cast one ballot with *mask* for each voter."""
        caller = normalize_address(caller)
        voters = list(normalize_addresses(voters))
        with self._transaction("submit_vote") as start:
            now = self.now()
            session = self._scheduler.current_session
            if session is None:
                raise VotingClosedError("No session has been scheduled")
            state = self._scheduler.session_state_at(session.id, now)
            records = self._tabulator.submit(
                session,
                state,
                caller,
                voters,
                mask,
                now,
                is_operator=self._access.is_operator(caller),
            )
            for record in records:
                self._events.emit(
                    VoteCast(session_id=session.id, voter=record.voter, weight=record.weight)
                )
        return self._events.since(start)

    # ══════════════════════════════════════════════════════════════════
    #  RESOLUTIONS
    # ══════════════════════════════════════════════════════════════════

    def execute_resolutions(self, caller: str, proposal_ids: Sequence[int]) -> List[GovernanceEvent]:
        """Execute approved proposals of the executable session, in order, atomically."""
        caller = normalize_address(caller)
        with self._transaction("execute_resolutions") as start:
            now = self.now()
            self._executor.check_window(now)
            if not (self._access.is_operator(caller) or self._ledger.balance_of(caller) > 0):
                raise ExecutionNotAllowedError(f"{caller} may not execute resolutions")
            self._executor.execute(proposal_ids, now)
        return self._events.since(start)

    # ══════════════════════════════════════════════════════════════════
    #  CONFIGURATION
    # ══════════════════════════════════════════════════════════════════

    def update_session_rule(
        self,
        caller: str,
        campaign_period: int,
        voting_period: int,
        execution_period: int,
        grace_period: int,
        period_offset: int,
        open_proposals: int,
        max_proposals: int,
        max_proposals_operator: int,
        new_proposal_threshold: int,
        non_voting_addresses: Sequence[str] = (),
    ) -> List[GovernanceEvent]:
        """Replace the session rule; operators, privileged callers or a resolution."""
        caller = normalize_address(caller)
        with self._transaction("update_session_rule") as start:
            self._require_governor(caller, UPDATE_SESSION_RULE_SIGNATURE)
            now = self.now()
            previous = self._rules.rule.non_voting_addresses
            rule = SessionRule.create(
                campaign_period=int(campaign_period),
                voting_period=int(voting_period),
                execution_period=int(execution_period),
                grace_period=int(grace_period),
                period_offset=int(period_offset),
                open_proposals=int(open_proposals),
                max_proposals=int(max_proposals),
                max_proposals_operator=int(max_proposals_operator),
                new_proposal_threshold=int(new_proposal_threshold),
                non_voting_addresses=non_voting_addresses,
            )
            self._rules.update(rule, updated_at=now, updated_by=caller)
            self._tabulator.update_non_voting(previous, rule.non_voting_addresses, now)
            self._events.emit(SessionRuleUpdated(
                campaign_period=rule.campaign_period,
                voting_period=rule.voting_period,
                execution_period=rule.execution_period,
                grace_period=rule.grace_period,
                period_offset=rule.period_offset,
                open_proposals=rule.open_proposals,
                max_proposals=rule.max_proposals,
                max_proposals_operator=rule.max_proposals_operator,
                new_proposal_threshold=rule.new_proposal_threshold,
                non_voting_addresses=rule.non_voting_addresses,
            ))
        return self._events.since(start)

    def update_resolution_requirements(
        self,
        caller: str,
        targets: Sequence[str],
        selectors: Sequence[Any],
        majorities: Sequence[int],
        quorums: Sequence[int],
        execution_thresholds: Sequence[int],
    ) -> List[GovernanceEvent]:
        caller = normalize_address(caller)
        with self._transaction("update_resolution_requirements") as start:
            self._require_governor(caller, UPDATE_RESOLUTION_REQUIREMENTS_SIGNATURE)
            changes = self._requirements.update(
                targets, selectors, majorities, quorums, execution_thresholds
            )
            for target, selector, requirement in changes:
                self._events.emit(ResolutionRequirementUpdated(
                    target=target,
                    method_signature=selector,
                    majority=requirement.majority,
                    quorum=requirement.quorum,
                    execution_threshold=requirement.execution_threshold,
                ))
        return self._events.since(start)

    # ══════════════════════════════════════════════════════════════════
    #  ARCHIVING
    # ══════════════════════════════════════════════════════════════════

    def archive_session(self, caller: str) -> List[GovernanceEvent]:
        """Archive the oldest retained session once it is CLOSED."""
        caller = normalize_address(caller)
        with self._transaction("archive_session") as start:
            archived = self._scheduler.archive_oldest(self.now())
            self._tabulator.drop_session(archived.id)
            self._events.emit(SessionArchived(session_id=archived.id))
            logger.info(f"Session #{archived.id} archived on request of {caller}")
        return self._events.since(start)

    def __repr__(self) -> str:
        return (
            f"<VotingSessionManager {self.address} session={self.current_session_id} "
            f"oldest={self.oldest_session_id}>"
        )
