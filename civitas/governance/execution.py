"""
Resolution Execution

Provides:
  - Journal: snapshot/revert over every stateful participant so an entry
    point either applies completely or not at all
  - CallRouter: dispatch of resolution actions to registered handlers
  - Approval evaluation and proposal state derivation
  - ResolutionExecutor: ordered, atomic execution of approved proposals
"""

from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple

from ..logger import get_logger
from ..addresses import method_selector, normalize_address, selector_hex
from ..constants import PERCENT
from .errors import (
    AlreadyExecutedError,
    DependencyNotResolvedError,
    EmptyResolutionListError,
    ExecutionNotOpenError,
    ExecutionThresholdError,
    ExternalCallError,
    ProposalNotApprovedError,
    SessionClosedError,
)
from .events import EventLog, ResolutionExecuted
from .proposals import Proposal, ProposalRegistry, ProposalState, ResolutionAction
from .sessions import Session, SessionScheduler, SessionState

logger = get_logger(__name__)

Handler = Callable[..., Any]


class Journaled(Protocol):
    """Anything whose state can be captured and restored."""

    def snapshot(self) -> Any: ...

    def revert(self, snapshot: Any) -> None: ...


# ══════════════════════════════════════════════════════════════════════
#  JOURNAL
# ══════════════════════════════════════════════════════════════════════

class Journal:
    """
    Groups participants under one transaction.

    Snapshots are taken in registration order and restored in reverse,
    then the original exception propagates.
    """

    def __init__(self, participants: Sequence[Journaled] = ()):
        self._participants: List[Journaled] = []
        for participant in participants:
            self.enlist(participant)

    def enlist(self, participant: Journaled) -> None:
        if not any(p is participant for p in self._participants):
            self._participants.append(participant)

    @property
    def participants(self) -> List[Journaled]:
        return list(self._participants)

    def snapshot(self) -> List[Tuple[Journaled, Any]]:
        return [(p, p.snapshot()) for p in self._participants]

    @staticmethod
    def revert(snapshots: List[Tuple[Journaled, Any]]) -> None:
        for participant, snapshot in reversed(snapshots):
            participant.revert(snapshot)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        snapshots = self.snapshot()
        try:
            yield
        except Exception:
            self.revert(snapshots)
            raise


# ══════════════════════════════════════════════════════════════════════
#  CALL ROUTER
# ══════════════════════════════════════════════════════════════════════

class CallRouter:
    """
    Routes (target, selector) pairs to handlers.

    A handler is called as ``handler(caller, *action.args)``. Targets whose
    state can change during dispatch register themselves as participants so
    a failed transaction rolls them back too.
    """

    def __init__(self):
        self._routes: Dict[Tuple[str, bytes], Tuple[str, Handler]] = {}
        self._participants: List[Journaled] = []

    def register(self, target: str, signature: str, handler: Handler) -> bytes:
        target = normalize_address(target)
        selector = method_selector(signature)
        self._routes[(target, selector)] = (signature, handler)
        logger.debug(f"Route {target}:{selector_hex(selector)} → {signature}")
        return selector

    def register_participant(self, participant: Journaled) -> None:
        if not any(p is participant for p in self._participants):
            self._participants.append(participant)

    @property
    def participants(self) -> List[Journaled]:
        return list(self._participants)

    def has_route(self, target: str, selector: Any) -> bool:
        return (normalize_address(target), method_selector(selector)) in self._routes

    def signatures(self, target: str) -> List[str]:
        target = normalize_address(target)
        return [sig for (t, _), (sig, _) in self._routes.items() if t == target]

    def dispatch(self, target: str, action: ResolutionAction, caller: str) -> Any:
        """
        Invoke *action* on *target*.

        A blank action without a route is a no-op. Any other failure,
        including a missing route, raises ExternalCallError.
        """
        route = self._routes.get((normalize_address(target), action.selector))
        if route is None:
            if action.is_blank:
                return None
            raise ExternalCallError(
                f"No handler for {action.signature} on {target}"
            )
        signature, handler = route
        try:
            return handler(caller, *action.args)
        except Exception as e:
            raise ExternalCallError(f"{signature} on {target} failed: {e}") from e

    def __repr__(self) -> str:
        return f"<CallRouter routes={len(self._routes)} participants={len(self._participants)}>"


# ══════════════════════════════════════════════════════════════════════
#  APPROVAL
# ══════════════════════════════════════════════════════════════════════

def meets_requirements(session: Session, proposal: Proposal) -> bool:
    """Quorum against voting supply and majority against participation."""
    if proposal.cancelled or proposal.approvals <= 0:
        return False
    approvals = proposal.approvals * PERCENT
    if approvals < session.voting_supply * proposal.requirement_quorum:
        return False
    return approvals >= session.participation * proposal.requirement_majority


def is_approved(registry: ProposalRegistry, session: Session, proposal: Proposal) -> bool:
    """
    Whether *proposal* passed.

    Within an alternative group only the member with the most approvals can
    pass; on a tie the lowest id wins.
    """
    if not meets_requirements(session, proposal):
        return False
    for other in registry.group_members(session.id, proposal):
        if other.id == proposal.id or other.cancelled:
            continue
        if other.approvals > proposal.approvals:
            return False
        if other.approvals == proposal.approvals and other.id < proposal.id:
            return False
    return True


def proposal_state(
    session_state: SessionState,
    proposal: Optional[Proposal],
    approved: bool = False,
) -> ProposalState:
    """Map a session state and a proposal onto the proposal lifecycle."""
    if session_state == SessionState.ARCHIVED:
        return ProposalState.ARCHIVED
    if session_state == SessionState.UNDEFINED or proposal is None:
        return ProposalState.UNDEFINED
    if proposal.cancelled:
        return ProposalState.CANCELLED
    if proposal.resolution_executed:
        return ProposalState.RESOLVED
    if session_state in (SessionState.PLANNED, SessionState.CAMPAIGN):
        return ProposalState.DEFINED
    if session_state == SessionState.VOTING:
        return ProposalState.LOCKED
    if session_state in (SessionState.EXECUTION, SessionState.GRACE):
        return ProposalState.APPROVED if approved else ProposalState.REJECTED
    return ProposalState.CLOSED


# ══════════════════════════════════════════════════════════════════════
#  EXECUTOR
# ══════════════════════════════════════════════════════════════════════

class ResolutionExecutor:
    """
    Executes approved proposals of the current session in caller order.

    Callers wrap ``execute`` in a Journal transaction: a failing id leaves
    every earlier id of the batch unexecuted.
    """

    def __init__(
        self,
        registry: ProposalRegistry,
        scheduler: SessionScheduler,
        router: CallRouter,
        events: EventLog,
        executor_address: str,
    ):
        self._registry = registry
        self._scheduler = scheduler
        self._router = router
        self._events = events
        self.executor_address = normalize_address(executor_address)

    def is_approved(self, session: Session, proposal: Proposal) -> bool:
        return is_approved(self._registry, session, proposal)

    def proposal_state_at(self, session_id: int, proposal_id: int, t: int) -> ProposalState:
        session_state = self._scheduler.session_state_at(session_id, t)
        if session_state == SessionState.ARCHIVED:
            session = self._scheduler.session(session_id)
            if 1 <= proposal_id <= session.proposals_count:
                return ProposalState.ARCHIVED
            return ProposalState.UNDEFINED
        proposal = self._registry.find(session_id, proposal_id)
        if session_state == SessionState.UNDEFINED or proposal is None:
            return ProposalState.UNDEFINED
        approved = False
        if session_state in (SessionState.EXECUTION, SessionState.GRACE):
            approved = self.is_approved(self._scheduler.session(session_id), proposal)
        return proposal_state(session_state, proposal, approved)

    def check_window(self, now: int) -> Session:
        """
        Session accepting executions at *now*.

        A session still in GRACE keeps its window after the next session has
        been scheduled, so the previous session is used when the current one
        is not executable yet.
        """
        session = self._scheduler.current_session
        if session is None:
            raise ExecutionNotOpenError("No session has been scheduled")
        state = self._scheduler.session_state_at(session.id, now)
        if state in (SessionState.EXECUTION, SessionState.GRACE):
            return session
        previous_id = session.id - 1
        if previous_id >= 1 and self._scheduler.session_state_at(previous_id, now) == SessionState.GRACE:
            return self._scheduler.session(previous_id)
        if state in (SessionState.CLOSED, SessionState.ARCHIVED):
            raise SessionClosedError(f"Session #{session.id} is {state.name}")
        raise ExecutionNotOpenError(
            f"Session #{session.id} is {state.name}; execution has not started"
        )

    def _check_executable(self, session: Session, proposal: Proposal) -> None:
        ref = f"#{session.id}.{proposal.id}"
        if proposal.resolution_executed:
            raise AlreadyExecutedError(f"Proposal {ref} already executed")
        if not self.is_approved(session, proposal):
            raise ProposalNotApprovedError(f"Proposal {ref} is not approved")
        if proposal.approvals < proposal.execution_threshold:
            raise ExecutionThresholdError(
                f"Proposal {ref} approvals {proposal.approvals} < "
                f"threshold {proposal.execution_threshold}"
            )
        if proposal.depends_on:
            dependency = self._registry.get(session.id, proposal.depends_on)
            if not dependency.resolution_executed:
                raise DependencyNotResolvedError(
                    f"Proposal {ref} depends on unresolved proposal {dependency.id}"
                )

    def execute(self, proposal_ids: Sequence[int], now: int) -> List[Proposal]:
        """Execute *proposal_ids* in order; emits ResolutionExecuted for each."""
        if not proposal_ids:
            raise EmptyResolutionListError("No proposals to execute")
        session = self.check_window(now)

        executed = []
        for proposal_id in proposal_ids:
            proposal = self._registry.get(session.id, int(proposal_id))
            self._check_executable(session, proposal)
            self._router.dispatch(
                proposal.resolution_target,
                proposal.resolution_action,
                caller=self.executor_address,
            )
            proposal.resolution_executed = True
            self._events.emit(ResolutionExecuted(session_id=session.id, proposal_id=proposal.id))
            logger.info(f"Resolution #{session.id}.{proposal.id} executed")
            executed.append(proposal)
        return executed

    def __repr__(self) -> str:
        return f"<ResolutionExecutor address={self.executor_address}>"
