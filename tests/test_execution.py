"""
Resolution Execution Test Suite

Coverage:
  - Journal: reverse-order revert, exception propagation
  - CallRouter: blank no-op, missing route, failing handler (VD31)
  - Approval rule: quorum, majority, zero approvals
  - Proposal lifecycle mapping
  - Execution guards: VD45, VD27, VD31 rollback
"""

import pytest

from civitas_helpers import ACCOUNTS, MANAGER, MINT, TOKEN, make_manager

from civitas.governance import (
    BLANK_ACTION,
    CallRouter,
    Journal,
    Proposal,
    ProposalState,
    ResolutionAction,
    Session,
    SessionRule,
    SessionState,
)
from civitas.governance.errors import (
    EmptyResolutionListError,
    ExecutionThresholdError,
    ExternalCallError,
)
from civitas.governance.execution import meets_requirements, proposal_state


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

class Counter:
    """Minimal journaled participant."""

    def __init__(self, log=None, name="counter"):
        self.value = 0
        self.log = log if log is not None else []
        self.name = name

    def snapshot(self):
        return self.value

    def revert(self, snapshot):
        self.log.append(self.name)
        self.value = snapshot


def make_session(voting_supply=1000, participation=500):
    session = Session.anchored(1, 1210982400, SessionRule())
    session.voting_supply = voting_supply
    session.participation = participation
    return session


def make_proposal(approvals, majority=500000, quorum=200000):
    return Proposal(
        session_id=1,
        id=1,
        name="P",
        requirement_majority=majority,
        requirement_quorum=quorum,
        approvals=approvals,
    )


# ══════════════════════════════════════════════════════════════════════
#  JOURNAL
# ══════════════════════════════════════════════════════════════════════

class TestJournal:
    """All-or-nothing transactions."""

    def test_commit(self):
        counter = Counter()
        with Journal([counter]).transaction():
            counter.value = 5
        assert counter.value == 5

    def test_revert_in_reverse_order(self):
        log = []
        first, second = Counter(log, "first"), Counter(log, "second")
        journal = Journal([first, second])
        with pytest.raises(RuntimeError):
            with journal.transaction():
                first.value = 1
                second.value = 2
                raise RuntimeError("boom")
        assert (first.value, second.value) == (0, 0)
        assert log == ["second", "first"]

    def test_enlist_once(self):
        counter = Counter()
        journal = Journal([counter, counter])
        journal.enlist(counter)
        assert len(journal.participants) == 1


# ══════════════════════════════════════════════════════════════════════
#  ROUTER
# ══════════════════════════════════════════════════════════════════════

class TestCallRouter:
    """Dispatch of resolution actions."""

    def test_blank_without_route(self):
        router = CallRouter()
        assert router.dispatch(TOKEN, BLANK_ACTION, caller=MANAGER) is None

    def test_missing_route(self):
        router = CallRouter()
        with pytest.raises(ExternalCallError) as exc:
            router.dispatch(TOKEN, ResolutionAction(MINT, ()), caller=MANAGER)
        assert exc.value.code == "VD31"

    def test_handler_receives_caller(self):
        calls = []
        router = CallRouter()
        router.register(TOKEN, "ping(uint256)", lambda caller, n: calls.append((caller, n)))
        router.dispatch(TOKEN.lower(), ResolutionAction("ping(uint256)", (7,)), caller=MANAGER)
        assert calls == [(MANAGER, 7)]
        assert router.has_route(TOKEN, "ping(uint256)")
        assert router.signatures(TOKEN) == ["ping(uint256)"]

    def test_handler_failure(self):
        def fail(caller):
            raise ValueError("nope")

        router = CallRouter()
        router.register(TOKEN, "fail()", fail)
        with pytest.raises(ExternalCallError) as exc:
            router.dispatch(TOKEN, ResolutionAction("fail()"), caller=MANAGER)
        assert isinstance(exc.value.__cause__, ValueError)


# ══════════════════════════════════════════════════════════════════════
#  APPROVAL & LIFECYCLE
# ══════════════════════════════════════════════════════════════════════

class TestApprovalRule:
    """Quorum and majority in ppm."""

    def test_meets_both(self):
        assert meets_requirements(make_session(), make_proposal(250))

    def test_below_majority(self):
        assert not meets_requirements(make_session(), make_proposal(249))

    def test_below_quorum(self):
        session = make_session(voting_supply=10000, participation=300)
        assert not meets_requirements(session, make_proposal(250))

    def test_zero_approvals(self):
        session = make_session(voting_supply=0, participation=0)
        assert not meets_requirements(session, make_proposal(0, majority=0, quorum=0))

    def test_cancelled(self):
        proposal = make_proposal(500)
        proposal.cancelled = True
        assert not meets_requirements(make_session(), proposal)


class TestProposalState:
    """Session state → proposal state."""

    @pytest.mark.parametrize("session_state, approved, expected", [
        (SessionState.PLANNED, False, ProposalState.DEFINED),
        (SessionState.CAMPAIGN, False, ProposalState.DEFINED),
        (SessionState.VOTING, False, ProposalState.LOCKED),
        (SessionState.EXECUTION, True, ProposalState.APPROVED),
        (SessionState.GRACE, False, ProposalState.REJECTED),
        (SessionState.CLOSED, True, ProposalState.CLOSED),
        (SessionState.ARCHIVED, True, ProposalState.ARCHIVED),
    ])
    def test_mapping(self, session_state, approved, expected):
        assert proposal_state(session_state, make_proposal(1), approved) == expected

    def test_missing(self):
        assert proposal_state(SessionState.VOTING, None) == ProposalState.UNDEFINED

    def test_resolved_wins(self):
        proposal = make_proposal(1)
        proposal.resolution_executed = True
        assert proposal_state(SessionState.CLOSED, proposal) == ProposalState.RESOLVED


# ══════════════════════════════════════════════════════════════════════
#  EXECUTION GUARDS
# ══════════════════════════════════════════════════════════════════════

class TestExecutionGuards:
    """Rejections raised by execute_resolutions."""

    def test_empty_list(self):
        manager, token, access, clock = make_manager()
        manager.define_proposal(ACCOUNTS[1], "Poll")
        clock.set(manager.session(1).execution_at)
        with pytest.raises(EmptyResolutionListError) as exc:
            manager.execute_resolutions(ACCOUNTS[1], [])
        assert exc.value.code == "VD45"

    def test_execution_threshold(self):
        manager, token, access, clock = make_manager()
        manager.update_resolution_requirements(
            ACCOUNTS[0], [TOKEN], [MINT], [500000], [200000], [6000000]
        )
        manager.define_proposal(
            ACCOUNTS[1], "Mint",
            resolution_target=TOKEN,
            resolution_action=ResolutionAction(MINT, ([ACCOUNTS[4]], [10])),
        )
        session = manager.session(1)
        clock.set(session.vote_at)
        manager.submit_vote(ACCOUNTS[1], 1)
        manager.submit_vote(ACCOUNTS[3], 1)
        clock.set(session.execution_at)
        assert manager.is_approved(1, 1)
        with pytest.raises(ExecutionThresholdError) as exc:
            manager.execute_resolutions(ACCOUNTS[1], [1])
        assert exc.value.code == "VD27"
        assert token.balance_of(ACCOUNTS[4]) == 0

    def test_unrouted_action_rolls_back(self):
        manager, token, access, clock = make_manager(route_token=False)
        manager.define_proposal(ACCOUNTS[1], "Poll")
        manager.define_proposal(
            ACCOUNTS[1], "Mint",
            resolution_target=TOKEN,
            resolution_action=ResolutionAction(MINT, ([ACCOUNTS[4]], [10])),
        )
        session = manager.session(1)
        clock.set(session.vote_at)
        manager.submit_vote(ACCOUNTS[1], 3)
        clock.set(session.execution_at)
        with pytest.raises(ExternalCallError):
            manager.execute_resolutions(ACCOUNTS[1], [1, 2])
        assert manager.proposal_state_at(1, 1) == ProposalState.APPROVED
        assert manager.events[-1].name == "Vote"
