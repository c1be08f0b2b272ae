"""
Minting Scenario: end-to-end governance test

Coverage:
  - Session scheduling by the first proposal, token lock for the vote
  - Alternative masks (mint 2 / burn 3 → mask 6)
  - Weighted voting with a non-voting holder excluded from voting supply
  - Proposal states across the session lifecycle
  - Dependency ordering, atomic batch execution, double execution
  - GRACE window kept after the next session is scheduled
  - Minting resolution changing the token supply
"""

import pytest

from civitas_helpers import (
    ACCOUNTS,
    MANAGER,
    OUTSIDER,
    TOTAL_SUPPLY,
    VOTING_SUPPLY,
    define_scenario_proposals,
    make_manager,
    vote_scenario,
)

from civitas.governance import ProposalState, SessionState
from civitas.governance.errors import (
    AlreadyExecutedError,
    DependencyNotResolvedError,
    ExecutionNotAllowedError,
    ExecutionNotOpenError,
    ProposalNotApprovedError,
    SessionClosedError,
    UnknownProposalError,
)
from civitas.tokens import TokenLockedError


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════

def voted_scenario():
    manager, token, access, clock = make_manager()
    define_scenario_proposals(manager)
    session = vote_scenario(manager, clock)
    return manager, token, clock, session


# ══════════════════════════════════════════════════════════════════════
#  DEFINITION
# ══════════════════════════════════════════════════════════════════════

class TestScenarioDefinition:
    """Proposals defined before the campaign starts."""

    def test_first_proposal_schedules_session(self):
        manager, token, access, clock = make_manager()
        events = manager.define_proposal(ACCOUNTS[1], "Poll")
        assert [e.name for e in events] == ["SessionScheduled", "ProposalDefined"]
        assert manager.current_session_id == 1
        assert events[0].vote_at == manager.next_session_at(clock.t)

    def test_session_snapshots_total_supply(self):
        manager, token, access, clock = make_manager()
        define_scenario_proposals(manager)
        session = manager.session(1)
        assert session.total_supply == TOTAL_SUPPLY
        assert session.proposals_count == 4
        assert session.voting_supply == 0

    def test_alternative_mask(self):
        manager, token, access, clock = make_manager()
        define_scenario_proposals(manager)
        assert manager.proposal(1, 2).alternatives_mask == 6
        assert manager.proposal(1, 3).alternatives_mask == 0
        assert manager.proposal(1, 3).alternative_of == 2

    def test_requirements_snapshotted(self):
        manager, token, access, clock = make_manager()
        define_scenario_proposals(manager)
        data = manager.proposal_data(1, 2)
        assert data["requirementMajority"] == 500000
        assert data["requirementQuorum"] == 200000
        assert data["executionThreshold"] == 1

    def test_states_defined(self):
        manager, token, access, clock = make_manager()
        define_scenario_proposals(manager)
        assert manager.session_state_at(1) == SessionState.PLANNED
        for pid in range(1, 5):
            assert manager.proposal_state_at(1, pid) == ProposalState.DEFINED
        assert manager.proposal_state_at(1, 5) == ProposalState.UNDEFINED

    def test_token_locked_during_vote(self):
        manager, token, access, clock = make_manager()
        define_scenario_proposals(manager)
        session = manager.session(1)
        lock = token.lock_of(MANAGER)
        assert (lock.start_at, lock.end_at) == (session.vote_at, session.execution_at)
        with pytest.raises(TokenLockedError):
            token.transfer(ACCOUNTS[1], ACCOUNTS[4], 10, now=session.vote_at)
        token.transfer(ACCOUNTS[1], ACCOUNTS[4], 10, now=session.execution_at)


# ══════════════════════════════════════════════════════════════════════
#  VOTING
# ══════════════════════════════════════════════════════════════════════

class TestScenarioVoting:
    """Four holders approve proposals 1 and 2."""

    def test_participation(self):
        manager, token, clock, session = voted_scenario()
        session = manager.session(1)
        assert session.participation == 7000100
        assert session.voting_supply == VOTING_SUPPLY

    def test_approvals(self):
        manager, token, clock, session = voted_scenario()
        assert manager.proposal(1, 1).approvals == 7000100
        assert manager.proposal(1, 2).approvals == 7000100
        assert manager.proposal(1, 3).approvals == 0
        assert manager.proposal(1, 4).approvals == 0

    def test_locked_while_voting(self):
        manager, token, clock, session = voted_scenario()
        for pid in range(1, 5):
            assert manager.proposal_state_at(1, pid) == ProposalState.LOCKED

    def test_states_after_vote(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.execution_at)
        assert manager.proposal_state_at(1, 1) == ProposalState.APPROVED
        assert manager.proposal_state_at(1, 2) == ProposalState.APPROVED
        assert manager.proposal_state_at(1, 3) == ProposalState.REJECTED
        assert manager.proposal_state_at(1, 4) == ProposalState.REJECTED

    def test_vote_events(self):
        manager, token, access, clock = make_manager()
        define_scenario_proposals(manager)
        clock.set(manager.session(1).vote_at)
        events = manager.submit_vote(ACCOUNTS[2], 3)
        assert len(events) == 1
        assert events[0].to_dict() == {
            "event": "Vote",
            "sessionId": 1,
            "voter": ACCOUNTS[2],
            "weight": 1500000,
        }


# ══════════════════════════════════════════════════════════════════════
#  EXECUTION
# ══════════════════════════════════════════════════════════════════════

class TestScenarioExecution:
    """Ordered, atomic execution of the approved resolutions."""

    def test_execute_before_execution_window(self):
        manager, token, clock, session = voted_scenario()
        with pytest.raises(ExecutionNotOpenError) as exc:
            manager.execute_resolutions(ACCOUNTS[1], [1])
        assert exc.value.code == "VD28"

    def test_dependency_must_resolve_first(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.execution_at)
        with pytest.raises(DependencyNotResolvedError) as exc:
            manager.execute_resolutions(ACCOUNTS[1], [2])
        assert exc.value.code == "VD30"

    def test_execute_mint(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.execution_at)
        events = manager.execute_resolutions(ACCOUNTS[1], [1, 2])
        assert [(e.name, e.proposal_id) for e in events] == [
            ("ResolutionExecuted", 1),
            ("ResolutionExecuted", 2),
        ]
        assert token.total_supply() == 22000001
        assert token.balance_of(ACCOUNTS[4]) == 13999900
        assert manager.proposal_state_at(1, 1) == ProposalState.RESOLVED
        assert manager.proposal_state_at(1, 2) == ProposalState.RESOLVED

    def test_execute_in_two_calls(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.execution_at)
        manager.execute_resolutions(ACCOUNTS[1], [1])
        manager.execute_resolutions(ACCOUNTS[1], [2])
        assert token.total_supply() == 22000001

    def test_rejected_proposal_not_executable(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.execution_at)
        with pytest.raises(ProposalNotApprovedError) as exc:
            manager.execute_resolutions(ACCOUNTS[1], [4])
        assert exc.value.code == "VD29"

    def test_batch_is_atomic(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.execution_at)
        events_before = len(manager.events)
        with pytest.raises(ProposalNotApprovedError):
            manager.execute_resolutions(ACCOUNTS[1], [1, 2, 3])
        assert manager.proposal(1, 1).resolution_executed is False
        assert manager.proposal(1, 2).resolution_executed is False
        assert token.total_supply() == TOTAL_SUPPLY
        assert len(manager.events) == events_before

    def test_double_execution(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.execution_at)
        manager.execute_resolutions(ACCOUNTS[1], [1])
        with pytest.raises(AlreadyExecutedError) as exc:
            manager.execute_resolutions(ACCOUNTS[1], [1])
        assert exc.value.code == "VD32"

    def test_double_execution_in_batch_reverts_mint(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.execution_at)
        with pytest.raises(AlreadyExecutedError):
            manager.execute_resolutions(ACCOUNTS[1], [1, 2, 2])
        assert token.total_supply() == TOTAL_SUPPLY
        assert token.balance_of(ACCOUNTS[4]) == 0

    def test_unknown_proposal(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.execution_at)
        with pytest.raises(UnknownProposalError):
            manager.execute_resolutions(ACCOUNTS[1], [9])

    def test_caller_without_weight(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.execution_at)
        with pytest.raises(ExecutionNotAllowedError) as exc:
            manager.execute_resolutions(OUTSIDER, [1])
        assert exc.value.code == "VD26"

    def test_execute_during_grace(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.grace_at)
        manager.execute_resolutions(ACCOUNTS[1], [1, 2])
        assert token.total_supply() == 22000001

    def test_session_closed(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.closed_at)
        with pytest.raises(SessionClosedError) as exc:
            manager.execute_resolutions(ACCOUNTS[1], [1])
        assert exc.value.code == "VD25"
        assert manager.proposal_state_at(1, 1) == ProposalState.CLOSED

    def test_grace_survives_next_session(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.grace_at + 10)
        assert manager.session_state_at(1) == SessionState.GRACE
        assert manager.proposal_state_at(1, 1) == ProposalState.APPROVED
        manager.define_proposal(ACCOUNTS[2], "Next poll")
        assert manager.current_session_id == 2
        assert manager.session_state_at(2) == SessionState.PLANNED
        events = manager.execute_resolutions(ACCOUNTS[1], [1, 2])
        assert [(e.name, e.session_id, e.proposal_id) for e in events] == [
            ("ResolutionExecuted", 1, 1),
            ("ResolutionExecuted", 1, 2),
        ]
        assert token.total_supply() == 22000001
        assert manager.proposal_state_at(1, 2) == ProposalState.RESOLVED

    def test_previous_session_closed_after_next_scheduled(self):
        manager, token, clock, session = voted_scenario()
        clock.set(session.grace_at)
        manager.define_proposal(ACCOUNTS[2], "Next poll")
        clock.set(session.closed_at)
        with pytest.raises(ExecutionNotOpenError) as exc:
            manager.execute_resolutions(ACCOUNTS[1], [1])
        assert exc.value.code == "VD28"
