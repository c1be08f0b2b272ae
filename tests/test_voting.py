"""
Vote Tabulation Test Suite

Coverage:
  - Voting window (VD36) and voter lists (VD37)
  - Delegation: sponsors, operators and self-managed holders (VD38)
  - One ballot per session, non-voting addresses, batch duplicates (VD39)
  - Zero-weight voters (VD40) and mask validation (VD42)
  - Voting supply snapshot and ballot atomicity
  - define_sponsor / define_sponsor_of (VM05)
"""

import pytest

from civitas_helpers import (
    ACCOUNTS,
    OUTSIDER,
    VOTING_SUPPLY,
    define_scenario_proposals,
    make_manager,
)

from civitas.constants import NULL_ADDRESS
from civitas.governance import Sponsor
from civitas.governance.errors import (
    AlreadyVotedError,
    EmptyVoterListError,
    InvalidVoteMaskError,
    NoVotingWeightError,
    NotOwnerError,
    NotSponsorError,
    VotingClosedError,
)


# ══════════════════════════════════════════════════════════════════════
#  FIXTURES
# ══════════════════════════════════════════════════════════════════════

@pytest.fixture
def voting():
    """Manager with the reference proposals, clock at vote start."""
    manager, token, access, clock = make_manager()
    define_scenario_proposals(manager)
    session = manager.session(1)
    clock.set(session.vote_at)
    return manager, token, access, clock, session


# ══════════════════════════════════════════════════════════════════════
#  WINDOW
# ══════════════════════════════════════════════════════════════════════

class TestVotingWindow:
    """Votes only during VOTING."""

    def test_no_session(self):
        manager, token, access, clock = make_manager()
        with pytest.raises(VotingClosedError) as exc:
            manager.submit_vote(ACCOUNTS[1], 1)
        assert exc.value.code == "VD36"

    def test_before_vote(self):
        manager, token, access, clock = make_manager()
        define_scenario_proposals(manager)
        with pytest.raises(VotingClosedError):
            manager.submit_vote(ACCOUNTS[1], 1)

    def test_after_vote(self, voting):
        manager, token, access, clock, session = voting
        clock.set(session.execution_at)
        with pytest.raises(VotingClosedError):
            manager.submit_vote(ACCOUNTS[1], 1)

    def test_vote_event(self, voting):
        manager, token, access, clock, session = voting
        events = manager.submit_vote(ACCOUNTS[2], 3)
        assert [e.to_dict() for e in events] == [{
            "event": "Vote",
            "sessionId": 1,
            "voter": ACCOUNTS[2],
            "weight": 1500000,
        }]
        assert manager.proposal(1, 1).approvals == 1500000
        assert manager.proposal(1, 2).approvals == 1500000
        assert manager.last_vote_of(ACCOUNTS[2]) == session.vote_at

    def test_empty_voter_list(self, voting):
        manager, token, access, clock, session = voting
        with pytest.raises(EmptyVoterListError) as exc:
            manager.submit_votes_on_behalf(ACCOUNTS[0], [], 1)
        assert exc.value.code == "VD37"


# ══════════════════════════════════════════════════════════════════════
#  MASKS
# ══════════════════════════════════════════════════════════════════════

class TestVoteMasks:
    """Mask range and cancelled proposals."""

    @pytest.mark.parametrize("mask", [0, 16, 1 << 10])
    def test_out_of_range(self, voting, mask):
        manager, token, access, clock, session = voting
        with pytest.raises(InvalidVoteMaskError) as exc:
            manager.submit_vote(ACCOUNTS[1], mask)
        assert exc.value.code == "VD42"

    def test_full_mask_without_conflict(self, voting):
        manager, token, access, clock, session = voting
        manager.submit_vote(ACCOUNTS[1], 1 | 2 | 8)
        assert [p.approvals for p in manager.proposals(1)] == [3500000, 3500000, 0, 3500000]


# ══════════════════════════════════════════════════════════════════════
#  DELEGATION
# ══════════════════════════════════════════════════════════════════════

class TestDelegation:
    """Who may vote for whom."""

    def test_stranger_rejected(self, voting):
        manager, token, access, clock, session = voting
        with pytest.raises(NotSponsorError) as exc:
            manager.submit_votes_on_behalf(ACCOUNTS[2], [ACCOUNTS[3]], 1)
        assert exc.value.code == "VD38"

    def test_sponsor(self, voting):
        manager, token, access, clock, session = voting
        events = manager.define_sponsor(ACCOUNTS[3], ACCOUNTS[2], session.execution_at)
        assert events[0].to_dict() == {
            "event": "SponsorDefined",
            "voter": ACCOUNTS[3],
            "address": ACCOUNTS[2],
            "until": session.execution_at,
        }
        manager.submit_votes_on_behalf(ACCOUNTS[2], [ACCOUNTS[2], ACCOUNTS[3]], 1)
        record = manager.vote_of(1, ACCOUNTS[3])
        assert record.cast_by == ACCOUNTS[2]
        assert record.on_behalf
        assert record.weight == 2000000
        assert manager.proposal(1, 1).approvals == 3500000

    def test_expired_sponsor(self, voting):
        manager, token, access, clock, session = voting
        manager.define_sponsor(ACCOUNTS[3], ACCOUNTS[2], session.vote_at - 1)
        with pytest.raises(NotSponsorError):
            manager.submit_votes_on_behalf(ACCOUNTS[2], [ACCOUNTS[3]], 1)

    def test_operator_for_managed_holder(self, voting):
        manager, token, access, clock, session = voting
        manager.submit_votes_on_behalf(ACCOUNTS[0], [ACCOUNTS[1]], 1)
        assert manager.vote_of(1, ACCOUNTS[1]).cast_by == ACCOUNTS[0]

    def test_operator_for_self_managed_holder(self, voting):
        manager, token, access, clock, session = voting
        with pytest.raises(NotSponsorError):
            manager.submit_votes_on_behalf(ACCOUNTS[0], [ACCOUNTS[5]], 1)

    def test_sponsor_for_self_managed_holder(self, voting):
        manager, token, access, clock, session = voting
        assert token.is_self_managed(ACCOUNTS[5])
        manager.define_sponsor(ACCOUNTS[3], ACCOUNTS[2], session.execution_at)
        manager.define_sponsor(ACCOUNTS[5], ACCOUNTS[2], session.execution_at)
        events = manager.submit_votes_on_behalf(
            ACCOUNTS[2], [ACCOUNTS[2], ACCOUNTS[3], ACCOUNTS[5]], 1
        )
        assert [(e.name, e.voter, e.weight) for e in events] == [
            ("Vote", ACCOUNTS[2], 1500000),
            ("Vote", ACCOUNTS[3], 2000000),
            ("Vote", ACCOUNTS[5], 1),
        ]
        assert manager.vote_of(1, ACCOUNTS[5]).cast_by == ACCOUNTS[2]
        assert manager.proposal(1, 1).approvals == 3500001

    def test_batch_is_atomic(self, voting):
        manager, token, access, clock, session = voting
        with pytest.raises(NotSponsorError):
            manager.submit_votes_on_behalf(ACCOUNTS[0], [ACCOUNTS[1], ACCOUNTS[5]], 1)
        assert manager.last_vote_of(ACCOUNTS[1]) == 0
        assert manager.proposal(1, 1).approvals == 0
        assert manager.session(1).participation == 0
        assert manager.vote_of(1, ACCOUNTS[1]) is None

    def test_sponsor_default(self):
        manager, token, access, clock = make_manager()
        assert manager.sponsor_of(ACCOUNTS[1]) == Sponsor(address=NULL_ADDRESS, until=0)

    def test_define_sponsor_of(self, voting):
        manager, token, access, clock, session = voting
        access.define_owner(ACCOUNTS[3], ACCOUNTS[1])
        manager.define_sponsor_of(ACCOUNTS[1], ACCOUNTS[3], ACCOUNTS[2], session.execution_at)
        assert manager.sponsor_of(ACCOUNTS[3]).address == ACCOUNTS[2]

    def test_define_sponsor_of_by_stranger(self, voting):
        manager, token, access, clock, session = voting
        with pytest.raises(NotOwnerError) as exc:
            manager.define_sponsor_of(OUTSIDER, ACCOUNTS[3], OUTSIDER, session.execution_at)
        assert exc.value.code == "VM05"
        assert manager.sponsor_of(ACCOUNTS[3]).address == NULL_ADDRESS


# ══════════════════════════════════════════════════════════════════════
#  DOUBLE VOTES & WEIGHT
# ══════════════════════════════════════════════════════════════════════

class TestBallotUniqueness:
    """One ballot per voter per session."""

    def test_second_vote(self, voting):
        manager, token, access, clock, session = voting
        manager.submit_vote(ACCOUNTS[1], 1)
        with pytest.raises(AlreadyVotedError) as exc:
            manager.submit_vote(ACCOUNTS[1], 2)
        assert exc.value.code == "VD39"

    def test_non_voting_address(self, voting):
        manager, token, access, clock, session = voting
        with pytest.raises(AlreadyVotedError):
            manager.submit_vote(ACCOUNTS[6], 1)

    def test_duplicate_in_batch(self, voting):
        manager, token, access, clock, session = voting
        with pytest.raises(AlreadyVotedError):
            manager.submit_votes_on_behalf(ACCOUNTS[0], [ACCOUNTS[1], ACCOUNTS[1]], 1)
        assert manager.proposal(1, 1).approvals == 0

    def test_votes_again_next_session(self, voting):
        manager, token, access, clock, session = voting
        manager.submit_vote(ACCOUNTS[1], 1)
        clock.set(session.grace_at)
        manager.define_proposal(ACCOUNTS[1], "Next")
        clock.set(manager.session(2).vote_at)
        manager.submit_vote(ACCOUNTS[1], 1)
        assert manager.vote_of(2, ACCOUNTS[1]).weight == 3500000


class TestVotingWeight:
    """Weight read from the ledger."""

    def test_zero_weight(self, voting):
        manager, token, access, clock, session = voting
        with pytest.raises(NoVotingWeightError) as exc:
            manager.submit_vote(ACCOUNTS[4], 1)
        assert exc.value.code == "VD40"

    def test_voting_supply_snapshot(self, voting):
        manager, token, access, clock, session = voting
        assert manager.session(1).voting_supply == 0
        manager.submit_vote(ACCOUNTS[3], 1)
        assert manager.session(1).voting_supply == VOTING_SUPPLY
        token.transfer(ACCOUNTS[6], ACCOUNTS[4], 500000, now=session.execution_at)
        manager.submit_vote(ACCOUNTS[1], 1)
        assert manager.session(1).voting_supply == VOTING_SUPPLY

    def test_participation(self, voting):
        manager, token, access, clock, session = voting
        manager.submit_vote(ACCOUNTS[1], 1)
        manager.submit_vote(ACCOUNTS[5], 2)
        assert manager.session(1).participation == 3500001
        assert manager.proposal(1, 2).approvals == 1
