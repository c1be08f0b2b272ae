"""
Weighted Vote Tabulation

Implements:
  - 1 token = 1 vote, read from the ledger when the vote is cast
  - Bit-mask ballots: one ballot approves any subset of a session's proposals
  - At most one member of an alternative group per ballot
  - Sponsors voting on behalf of holders who named them
  - Operators voting on behalf of holders who are not self-managed
  - One ballot per voter per session (tracked through last-vote times)
  - Voting supply snapshot excluding non-voting addresses
"""

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from ..logger import get_logger
from ..constants import MAX_UINT64, NULL_ADDRESS
from .errors import (
    AlreadyVotedError,
    AlternativeConflictError,
    EmptyVoterListError,
    InvalidVoteMaskError,
    NoVotingWeightError,
    NotSponsorError,
    VotingClosedError,
)
from .proposals import ProposalRegistry
from .rules import SessionRuleConfig
from .sessions import Session, SessionState

logger = get_logger(__name__)


class WeightLedger(Protocol):
    """Read-only view of the token ledger used for voting weight."""

    def balance_of(self, holder: str) -> int: ...

    def total_supply(self) -> int: ...

    def is_self_managed(self, holder: str) -> bool: ...


# ══════════════════════════════════════════════════════════════════════
#  VOTE DATA
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Sponsor:
    """Delegate allowed to vote for a holder until *until*."""
    address: str
    until: int

    def is_active(self, now: int) -> bool:
        return now <= self.until

    def to_dict(self) -> Dict[str, Any]:
        return {"address": self.address, "until": self.until}


@dataclass(frozen=True)
class VoteRecord:
    """A ballot counted for *voter* in a session."""
    session_id: int
    voter: str
    mask: int
    weight: int
    cast_by: str
    timestamp: int

    @property
    def on_behalf(self) -> bool:
        return self.cast_by != self.voter

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "voter": self.voter,
            "mask": self.mask,
            "weight": self.weight,
            "castBy": self.cast_by,
            "timestamp": self.timestamp,
        }


# ══════════════════════════════════════════════════════════════════════
#  TABULATOR
# ══════════════════════════════════════════════════════════════════════

class VoteTabulator:
    """
    Records ballots and aggregates approvals and participation.

    Every check runs against committed state at call time; a ballot batch is
    fully validated before any approval is added.
    """

    def __init__(
        self,
        ledger: WeightLedger,
        registry: ProposalRegistry,
        rule_config: SessionRuleConfig,
    ):
        self._ledger = ledger
        self._registry = registry
        self._rules = rule_config
        self._sponsors: Dict[str, Sponsor] = {}
        self._last_votes: Dict[str, int] = {}
        self._votes: Dict[int, Dict[str, VoteRecord]] = {}
        self.update_non_voting((), rule_config.rule.non_voting_addresses, now=0)

    # ── Sponsors ──────────────────────────────────────────────────────

    def define_sponsor(self, voter: str, address: str, until: int) -> Sponsor:
        sponsor = Sponsor(address=address, until=until)
        self._sponsors[voter] = sponsor
        logger.info(f"Sponsor of {voter} → {address} until {until}")
        return sponsor

    def sponsor_of(self, voter: str) -> Sponsor:
        return self._sponsors.get(voter, Sponsor(address=NULL_ADDRESS, until=0))

    # ── Last votes ────────────────────────────────────────────────────

    def last_vote_of(self, voter: str) -> int:
        return self._last_votes.get(voter, 0)

    def update_non_voting(
        self,
        previous: Iterable[str],
        current: Iterable[str],
        now: int,
    ) -> None:
        """
        Mark non-voting addresses as having voted forever; addresses leaving
        the list get their last vote reset to *now*.
        """
        current = set(current)
        for address in set(previous) - current:
            self._last_votes[address] = now
        for address in current:
            self._last_votes[address] = MAX_UINT64

    # ── Ballots ───────────────────────────────────────────────────────

    def vote_of(self, session_id: int, voter: str) -> Optional[VoteRecord]:
        return self._votes.get(session_id, {}).get(voter)

    def votes(self, session_id: int) -> List[VoteRecord]:
        return list(self._votes.get(session_id, {}).values())

    def _check_mask(self, session: Session, mask: int) -> List[int]:
        count = self._registry.count(session.id)
        if mask <= 0 or mask >= 1 << count:
            raise InvalidVoteMaskError(
                f"Mask {mask} does not select proposals within 1..{count}"
            )
        selected = [pid for pid in range(1, count + 1) if mask & (1 << (pid - 1))]
        seen_groups = set()
        for pid in selected:
            proposal = self._registry.get(session.id, pid)
            if proposal.cancelled:
                raise InvalidVoteMaskError(f"Proposal {pid} is cancelled")
            reference = self._registry.get(session.id, proposal.group_id)
            if reference.alternatives_mask & ~reference.bit or proposal.alternative_of:
                if proposal.group_id in seen_groups:
                    raise AlternativeConflictError(
                        f"Mask {mask} selects several alternatives of proposal "
                        f"{proposal.group_id}"
                    )
                seen_groups.add(proposal.group_id)
        return selected

    def _check_voter(self, session: Session, voter: str) -> int:
        if self.last_vote_of(voter) >= session.vote_at:
            raise AlreadyVotedError(f"{voter} already voted in session #{session.id}")
        weight = self._ledger.balance_of(voter)
        if weight <= 0:
            raise NoVotingWeightError(f"{voter} has no voting weight")
        return weight

    def _check_delegation(self, caller: str, voter: str, now: int, is_operator: bool) -> None:
        if voter == caller:
            return
        sponsor = self._sponsors.get(voter)
        if sponsor is not None and sponsor.address == caller and sponsor.is_active(now):
            return
        if is_operator and not self._ledger.is_self_managed(voter):
            return
        raise NotSponsorError(f"{caller} cannot vote on behalf of {voter}")

    def _snapshot_voting_supply(self, session: Session) -> None:
        if session.participation:
            return
        excluded = sum(
            self._ledger.balance_of(address)
            for address in self._rules.rule.non_voting_addresses
        )
        session.voting_supply = max(session.total_supply - excluded, 0)

    def submit(
        self,
        session: Session,
        state: SessionState,
        caller: str,
        voters: Sequence[str],
        mask: int,
        now: int,
        is_operator: bool = False,
    ) -> List[VoteRecord]:
        """
        Count one ballot per voter.

        Args:
            session:     Current session
            state:       Its state at *now*
            caller:      Address submitting the ballots
            voters:      Holders whose weight is counted
            mask:        Proposal bits approved
            is_operator: Whether *caller* holds the operator role
        """
        if state != SessionState.VOTING:
            raise VotingClosedError(f"Session #{session.id} is {state.name}, not VOTING")
        if not voters:
            raise EmptyVoterListError("No voters supplied")

        selected = self._check_mask(session, mask)

        weights: List[Tuple[str, int]] = []
        batch = set()
        for voter in voters:
            if voter in batch:
                raise AlreadyVotedError(f"{voter} appears twice in the ballot batch")
            batch.add(voter)
            self._check_delegation(caller, voter, now, is_operator)
            weights.append((voter, self._check_voter(session, voter)))

        self._snapshot_voting_supply(session)

        records = []
        session_votes = self._votes.setdefault(session.id, {})
        for voter, weight in weights:
            for pid in selected:
                self._registry.get(session.id, pid).approvals += weight
            session.participation += weight
            self._last_votes[voter] = now
            record = VoteRecord(
                session_id=session.id,
                voter=voter,
                mask=mask,
                weight=weight,
                cast_by=caller,
                timestamp=now,
            )
            session_votes[voter] = record
            records.append(record)
            logger.info(
                f"Vote: {voter} → mask {mask} in session #{session.id} "
                f"(weight={weight}, by={caller})"
            )
        return records

    def drop_session(self, session_id: int) -> None:
        self._votes.pop(session_id, None)

    # ── Journal ───────────────────────────────────────────────────────

    def snapshot(self) -> Tuple[Dict[str, Sponsor], Dict[str, int], Dict[int, Dict[str, VoteRecord]]]:
        return dict(self._sponsors), dict(self._last_votes), copy.deepcopy(self._votes)

    def revert(self, snapshot) -> None:
        sponsors, last_votes, votes = snapshot
        self._sponsors = dict(sponsors)
        self._last_votes = dict(last_votes)
        self._votes = copy.deepcopy(votes)

    def __repr__(self) -> str:
        return f"<VoteTabulator sessions={len(self._votes)} sponsors={len(self._sponsors)}>"
