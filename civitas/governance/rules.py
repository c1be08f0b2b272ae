"""
Session Rules

Provides:
  - SessionRule:        tunable session parameters (frozen, validated)
  - RuleVersion:        immutable snapshot of an accepted rule update
  - SessionRuleConfig:  versioned holder injected into the scheduler,
                        registry and tabulator
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from ..logger import get_logger
from ..addresses import normalize_addresses
from ..constants import (
    DEFAULT_CAMPAIGN_PERIOD,
    DEFAULT_EXECUTION_PERIOD,
    DEFAULT_GRACE_PERIOD,
    DEFAULT_MAX_PROPOSALS,
    DEFAULT_MAX_PROPOSALS_OPERATOR,
    DEFAULT_NEW_PROPOSAL_THRESHOLD,
    DEFAULT_OPEN_PROPOSALS,
    DEFAULT_PERIOD_OFFSET,
    DEFAULT_VOTING_PERIOD,
    MAX_PERIOD_LENGTH,
    MAX_PROPOSALS,
    MIN_PERIOD_LENGTH,
)
from .errors import InvalidSessionRuleError

logger = get_logger(__name__)


# ══════════════════════════════════════════════════════════════════════
#  SESSION RULE
# ══════════════════════════════════════════════════════════════════════

# (field, error code) for the four bounded periods
_PERIOD_CODES = (
    ("campaign_period", "VD03"),
    ("voting_period", "VD04"),
    ("execution_period", "VD05"),
    ("grace_period", "VD06"),
)


@dataclass(frozen=True)
class SessionRule:
    """
    Parameters governing session cadence and proposal admission.

    Fields:
        campaign_period:        Seconds between campaign start and vote start
        voting_period:          Seconds votes are accepted
        execution_period:       Seconds reserved for executing resolutions
        grace_period:           Extra seconds resolutions remain executable
        period_offset:          Shift applied to the aligned session cadence
        open_proposals:         Proposals admitted at the base threshold
        max_proposals:          Cap for regular proposers
        max_proposals_operator: Cap for operators
        new_proposal_threshold: Base weight required to propose
        non_voting_addresses:   Holders whose weight is excluded from voting
    """
    campaign_period: int = DEFAULT_CAMPAIGN_PERIOD
    voting_period: int = DEFAULT_VOTING_PERIOD
    execution_period: int = DEFAULT_EXECUTION_PERIOD
    grace_period: int = DEFAULT_GRACE_PERIOD
    period_offset: int = DEFAULT_PERIOD_OFFSET
    open_proposals: int = DEFAULT_OPEN_PROPOSALS
    max_proposals: int = DEFAULT_MAX_PROPOSALS
    max_proposals_operator: int = DEFAULT_MAX_PROPOSALS_OPERATOR
    new_proposal_threshold: int = DEFAULT_NEW_PROPOSAL_THRESHOLD
    non_voting_addresses: Tuple[str, ...] = ()

    @property
    def period_length(self) -> int:
        """Length of one full session cycle."""
        return (
            self.campaign_period
            + self.voting_period
            + self.execution_period
            + self.grace_period
        )

    def validate(self) -> "SessionRule":
        """
        Check protocol bounds.

        Raises InvalidSessionRuleError carrying the code of the first
        violated bound.
        """
        for name, code in _PERIOD_CODES:
            value = getattr(self, name)
            if not MIN_PERIOD_LENGTH <= value <= MAX_PERIOD_LENGTH:
                raise InvalidSessionRuleError(
                    f"{name}={value} outside [{MIN_PERIOD_LENGTH}, {MAX_PERIOD_LENGTH}]",
                    code=code,
                )
        if not 0 <= self.period_offset <= MAX_PERIOD_LENGTH:
            raise InvalidSessionRuleError(
                f"period_offset={self.period_offset} above {MAX_PERIOD_LENGTH}",
                code="VD07",
            )
        if self.open_proposals > self.max_proposals:
            raise InvalidSessionRuleError(
                f"open_proposals={self.open_proposals} > max_proposals={self.max_proposals}",
                code="VD08",
            )
        if self.max_proposals > self.max_proposals_operator:
            raise InvalidSessionRuleError(
                f"max_proposals={self.max_proposals} > "
                f"max_proposals_operator={self.max_proposals_operator}",
                code="VD09",
            )
        if self.max_proposals_operator > MAX_PROPOSALS:
            raise InvalidSessionRuleError(
                f"max_proposals_operator={self.max_proposals_operator} > {MAX_PROPOSALS}",
                code="VD10",
            )
        if min(self.open_proposals, self.max_proposals, self.new_proposal_threshold) < 0:
            raise InvalidSessionRuleError("Proposal limits cannot be negative", code="VD08")
        if len(set(self.non_voting_addresses)) != len(self.non_voting_addresses):
            raise InvalidSessionRuleError("Duplicate non-voting address", code="VD12")
        return self

    @classmethod
    def create(cls, **kwargs: Any) -> "SessionRule":
        """Build a rule with normalized addresses (not yet validated)."""
        if "non_voting_addresses" in kwargs:
            kwargs["non_voting_addresses"] = normalize_addresses(
                kwargs["non_voting_addresses"]
            )
        return cls(**kwargs)

    def replace(self, **changes: Any) -> "SessionRule":
        if "non_voting_addresses" in changes:
            changes["non_voting_addresses"] = normalize_addresses(
                changes["non_voting_addresses"]
            )
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
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


# ══════════════════════════════════════════════════════════════════════
#  VERSIONED CONFIG
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RuleVersion:
    """An accepted rule, as it stood from *updated_at* on."""
    version: int
    rule: SessionRule
    updated_at: int = 0
    updated_by: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "rule": self.rule.to_dict(),
            "updatedAt": self.updated_at,
            "updatedBy": self.updated_by,
        }


class SessionRuleConfig:
    """
    Holder of the active SessionRule.

    Updates never mutate a rule in place: each accepted rule is appended as a
    new RuleVersion, so sessions can record which version scheduled them and
    rule changes stay auditable.
    """

    def __init__(self, rule: Optional[SessionRule] = None):
        initial = (rule or SessionRule()).validate()
        self._versions: List[RuleVersion] = [RuleVersion(version=1, rule=initial)]

    @property
    def rule(self) -> SessionRule:
        return self._versions[-1].rule

    @property
    def version(self) -> int:
        return self._versions[-1].version

    @property
    def history(self) -> List[RuleVersion]:
        return list(self._versions)

    def rule_at_version(self, version: int) -> SessionRule:
        if not 1 <= version <= len(self._versions):
            raise KeyError(f"Unknown rule version {version}")
        return self._versions[version - 1].rule

    def update(self, rule: SessionRule, updated_at: int = 0,
               updated_by: Optional[str] = None) -> RuleVersion:
        """Validate and activate *rule* as a new version."""
        rule.validate()
        entry = RuleVersion(
            version=self.version + 1,
            rule=rule,
            updated_at=updated_at,
            updated_by=updated_by,
        )
        self._versions.append(entry)
        logger.info(f"Session rule v{entry.version} activated by {updated_by}")
        return entry

    # ── Journal ───────────────────────────────────────────────────────

    def snapshot(self) -> List[RuleVersion]:
        return list(self._versions)

    def revert(self, snapshot: List[RuleVersion]) -> None:
        self._versions = list(snapshot)

    def __repr__(self) -> str:
        return f"<SessionRuleConfig v{self.version} period={self.rule.period_length}s>"
