"""
Governance Errors

Every rejected call raises a GovernanceError subclass carrying:
  - code: stable identifier clients branch on ("VD21", "VM01", ...)
  - kind: failure category (authorization, timing, validation, ...)

Codes are part of the compatibility surface and never change meaning.
"""

from enum import Enum
from typing import Optional

from ..exceptions import CivitasException


# ══════════════════════════════════════════════════════════════════════
#  ERROR KINDS
# ══════════════════════════════════════════════════════════════════════

class ErrorKind(str, Enum):
    """Failure category of a rejected call."""
    AUTHORIZATION = "authorization"    # caller lacks weight or role
    TIMING = "timing"                  # wrong session state for the call
    VALIDATION = "validation"          # malformed ids, masks, parameters
    DOUBLE_ACTION = "double_action"    # voting twice, executing twice
    ORDERING = "ordering"              # dependency not yet resolved
    CAPACITY = "capacity"              # proposal caps exceeded
    EXTERNAL_CALL = "external_call"    # dispatched action failed


# ══════════════════════════════════════════════════════════════════════
#  BASE
# ══════════════════════════════════════════════════════════════════════

class GovernanceError(CivitasException):
    """Base governance exception."""
    code: str = "VD00"
    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str = "", code: Optional[str] = None):
        if code is not None:
            self.code = code
        super().__init__(f"{self.code}: {message}" if message else self.code)
        self.message = message

    def to_dict(self):
        return {
            "code": self.code,
            "kind": self.kind.value,
            "error": type(self).__name__,
            "message": self.message,
        }


# ══════════════════════════════════════════════════════════════════════
#  VALIDATION
# ══════════════════════════════════════════════════════════════════════

class UnknownSessionError(GovernanceError):
    """Session id does not exist or nothing is left to archive."""
    code = "VD01"


class UnknownProposalError(GovernanceError):
    """Proposal id does not exist in the session."""
    code = "VD02"


class InvalidSessionRuleError(GovernanceError):
    """Session rule outside protocol bounds (VD03-VD10, VD12)."""
    code = "VD03"


class InvalidRequirementError(GovernanceError):
    """Requirement batch malformed (VD13 lengths, VD18 ppm bounds)."""
    code = "VD13"


class DefaultRequirementError(GovernanceError):
    """The universal default requirement cannot be cleared."""
    code = "VD17"


class ExecutionThresholdError(GovernanceError):
    """Approvals below the proposal's execution threshold."""
    code = "VD27"


class ProposalNotApprovedError(GovernanceError):
    """Proposal is rejected or cancelled."""
    code = "VD29"


class InvalidDependencyError(GovernanceError):
    """dependsOn references a missing proposal, itself, or forms a cycle."""
    code = "VD34"


class InvalidAlternativeError(GovernanceError):
    """alternativeOf references a missing, cancelled or nested proposal."""
    code = "VD35"


class EmptyVoterListError(GovernanceError):
    """No voters supplied."""
    code = "VD37"


class AlternativeConflictError(GovernanceError):
    """Vote selects more than one member of an alternative group."""
    code = "VD41"


class InvalidVoteMaskError(GovernanceError):
    """Vote mask empty, beyond proposalsCount, or selecting a cancelled proposal."""
    code = "VD42"


class EmptyResolutionListError(GovernanceError):
    """No resolution ids supplied."""
    code = "VD45"


# ══════════════════════════════════════════════════════════════════════
#  AUTHORIZATION
# ══════════════════════════════════════════════════════════════════════

class AuthorizationError(GovernanceError):
    """Caller lacks the required weight or role."""
    kind = ErrorKind.AUTHORIZATION


class InsufficientWeightError(AuthorizationError):
    """Proposer weight below newProposalThreshold."""
    code = "VD21"


class NotAuthorError(AuthorizationError):
    """Only the author may update or cancel a proposal."""
    code = "VD23"


class ExecutionNotAllowedError(AuthorizationError):
    """Caller is neither an operator nor a token holder."""
    code = "VD26"


class NotSponsorError(AuthorizationError):
    """Caller may not vote on behalf of this voter."""
    code = "VD38"


class NoVotingWeightError(AuthorizationError):
    """Voter holds no weight."""
    code = "VD40"


class NotOperatorError(AuthorizationError):
    """Caller is not an operator."""
    code = "VM01"


class NotOwnerError(AuthorizationError):
    """Caller does not own the voter it acts for."""
    code = "VM05"


# ══════════════════════════════════════════════════════════════════════
#  TIMING
# ══════════════════════════════════════════════════════════════════════

class TimingError(GovernanceError):
    """Call made in the wrong session state."""
    kind = ErrorKind.TIMING


class ProposalDefinitionClosedError(TimingError):
    """Current session is voting or executing; no proposal can be added."""
    code = "VD11"


class ProposalLockedError(TimingError):
    """Proposal can no longer be updated or cancelled."""
    code = "VD22"


class SessionClosedError(TimingError):
    """Session is closed; resolutions can no longer be executed."""
    code = "VD25"


class ExecutionNotOpenError(TimingError):
    """Current session has not reached its execution period."""
    code = "VD28"


class SessionNotArchivableError(TimingError):
    """Oldest session is not closed yet."""
    code = "VD33"


class VotingClosedError(TimingError):
    """Votes are only accepted during the voting period."""
    code = "VD36"


# ══════════════════════════════════════════════════════════════════════
#  DOUBLE ACTION / ORDERING / CAPACITY / EXTERNAL
# ══════════════════════════════════════════════════════════════════════

class AlreadyVotedError(GovernanceError):
    """Voter already voted this session or is a non-voting address."""
    code = "VD39"
    kind = ErrorKind.DOUBLE_ACTION


class AlreadyExecutedError(GovernanceError):
    """Resolution was already executed."""
    code = "VD32"
    kind = ErrorKind.DOUBLE_ACTION


class DependencyNotResolvedError(GovernanceError):
    """dependsOn proposal must be resolved first."""
    code = "VD30"
    kind = ErrorKind.ORDERING


class TooManyProposalsError(GovernanceError):
    """Session proposal cap reached."""
    code = "VD24"
    kind = ErrorKind.CAPACITY


class ExternalCallError(GovernanceError):
    """Dispatched resolution action failed."""
    code = "VD31"
    kind = ErrorKind.EXTERNAL_CALL
