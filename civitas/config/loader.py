"""
Civitas TOML Configuration Loader

Loads civitas.toml with environment variable overrides, following the
dataclass + from_dict + from_file pattern.

Environment variable mapping:
    [logging] level                      → CIVITAS_LOG_LEVEL
    [session_rule] campaign_period       → CIVITAS_CAMPAIGN_PERIOD
    [session_rule] voting_period         → CIVITAS_VOTING_PERIOD
    [session_rule] execution_period      → CIVITAS_EXECUTION_PERIOD
    [session_rule] grace_period          → CIVITAS_GRACE_PERIOD
    [session_rule] period_offset         → CIVITAS_PERIOD_OFFSET
    [session_rule] new_proposal_threshold → CIVITAS_NEW_PROPOSAL_THRESHOLD
    [governance] manager_address         → CIVITAS_MANAGER_ADDRESS
    [governance] retention_count         → CIVITAS_RETENTION_COUNT
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    try:
        import tomli  # type: ignore[no-redef]
    except ImportError:
        tomli = None  # type: ignore[assignment]

from ..constants import (
    DEFAULT_CAMPAIGN_PERIOD,
    DEFAULT_EXECUTION_PERIOD,
    DEFAULT_EXECUTION_THRESHOLD,
    DEFAULT_GRACE_PERIOD,
    DEFAULT_MAJORITY,
    DEFAULT_MAX_PROPOSALS,
    DEFAULT_MAX_PROPOSALS_OPERATOR,
    DEFAULT_NEW_PROPOSAL_THRESHOLD,
    DEFAULT_OPEN_PROPOSALS,
    DEFAULT_PERIOD_OFFSET,
    DEFAULT_QUORUM,
    DEFAULT_VOTING_PERIOD,
    SESSION_RETENTION_COUNT,
)
from ..exceptions import CivitasException, ConfigurationError
from ..governance.requirements import ResolutionRequirement
from ..governance.rules import SessionRule
from ..logger import configure_logging

logger = logging.getLogger(__name__)

DEFAULT_MANAGER_ADDRESS = "0x000000000000000000000000000000000000C1C1"

# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass
class LoggingConfig:
    """[logging] section."""
    level: str = "INFO"
    file_output: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggingConfig":
        return cls(
            level=str(data.get("level", "INFO")).upper(),
            file_output=data.get("file_output", True),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("CIVITAS_LOG_LEVEL"):
            self.level = v.upper()

    def apply(self) -> None:
        """Reconfigure the rich logging system with this section."""
        configure_logging(level=self.level, file_output=bool(self.file_output))


@dataclass
class SessionRuleSection:
    """[session_rule] section."""
    campaign_period: int = DEFAULT_CAMPAIGN_PERIOD
    voting_period: int = DEFAULT_VOTING_PERIOD
    execution_period: int = DEFAULT_EXECUTION_PERIOD
    grace_period: int = DEFAULT_GRACE_PERIOD
    period_offset: int = DEFAULT_PERIOD_OFFSET
    open_proposals: int = DEFAULT_OPEN_PROPOSALS
    max_proposals: int = DEFAULT_MAX_PROPOSALS
    max_proposals_operator: int = DEFAULT_MAX_PROPOSALS_OPERATOR
    new_proposal_threshold: int = DEFAULT_NEW_PROPOSAL_THRESHOLD
    non_voting_addresses: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionRuleSection":
        return cls(
            campaign_period=data.get("campaign_period", DEFAULT_CAMPAIGN_PERIOD),
            voting_period=data.get("voting_period", DEFAULT_VOTING_PERIOD),
            execution_period=data.get("execution_period", DEFAULT_EXECUTION_PERIOD),
            grace_period=data.get("grace_period", DEFAULT_GRACE_PERIOD),
            period_offset=data.get("period_offset", DEFAULT_PERIOD_OFFSET),
            open_proposals=data.get("open_proposals", DEFAULT_OPEN_PROPOSALS),
            max_proposals=data.get("max_proposals", DEFAULT_MAX_PROPOSALS),
            max_proposals_operator=data.get("max_proposals_operator", DEFAULT_MAX_PROPOSALS_OPERATOR),
            new_proposal_threshold=data.get("new_proposal_threshold", DEFAULT_NEW_PROPOSAL_THRESHOLD),
            non_voting_addresses=list(data.get("non_voting_addresses", [])),
        )

    def apply_env(self) -> None:
        for name in (
            "campaign_period",
            "voting_period",
            "execution_period",
            "grace_period",
            "period_offset",
            "new_proposal_threshold",
        ):
            if v := os.environ.get(f"CIVITAS_{name.upper()}"):
                setattr(self, name, int(v))

    def to_rule(self) -> SessionRule:
        return SessionRule.create(
            campaign_period=self.campaign_period,
            voting_period=self.voting_period,
            execution_period=self.execution_period,
            grace_period=self.grace_period,
            period_offset=self.period_offset,
            open_proposals=self.open_proposals,
            max_proposals=self.max_proposals,
            max_proposals_operator=self.max_proposals_operator,
            new_proposal_threshold=self.new_proposal_threshold,
            non_voting_addresses=self.non_voting_addresses,
        )


@dataclass
class RequirementEntry:
    """One [[resolution_requirements]] table. An empty signature means any method."""
    target: str
    signature: str = ""
    majority: int = DEFAULT_MAJORITY
    quorum: int = DEFAULT_QUORUM
    execution_threshold: int = DEFAULT_EXECUTION_THRESHOLD

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RequirementEntry":
        if "target" not in data:
            raise ConfigurationError("[[resolution_requirements]] entry needs a target")
        return cls(
            target=data["target"],
            signature=data.get("signature", ""),
            majority=data.get("majority", DEFAULT_MAJORITY),
            quorum=data.get("quorum", DEFAULT_QUORUM),
            execution_threshold=data.get("execution_threshold", DEFAULT_EXECUTION_THRESHOLD),
        )

    @property
    def requirement(self) -> ResolutionRequirement:
        return ResolutionRequirement(
            majority=self.majority,
            quorum=self.quorum,
            execution_threshold=self.execution_threshold,
        )


@dataclass
class GovernanceSection:
    """[governance] section."""
    manager_address: str = DEFAULT_MANAGER_ADDRESS
    retention_count: int = SESSION_RETENTION_COUNT
    default_majority: int = DEFAULT_MAJORITY
    default_quorum: int = DEFAULT_QUORUM
    default_execution_threshold: int = DEFAULT_EXECUTION_THRESHOLD

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GovernanceSection":
        return cls(
            manager_address=data.get("manager_address", DEFAULT_MANAGER_ADDRESS),
            retention_count=data.get("retention_count", SESSION_RETENTION_COUNT),
            default_majority=data.get("default_majority", DEFAULT_MAJORITY),
            default_quorum=data.get("default_quorum", DEFAULT_QUORUM),
            default_execution_threshold=data.get(
                "default_execution_threshold", DEFAULT_EXECUTION_THRESHOLD
            ),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("CIVITAS_MANAGER_ADDRESS"):
            self.manager_address = v
        if v := os.environ.get("CIVITAS_RETENTION_COUNT"):
            self.retention_count = int(v)

    @property
    def default_requirement(self) -> ResolutionRequirement:
        return ResolutionRequirement(
            majority=self.default_majority,
            quorum=self.default_quorum,
            execution_threshold=self.default_execution_threshold,
        )


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


@dataclass
class CivitasConfig:
    """Complete engine configuration."""
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    session_rule: SessionRuleSection = field(default_factory=SessionRuleSection)
    resolution_requirements: List[RequirementEntry] = field(default_factory=list)
    governance: GovernanceSection = field(default_factory=GovernanceSection)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CivitasConfig":
        return cls(
            logging=LoggingConfig.from_dict(data.get("logging", {})),
            session_rule=SessionRuleSection.from_dict(data.get("session_rule", {})),
            resolution_requirements=[
                RequirementEntry.from_dict(entry)
                for entry in data.get("resolution_requirements", [])
            ],
            governance=GovernanceSection.from_dict(data.get("governance", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "CivitasConfig":
        """
        Load configuration from a TOML file.

        A missing file yields the defaults (with env overrides).
        """
        if tomli is None:
            raise ImportError(
                "tomli is required for TOML config loading. "
                "Install it: pip install tomli"
            )

        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s; using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            return cfg

        with open(path, "rb") as f:
            try:
                raw = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        return cfg

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.logging.apply_env()
        self.session_rule.apply_env()
        self.governance.apply_env()

    def validate(self) -> bool:
        """
        Validate every section.

        Raises:
            ConfigurationError: on invalid config
        """
        if self.logging.level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ConfigurationError(f"Invalid log level: {self.logging.level}")
        if self.governance.retention_count < 1:
            raise ConfigurationError("retention_count must be >= 1")
        try:
            self.session_rule.to_rule().validate()
        except CivitasException as e:
            raise ConfigurationError(f"Invalid [session_rule]: {e}") from e
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics, NOT for re-creating TOML)."""
        return {
            "logging": {
                "level": self.logging.level,
                "file_output": self.logging.file_output,
            },
            "session_rule": {
                "campaign_period": self.session_rule.campaign_period,
                "voting_period": self.session_rule.voting_period,
                "execution_period": self.session_rule.execution_period,
                "grace_period": self.session_rule.grace_period,
                "period_offset": self.session_rule.period_offset,
                "open_proposals": self.session_rule.open_proposals,
                "max_proposals": self.session_rule.max_proposals,
                "max_proposals_operator": self.session_rule.max_proposals_operator,
                "new_proposal_threshold": self.session_rule.new_proposal_threshold,
                "non_voting_addresses": list(self.session_rule.non_voting_addresses),
            },
            "resolution_requirements": [
                {
                    "target": e.target,
                    "signature": e.signature,
                    "majority": e.majority,
                    "quorum": e.quorum,
                    "execution_threshold": e.execution_threshold,
                }
                for e in self.resolution_requirements
            ],
            "governance": {
                "manager_address": self.governance.manager_address,
                "retention_count": self.governance.retention_count,
                "default_majority": self.governance.default_majority,
                "default_quorum": self.governance.default_quorum,
                "default_execution_threshold": self.governance.default_execution_threshold,
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> CivitasConfig:
    """
    Load engine configuration.

    Resolution order:
        1. Explicit *path* argument
        2. CIVITAS_CONFIG env var
        3. ./civitas.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("CIVITAS_CONFIG", "civitas.toml")

    return CivitasConfig.from_file(path)
