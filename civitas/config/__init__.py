"""
Civitas Configuration

Loads civitas.toml; environment variables override TOML values.
"""

from .loader import (
    CivitasConfig,
    LoggingConfig,
    SessionRuleSection,
    RequirementEntry,
    GovernanceSection,
    load_config,
)

__all__ = [
    "CivitasConfig",
    "LoggingConfig",
    "SessionRuleSection",
    "RequirementEntry",
    "GovernanceSection",
    "load_config",
]
