"""
Civitas Constants

This module consolidates all global constants and environment configuration
used throughout the codebase. Constants are organized by category for easy
reference and maintenance.
"""
import ast
from dotenv import dotenv_values
from eth_utils import to_checksum_address

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'True',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# WARNING: THE PROTOCOL VALUES BELOW ARE SHARED WITH EVERY PEER THAT INDEXES THE
# GOVERNANCE EVENT LOG. CHANGING THEM ALTERS THRESHOLDS, SESSION CADENCE AND THE
# BIT LAYOUT OF VOTES, WHICH EXISTING CLIENTS WILL REJECT.

# ==================================================================================
# CORE PROTOCOL CONSTANTS
# ==================================================================================
CIVITAS_VERSION = '1.0.0'
PERCENT = 1_000_000  # Requirements are expressed in parts-per-million
MAX_UINT64 = 2 ** 64 - 1


# ==================================================================================
# SESSION PERIODS (seconds)
# ==================================================================================
MIN_PERIOD_LENGTH = 300  # 5 minutes
MAX_PERIOD_LENGTH = 3652500 * 24 * 3600  # ~10000 years

DEFAULT_CAMPAIGN_PERIOD = 5 * 24 * 3600
DEFAULT_VOTING_PERIOD = 2 * 24 * 3600
DEFAULT_EXECUTION_PERIOD = 1 * 24 * 3600
DEFAULT_GRACE_PERIOD = 6 * 24 * 3600
DEFAULT_PERIOD_OFFSET = 2 * 24 * 3600


# ==================================================================================
# PROPOSAL LIMITS
# ==================================================================================
MAX_PROPOSALS = 255  # Width of the vote bit-set
DEFAULT_OPEN_PROPOSALS = 5
DEFAULT_MAX_PROPOSALS = 20
DEFAULT_MAX_PROPOSALS_OPERATOR = 25
DEFAULT_NEW_PROPOSAL_THRESHOLD = 1


# ==================================================================================
# RESOLUTION REQUIREMENTS (ppm)
# ==================================================================================
DEFAULT_MAJORITY = 500_000  # 50%
DEFAULT_QUORUM = 200_000  # 20%
DEFAULT_EXECUTION_THRESHOLD = 1


# ==================================================================================
# RETENTION
# ==================================================================================
# Sessions kept in storage before the oldest one must be archived
SESSION_RETENTION_COUNT = 10


# ==================================================================================
# SENTINEL ADDRESSES AND SELECTORS
# ==================================================================================
NULL_ADDRESS = to_checksum_address("0x" + "00" * 20)
# ASCII "AnyTarget" right-padded to 20 bytes
ANY_TARGET = to_checksum_address("0x" + b"AnyTarget".hex().ljust(40, "0"))
# ASCII "AnyM"
ANY_METHOD = b"AnyM"


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
DEFAULTS = dict(LOGGER_DEFAULTS)
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v

for key, default_raw in DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
