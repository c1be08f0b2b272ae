"""
Civitas Exceptions

Base exception classes shared across the package. Governance failures with
stable error codes live in civitas.governance.errors.
"""


class CivitasException(Exception):
    """Base exception for Civitas."""
    pass


class ConfigurationError(CivitasException):
    """Configuration error."""
    pass


class InvalidAddressError(CivitasException):
    """Invalid address format."""
    pass
