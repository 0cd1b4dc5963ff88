"""
ledger/errors.py

Error kinds raised by ledger operations.

Every failure aborts the whole operation (the store transaction is rolled
back) and reaches the caller unchanged.  ``code`` is a stable numeric
identifier a calling layer can map onto its own wire format.
"""


class LedgerError(Exception):
    """Base class for all ledger failures."""
    code = 0


class NotFound(LedgerError):
    """Referenced patient, provider or permission row does not exist."""
    code = 101


class Unauthorized(LedgerError):
    """Caller identity does not match the row's authorization owner."""
    code = 102


class OwnerOnly(Unauthorized):
    """Admin operation attempted by an identity other than the owner."""
    code = 100


class AccessDenied(LedgerError):
    """No granted permission for the attempted record write."""
    code = 103


class AlreadyExists(LedgerError):
    """Duplicate patient or provider registration."""
    code = 104


class InvalidAccessLevel(LedgerError, ValueError):
    """Access level outside the grantable tiers 1..3."""
    code = 105
