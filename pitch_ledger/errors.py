"""Error types raised by the ledger and betting engine."""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all pitch-ledger errors."""


class InvalidAmount(LedgerError):
    """A funds amount was non-numeric, non-finite or not positive."""


class InsufficientFunds(LedgerError):
    """A withdrawal or stake exceeds the current balance."""


class InvalidMatch(LedgerError):
    """The match does not exist or is in the wrong state for the operation."""


class OddsUnavailable(LedgerError):
    """No odds are published for the selected side."""


class StorageError(LedgerError):
    """The underlying database failed; the whole unit was rolled back."""
