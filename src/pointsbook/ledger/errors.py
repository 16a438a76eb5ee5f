"""Domain error taxonomy for ledger and round operations.

Every error carries a stable ``code`` and a ``context`` dict with the values
that explain the failure (current vs requested), so callers and the HTTP
layer can report *why* without parsing messages.
"""

from __future__ import annotations

from typing import Any


class LedgerError(Exception):
    """Base class for all domain failures."""

    code = "ledger_error"

    def __init__(self, message: str, **context: Any) -> None:  # noqa: ANN401
        super().__init__(message)
        self.message = message
        self.context = context


class NotFound(LedgerError):
    """Referenced user, play or round does not exist."""

    code = "not_found"


class InsufficientBalance(LedgerError):
    """Mutation would drive a points balance below zero."""

    code = "insufficient_balance"


class InsufficientAllowance(LedgerError):
    """Admin allowance cannot cover the requested credit."""

    code = "insufficient_allowance"


class InvalidInput(LedgerError):
    """Malformed or out-of-range input. Raised before any store call."""

    code = "invalid_input"


class TransactionConflict(LedgerError):
    """Atomic unit kept losing races after the bounded retries."""

    code = "transaction_conflict"


class StoreUnavailable(LedgerError):
    """Underlying store is unreachable."""

    code = "store_unavailable"


class Forbidden(LedgerError):
    """Actor's role does not permit the operation on the target."""

    code = "forbidden"


class AuthenticationError(LedgerError):
    """Credentials or token could not be verified."""

    code = "authentication_failed"
