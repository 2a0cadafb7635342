"""Exception types raised by the XIRR solver and its collaborators.

Every failure is surfaced to the caller as one of these types. The solver
never returns an approximate rate in place of an error.
"""

from __future__ import annotations


class XirrError(Exception):
    """Base class for all errors raised by this package."""


class InvalidInputError(XirrError, ValueError):
    """The caller supplied a series or parameters the solver cannot use."""


class ConvergenceError(XirrError):
    """Newton-Raphson did not reach the tolerance within the iteration limit."""

    def __init__(self, message: str, iterations: int = 0, last_rate: float | None = None):
        super().__init__(message)
        self.iterations = iterations
        self.last_rate = last_rate


class NonFiniteIterateError(ConvergenceError):
    """The derivative vanished or an iterate became nan/inf."""


class LoanNotFoundError(XirrError):
    def __init__(self, loan_id: int):
        super().__init__(f"loan {loan_id} does not exist")
        self.loan_id = loan_id


class ConcurrencyConflictError(XirrError):
    """The loan row changed between reading its version and writing the rate."""

    def __init__(self, loan_id: int, expected_version: int):
        super().__init__(
            f"loan {loan_id} was modified concurrently (expected version {expected_version})"
        )
        self.loan_id = loan_id
        self.expected_version = expected_version


class PersistenceError(XirrError):
    """Unexpected database failure while updating a loan."""
