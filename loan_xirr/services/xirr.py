"""XIRR solver.

Newton-Raphson over :func:`~loan_xirr.services.npv.xnpv` using the closed-form
derivative :func:`~loan_xirr.services.npv.dxnpv`. Iteration stops when two
successive iterates differ by less than ``tolerance``; the residual NPV is not
checked. A derivative of zero, a non-finite iterate or running out of
iterations all raise, so callers never receive a rate that did not converge.

Sign conventions follow the loan ledger: money paid out is negative and money
received is positive. The first element of the series is the anchor date.
"""

from __future__ import annotations

import math
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Iterable, NamedTuple, Sequence, Tuple

from ..errors import ConvergenceError, InvalidInputError, NonFiniteIterateError
from .npv import CashFlow, dxnpv, xnpv

DEFAULT_GUESS = 0.1
DEFAULT_TOLERANCE = 0.001
DEFAULT_MAX_ITERATIONS = 100


class XirrResult(NamedTuple):
    rate: float
    iterations: int


def _to_float(amount) -> float:
    if isinstance(amount, bool):
        raise InvalidInputError(f"cash flow amount must be numeric, got {amount!r}")
    try:
        value = float(amount)
    except (TypeError, ValueError) as exc:
        raise InvalidInputError(f"cash flow amount must be numeric, got {amount!r}") from exc
    if not math.isfinite(value):
        raise InvalidInputError(f"cash flow amount must be finite, got {amount!r}")
    return value


def _as_naive_utc(d: date) -> datetime:
    # aware and naive datetimes cannot be subtracted from each other
    if not isinstance(d, datetime):
        return datetime.combine(d, time.min)
    if d.tzinfo is not None and d.utcoffset() is not None:
        return d.astimezone(timezone.utc).replace(tzinfo=None)
    return d


def to_cash_flows(dates: Sequence[date], amounts: Sequence[float | Decimal]) -> list[CashFlow]:
    """Build a cash-flow series from parallel ``dates`` and ``amounts``.

    This is the single place where fixed-point amounts become floats. The
    input order is kept, so ``dates[0]`` becomes the anchor date. Plain dates
    are promoted to midnight datetimes when the series mixes both kinds, and
    timezone-aware datetimes are converted to naive UTC.
    """
    dates = list(dates)
    amounts = list(amounts)
    if len(dates) != len(amounts):
        raise InvalidInputError(
            f"dates and amounts differ in length ({len(dates)} != {len(amounts)})"
        )
    if not dates:
        raise InvalidInputError("cash flow series is empty")
    for d in dates:
        if not isinstance(d, date):
            raise InvalidInputError(f"cash flow date must be a date, got {d!r}")
    if any(isinstance(d, datetime) for d in dates):
        dates = [_as_naive_utc(d) for d in dates]
    return [CashFlow(d, _to_float(a)) for d, a in zip(dates, amounts)]


def as_cash_flows(cash_flows: Iterable[Tuple[date, float | Decimal]]) -> list[CashFlow]:
    """Normalise an iterable of ``(date, amount)`` pairs into a series."""
    pairs = list(cash_flows)
    try:
        dates = [d for d, _ in pairs]
        amounts = [a for _, a in pairs]
    except (TypeError, ValueError) as exc:
        raise InvalidInputError("cash flows must be (date, amount) pairs") from exc
    return to_cash_flows(dates, amounts)


def _check_parameters(guess: float, tolerance: float, max_iterations: int) -> None:
    if not isinstance(guess, (int, float)) or not math.isfinite(guess):
        raise InvalidInputError(f"guess must be a finite number, got {guess!r}")
    if not isinstance(tolerance, (int, float)) or not math.isfinite(tolerance) or tolerance <= 0:
        raise InvalidInputError(f"tolerance must be a positive finite number, got {tolerance!r}")
    if isinstance(max_iterations, bool) or not isinstance(max_iterations, int) or max_iterations < 1:
        raise InvalidInputError(f"max_iterations must be a positive integer, got {max_iterations!r}")


def newton_xirr(
    cash_flows: Iterable[Tuple[date, float | Decimal]],
    guess: float = DEFAULT_GUESS,
    tolerance: float = DEFAULT_TOLERANCE,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> XirrResult:
    """Run Newton-Raphson and return the rate with the iterations it took.

    Raises
    ------
    InvalidInputError
        The series is empty or malformed, or a parameter is out of range.
    NonFiniteIterateError
        The derivative is zero or non-finite, or an iterate is nan/inf.
    ConvergenceError
        ``max_iterations`` steps did not bring two iterates within
        ``tolerance`` of each other.
    """
    _check_parameters(guess, tolerance, max_iterations)
    series = as_cash_flows(cash_flows)

    x0 = float(guess)
    for i in range(1, max_iterations + 1):
        f = xnpv(x0, series)
        fp = dxnpv(x0, series)
        if fp == 0.0 or not math.isfinite(fp):
            raise NonFiniteIterateError(
                f"derivative is {fp!r} at rate {x0!r}", iterations=i, last_rate=x0
            )
        x1 = x0 - f / fp
        if not math.isfinite(x1):
            raise NonFiniteIterateError(
                f"iterate became {x1!r} after rate {x0!r}", iterations=i, last_rate=x0
            )
        if abs(x1 - x0) < tolerance:
            return XirrResult(x1, i)
        x0 = x1

    raise ConvergenceError(
        f"calculation did not converge within {max_iterations} iterations",
        iterations=max_iterations,
        last_rate=x0,
    )


def solve_xirr(
    cash_flows: Iterable[Tuple[date, float | Decimal]],
    guess: float = DEFAULT_GUESS,
    tolerance: float = DEFAULT_TOLERANCE,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> float:
    """Return the annualized rate at which the NPV of ``cash_flows`` is zero."""
    return newton_xirr(cash_flows, guess, tolerance, max_iterations).rate


def xirr(
    amounts: Sequence[float | Decimal],
    dates: Sequence[date],
    guess: float = DEFAULT_GUESS,
    tolerance: float = DEFAULT_TOLERANCE,
    max_iterations: int = DEFAULT_MAX_ITERATIONS,
) -> float:
    """Parallel-sequence form of :func:`solve_xirr`."""
    return solve_xirr(to_cash_flows(dates, amounts), guess, tolerance, max_iterations)
