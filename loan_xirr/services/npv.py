"""Net present value of dated cash flows and its derivative.

Both functions discount every flow back to the date of the *first* element
of the series (index 0), which need not be the earliest date. Exponents are
measured in years of 365.25 days so leap days are absorbed without a
calendar-aware day count.

Amounts must already be floats; converting from ``Decimal`` happens once in
:func:`loan_xirr.services.xirr.to_cash_flows`, not here.
"""

from __future__ import annotations

import math
from datetime import date, timedelta
from typing import NamedTuple, Sequence

DAYS_PER_YEAR = 365.25
_ONE_DAY = timedelta(days=1)


class CashFlow(NamedTuple):
    date: date
    amount: float


def year_fraction(anchor: date, when: date) -> float:
    """Return the signed number of 365.25-day years from ``anchor`` to ``when``."""
    return ((when - anchor) / _ONE_DAY) / DAYS_PER_YEAR


def _pow(base: float, exponent: float) -> float:
    # math.pow raises where IEEE arithmetic would give nan or inf.
    if base == 0.0 and exponent < 0.0:
        return math.inf
    try:
        return math.pow(base, exponent)
    except ValueError:
        return math.nan
    except OverflowError:
        return math.inf


def _div(numerator: float, denominator: float) -> float:
    if denominator == 0.0:
        return math.nan if numerator == 0.0 else math.copysign(math.inf, numerator)
    return numerator / denominator


def xnpv(rate: float, cash_flows: Sequence[CashFlow]) -> float:
    """Calculate the net present value of ``cash_flows`` at ``rate``."""
    anchor = cash_flows[0].date
    result = 0.0
    for when, amount in cash_flows:
        result += _div(amount, _pow(1.0 + rate, year_fraction(anchor, when)))
    return result


def dxnpv(rate: float, cash_flows: Sequence[CashFlow]) -> float:
    """Return the first derivative of :func:`xnpv` with respect to ``rate``.

    Each term is ``-amount * t / (1 + rate) ** (2 * t)`` where ``t`` is the
    year fraction from the anchor date. The anchor term has ``t == 0`` and
    contributes nothing.
    """
    anchor = cash_flows[0].date
    result = 0.0
    for when, amount in cash_flows:
        t = year_fraction(anchor, when)
        result -= _div(amount * t, _pow(1.0 + rate, 2.0 * t))
    return result
