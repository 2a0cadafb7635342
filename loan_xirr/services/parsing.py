"""Parsing helpers for request payloads.

  * ``parse_money``: parse a monetary value (number or string) into a ``Decimal``.
  * ``parse_date_iso``: parse an ISO ``YYYY-MM-DD`` date, or a full ISO datetime.
  * ``parse_cash_flows``: turn a JSON list of ``{"date", "amount"}`` objects
    into ``(date, Decimal)`` pairs, keeping the given order.

All helpers raise ``InvalidInputError`` with a message naming the offending
value, so the web layer can hand it straight back to the client.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from ..errors import InvalidInputError

# Optional sign, optional currency symbol, digits grouped by spaces or commas.
_MONEY_RX = re.compile(r"^(?P<sgn>[-+])?\s*\$?\s*(?P<num>(?:\d{1,3}(?:[ ,]\d{3})+|\d+)(?:\.\d+)?)$")


def parse_money(value) -> Decimal:
    """Parse a monetary value into a Decimal.

    Examples
    --------
    ``1234.56`` → Decimal('1234.56')
    ``"$1,234.56"`` → Decimal('1234.56')
    ``"- 2 000"`` → Decimal('-2000')
    """
    if isinstance(value, bool) or value is None:
        raise InvalidInputError(f"invalid amount: {value!r}")
    if isinstance(value, (int, float)):
        try:
            result = Decimal(str(value))
        except InvalidOperation as exc:
            raise InvalidInputError(f"invalid amount: {value!r}") from exc
        if not result.is_finite():
            raise InvalidInputError(f"invalid amount: {value!r}")
        return result
    if not isinstance(value, str):
        raise InvalidInputError(f"invalid amount: {value!r}")
    m = _MONEY_RX.match(value.replace("\u00A0", " ").strip())
    if not m:
        raise InvalidInputError(f"invalid amount: {value!r}")
    result = Decimal(m.group("num").replace(",", "").replace(" ", ""))
    if m.group("sgn") == "-":
        result = -result
    return result


def parse_date_iso(value) -> date:
    """Parse ``YYYY-MM-DD`` into a date, or a longer ISO string into a datetime."""
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise InvalidInputError(f"invalid date: {value!r}")
    s = value.strip()
    try:
        if len(s) == 10:
            return datetime.strptime(s, "%Y-%m-%d").date()
        return datetime.fromisoformat(s)
    except ValueError as exc:
        raise InvalidInputError(f"invalid date: {value!r}") from exc


def parse_cash_flows(items) -> list[tuple[date, Decimal]]:
    """Parse a list of ``{"date": ..., "amount": ...}`` objects."""
    if not isinstance(items, list) or not items:
        raise InvalidInputError("cash_flows must be a non-empty list")
    out = []
    for i, item in enumerate(items):
        if not isinstance(item, dict) or "date" not in item or "amount" not in item:
            raise InvalidInputError(f"cash_flows[{i}] must have 'date' and 'amount'")
        out.append((parse_date_iso(item["date"]), parse_money(item["amount"])))
    return out
