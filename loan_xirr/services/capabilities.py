"""Interfaces the recalculation workflow depends on.

The XIRR solver itself needs none of these. They describe what the
orchestrator in :mod:`loan_xirr.services.recalculate` is given: somewhere to
read a loan's transactions from, somewhere to write the computed rate to,
and the record change that triggered the run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Protocol


class TransactionSource(Protocol):
    def fetch_cash_flows(self, loan_id: int) -> list[tuple[date, Decimal]]:
        """Return the (date, amount) records booked against ``loan_id``."""
        ...


class RateSink(Protocol):
    def read_version(self, loan_id: int) -> int:
        """Return the loan's current row version."""
        ...

    def write_rate(self, loan_id: int, rate: float, expected_version: int) -> None:
        """Persist ``rate`` if the loan is still at ``expected_version``."""
        ...


@dataclass(frozen=True)
class TriggerContext:
    """The change that caused a recalculation.

    ``image`` is a snapshot of the transaction record as it was when the
    change fired (for deletes, the row that is gone). Only ``loan_id`` is
    read from it.
    """

    kind: str
    image: Mapping[str, Any] = field(default_factory=dict)

    @property
    def loan_id(self) -> int | None:
        value = self.image.get("loan_id")
        return int(value) if value is not None else None
