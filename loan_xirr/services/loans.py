"""Loan and transaction queries.

This module holds the SQLAlchemy side of the recalculation workflow:
``SqlTransactionSource`` reads a loan's cash flows and ``SqlRateSink`` writes
the computed rate back with a row-version check. The remaining helpers are
small CRUD queries used by the web layer. Everything operates on a session
passed in by the caller.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from sqlalchemy import select, update, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import ConcurrencyConflictError, LoanNotFoundError, PersistenceError
from ..models import Loan, LoanTransaction


class SqlTransactionSource:
    """Reads the cash flows of a loan from the ``loan_transactions`` table."""

    def __init__(self, session: Session):
        self.session = session

    def fetch_cash_flows(self, loan_id: int) -> list[tuple[date, Decimal]]:
        """Return ``(date, cashflow)`` rows for the loan in insertion order.

        The first row is the anchor date for discounting, so the order here
        is part of the result: rows come back by primary key, not by date.
        """
        q = (
            select(LoanTransaction.date, LoanTransaction.cashflow)
            .where(LoanTransaction.loan_id == loan_id)
            .order_by(LoanTransaction.id)
        )
        return [(d, cf) for d, cf in self.session.execute(q).all()]


class SqlRateSink:
    """Writes a computed XIRR onto the loan row, guarded by its version."""

    def __init__(self, session: Session):
        self.session = session

    def read_version(self, loan_id: int) -> int:
        version = self.session.execute(
            select(Loan.version).where(Loan.id == loan_id)
        ).scalar_one_or_none()
        if version is None:
            raise LoanNotFoundError(loan_id)
        return version

    def write_rate(self, loan_id: int, rate: float, expected_version: int) -> None:
        """Store ``rate`` on the loan if its version is still ``expected_version``.

        The update only matches the row when the version is unchanged; a miss
        means another writer got there first and raises
        ``ConcurrencyConflictError``. The session is committed on success and
        rolled back on any failure.
        """
        stmt = (
            update(Loan)
            .where(Loan.id == loan_id, Loan.version == expected_version)
            .values(
                xirr=rate,
                xirr_updated_at=datetime.now(timezone.utc).replace(tzinfo=None),
                version=Loan.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.session.execute(stmt)
            if result.rowcount != 1:
                self.session.rollback()
                if self.session.get(Loan, loan_id) is None:
                    raise LoanNotFoundError(loan_id)
                raise ConcurrencyConflictError(loan_id, expected_version)
            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError(f"error during update of loan {loan_id}") from exc
        # the identity map may hold a stale copy of the row
        loan = self.session.get(Loan, loan_id)
        if loan is not None:
            self.session.refresh(loan)


def create_loan(session: Session, name: str) -> Loan:
    loan = Loan(name=name)
    session.add(loan)
    session.commit()
    return loan


def get_loan(session: Session, loan_id: int) -> Loan:
    """Return the loan or raise ``LoanNotFoundError``."""
    loan = session.get(Loan, loan_id)
    if loan is None:
        raise LoanNotFoundError(loan_id)
    return loan


def list_loans(session: Session) -> list[Loan]:
    return list(session.execute(select(Loan).order_by(Loan.id)).scalars())


def transaction_counts(session: Session) -> dict[int, int]:
    """Return the number of transactions per loan id."""
    q = select(LoanTransaction.loan_id, func.count(LoanTransaction.id)).group_by(
        LoanTransaction.loan_id
    )
    return {loan_id: n for loan_id, n in session.execute(q).all()}


def get_transaction(session: Session, transaction_id: int) -> LoanTransaction | None:
    return session.get(LoanTransaction, transaction_id)


def add_transaction(
    session: Session, loan_id: int, when: date, cashflow: Decimal, note: str | None = None
) -> LoanTransaction:
    get_loan(session, loan_id)
    tx = LoanTransaction(loan_id=loan_id, date=as_date(when), cashflow=cashflow, note=note)
    session.add(tx)
    session.commit()
    return tx


def as_date(value: date) -> date:
    """Drop the time part of a datetime; transactions are booked per day."""
    return value.date() if isinstance(value, datetime) else value


def transaction_image(tx: LoanTransaction) -> dict:
    """Snapshot of a transaction row, as handed to the recalculation trigger."""
    return {
        "id": tx.id,
        "loan_id": tx.loan_id,
        "date": tx.date.isoformat(),
        "cashflow": str(tx.cashflow),
        "note": tx.note,
    }
