"""Database models for the loan XIRR service.

We use SQLAlchemy's declarative system to define two tables: loans and the
transactions booked against them. A loan stores the most recently computed
XIRR together with a row version used for optimistic concurrency: every
update bumps ``version``, and writers that read an older version are
rejected.

Sign conventions: money lent out (disbursements) is a negative cash flow,
repayments and interest received are positive.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import (
    ForeignKey,
    Integer,
    String,
    Float,
    Numeric,
    Text,
    Date as SA_Date,
    DateTime as SA_DateTime,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for SQLAlchemy declarative models."""

    pass


class Loan(Base):
    __tablename__ = "loans"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    # last computed rate; None until the first successful calculation
    xirr: Mapped[float | None] = mapped_column(Float, nullable=True)
    xirr_updated_at: Mapped[datetime | None] = mapped_column(SA_DateTime, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    transactions: Mapped[list["LoanTransaction"]] = relationship(
        back_populates="loan", cascade="all, delete-orphan", order_by="LoanTransaction.id"
    )

    __mapper_args__ = {"version_id_col": version}


class LoanTransaction(Base):
    """A dated cash movement on a loan."""

    __tablename__ = "loan_transactions"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    loan_id: Mapped[int] = mapped_column(ForeignKey("loans.id"), index=True)
    date: Mapped[date] = mapped_column(SA_Date)
    cashflow: Mapped[Decimal] = mapped_column(Numeric(18, 2, asdecimal=True))
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    loan: Mapped["Loan"] = relationship(back_populates="transactions")
