from datetime import date

import pytest

from loan_xirr.config import AppConfig
from loan_xirr.db import init_db
from loan_xirr.services.npv import CashFlow


@pytest.fixture
def config(tmp_path):
    return AppConfig(DATABASE_URI=f"sqlite:///{tmp_path / 'loans.db'}")


@pytest.fixture
def session(config):
    engine, Session = init_db(config.DATABASE_URI)
    s = Session()
    yield s
    s.close()
    Session.remove()
    engine.dispose()


@pytest.fixture
def one_year_loan():
    """-1000 lent on 2023-01-01, 1100 repaid exactly 365 days later."""
    return [
        CashFlow(date(2023, 1, 1), -1000.0),
        CashFlow(date(2024, 1, 1), 1100.0),
    ]


@pytest.fixture
def coupon_loan():
    return [
        CashFlow(date(2023, 1, 1), -1000.0),
        CashFlow(date(2023, 7, 1), 50.0),
        CashFlow(date(2024, 1, 1), 1000.0),
    ]
