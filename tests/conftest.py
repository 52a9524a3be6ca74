"""Pytest configuration and fixtures."""

from decimal import Decimal

import pytest

from fund_loans.config import AppConfig
from fund_loans.data_models import LoanTerms, RepaymentMode
from fund_loans.state import LoanStateMachine
from fund_loans_web.app import create_app
from fund_loans_web.store import LoanStore


@pytest.fixture
def emi_terms() -> LoanTerms:
    """12,000 at 10 % over 12 months."""
    return LoanTerms(
        principal=Decimal("12000"),
        annual_rate=Decimal("10"),
        mode=RepaymentMode.CALCULATED_EMI,
        tenure_months=12,
    )


@pytest.fixture
def fixed_terms() -> LoanTerms:
    """10,000 at 12 % repaid 1,000 a month."""
    return LoanTerms(
        principal=Decimal("10000"),
        annual_rate=Decimal("12"),
        mode=RepaymentMode.FIXED_PAYMENT,
        fixed_monthly_payment=Decimal("1000"),
    )


@pytest.fixture
def flat_terms() -> LoanTerms:
    """Interest-free 5,000 over 5 months, total repayment exactly 5,000."""
    return LoanTerms(
        principal=Decimal("5000"),
        annual_rate=Decimal("0"),
        mode=RepaymentMode.CALCULATED_EMI,
        tenure_months=5,
    )


@pytest.fixture
def machine() -> LoanStateMachine:
    return LoanStateMachine()


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'loans.sqlite3'}"


@pytest.fixture
def store(database_url: str) -> LoanStore:
    return LoanStore(database_url)


@pytest.fixture
def client(database_url: str):
    app = create_app(AppConfig(database_url=database_url))
    app.config["TESTING"] = True
    return app.test_client()
