"""Tests for the exception hierarchy."""

from fund_loans.exceptions import (
    InvalidFixedPayment,
    InvalidPaymentAmount,
    InvalidPrincipal,
    InvalidRate,
    InvalidTenure,
    LoanEngineError,
    LoanNotFoundError,
    NonConvergentAmortization,
)


class TestExceptionHierarchy:
    def test_base_is_exception(self) -> None:
        assert isinstance(LoanEngineError("test"), Exception)

    def test_validation_errors_are_engine_errors(self) -> None:
        for error in (InvalidPrincipal, InvalidRate, InvalidTenure, InvalidFixedPayment, InvalidPaymentAmount):
            assert isinstance(error("test"), LoanEngineError)

    def test_non_convergence_is_invalid_fixed_payment(self) -> None:
        err = NonConvergentAmortization("test")
        assert isinstance(err, InvalidFixedPayment)
        assert isinstance(err, LoanEngineError)

    def test_not_found_is_engine_error(self) -> None:
        assert isinstance(LoanNotFoundError("test"), LoanEngineError)

    def test_exception_message(self) -> None:
        err = LoanNotFoundError("Loan loan-001 not found")
        assert str(err) == "Loan loan-001 not found"
