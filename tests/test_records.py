"""Tests for loan record conversion and payload parsing."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from fund_loans.data_models import LoanStatus, RepaymentMode
from fund_loans.exceptions import (
    InvalidPaymentAmount,
    InvalidPrincipal,
    InvalidRate,
    InvalidTenure,
    LoanEngineError,
)
from fund_loans.records import (
    loan_from_record,
    loan_to_record,
    merge_terms,
    payment_from_payload,
    terms_from_payload,
)
from fund_loans.state import LoanStateMachine


class TestTermsFromPayload:
    def test_dashboard_payload(self) -> None:
        terms = terms_from_payload(
            {
                "loanAmount": 12000,
                "tenure": 12,
                "interestRate": 10,
                "repaymentMode": "Calculated EMI",
                "fixedMonthlyPayment": 0,
            }
        )
        assert terms.principal == Decimal("12000")
        assert terms.annual_rate == Decimal("10")
        assert terms.mode == RepaymentMode.CALCULATED_EMI
        assert terms.tenure_months == 12

    def test_strings_and_separators(self) -> None:
        terms = terms_from_payload(
            {"loanAmount": "12,000.50", "interestRate": "9.5", "repaymentMode": "fixed payment",
             "fixedMonthlyPayment": "1,500"}
        )
        assert terms.principal == Decimal("12000.50")
        assert terms.mode == RepaymentMode.FIXED_PAYMENT
        assert terms.fixed_monthly_payment == Decimal("1500")

    def test_float_values_keep_their_digits(self) -> None:
        assert terms_from_payload({"loanAmount": 0.1, "tenure": 1}).principal == Decimal("0.1")

    def test_missing_rate_is_zero(self) -> None:
        terms = terms_from_payload({"loanAmount": 1000, "tenure": 10})
        assert terms.annual_rate == Decimal("0")
        assert terms.mode == RepaymentMode.CALCULATED_EMI

    def test_whole_float_tenure(self) -> None:
        assert terms_from_payload({"loanAmount": 1000, "tenure": 12.0}).tenure_months == 12

    def test_fractional_tenure(self) -> None:
        with pytest.raises(InvalidTenure):
            terms_from_payload({"loanAmount": 1000, "tenure": 12.5})

    def test_unparseable_amount(self) -> None:
        with pytest.raises(InvalidPrincipal):
            terms_from_payload({"loanAmount": "lots", "tenure": 12})

    def test_unparseable_rate(self) -> None:
        with pytest.raises(InvalidRate):
            terms_from_payload({"loanAmount": 1000, "interestRate": "ten", "tenure": 12})

    def test_unknown_mode(self) -> None:
        with pytest.raises(LoanEngineError):
            terms_from_payload({"loanAmount": 1000, "tenure": 12, "repaymentMode": "Balloon"})


class TestMergeTerms:
    def test_partial_payload_keeps_other_fields(self, emi_terms) -> None:
        merged = merge_terms(emi_terms, {"tenure": 24, "memberName": "ignored"})

        assert merged.tenure_months == 24
        assert merged.principal == Decimal("12000")
        assert merged.annual_rate == Decimal("10")
        assert merged.mode == RepaymentMode.CALCULATED_EMI

    def test_switch_to_fixed_payment(self, emi_terms) -> None:
        merged = merge_terms(emi_terms, {"repaymentMode": "Fixed Payment", "fixedMonthlyPayment": "2,000"})

        assert merged.mode == RepaymentMode.FIXED_PAYMENT
        assert merged.fixed_monthly_payment == Decimal("2000")

    def test_unparseable_override(self, emi_terms) -> None:
        with pytest.raises(InvalidRate):
            merge_terms(emi_terms, {"interestRate": "ten"})


class TestPaymentFromPayload:
    def test_javascript_timestamp(self) -> None:
        installment = payment_from_payload({"amount": 250, "date": "2025-04-01T10:00:00.000Z"})
        assert installment.amount == Decimal("250")
        assert installment.date == datetime(2025, 4, 1, 10, 0, tzinfo=timezone.utc)

    def test_missing_amount(self) -> None:
        with pytest.raises(InvalidPaymentAmount):
            payment_from_payload({})

    def test_bad_date(self) -> None:
        with pytest.raises(LoanEngineError):
            payment_from_payload({"amount": 10, "date": "yesterday"})


class TestLoanRecords:
    def test_record_shape(self, machine: LoanStateMachine, emi_terms) -> None:
        loan = machine.create_loan("member-001", "Asha", emi_terms)
        machine.record_payment(loan.loan_id, Decimal("1054.99"))

        record = loan_to_record(machine.get_loan(loan.loan_id))

        assert record["_id"] == loan.loan_id
        assert record["memberId"] == "member-001"
        assert record["loanAmount"] == 12000.0
        assert record["tenure"] == 12
        assert record["repaymentMode"] == "Calculated EMI"
        assert record["monthlyEMI"] == pytest.approx(1054.99)
        assert record["totalRepayment"] == pytest.approx(12659.88)
        assert record["amountPaid"] == pytest.approx(1054.99)
        assert record["remainingDue"] == pytest.approx(11604.89)
        assert record["status"] == "Active"
        assert record["refundDue"] == 0.0
        assert len(record["installments"]) == 1
        assert record["installments"][0]["amount"] == pytest.approx(1054.99)

    def test_loaded_record_recomputes_paid_amount(self) -> None:
        record = {
            "_id": "loan-test-001",
            "memberId": "member-001",
            "memberName": "Asha",
            "loanAmount": 5000,
            "tenure": 5,
            "interestRate": 0,
            "repaymentMode": "Calculated EMI",
            "monthlyEMI": 1000,
            "totalInterest": 0,
            "totalRepayment": 5000,
            "amountPaid": 123,
            "remainingDue": 4877,
            "status": "Closed",
            "installments": [
                {"amount": 2000, "date": "2025-01-05T00:00:00Z"},
                {"amount": 1000, "date": "2025-02-05T00:00:00Z"},
            ],
        }

        loan = loan_from_record(record)

        assert loan.amount_paid == Decimal("3000")
        assert loan.remaining_due == Decimal("2000")
        assert loan.status == LoanStatus.ACTIVE

    def test_record_round_trip_keeps_balance(self, machine: LoanStateMachine, flat_terms) -> None:
        loan = machine.create_loan("member-001", "Asha", flat_terms)
        machine.record_payment(loan.loan_id, Decimal("5000"))

        restored = loan_from_record(loan_to_record(machine.get_loan(loan.loan_id)))

        assert restored.status == LoanStatus.CLOSED
        assert restored.remaining_due == Decimal("0")

    def test_refund_due_for_overpaid_loan(self, machine: LoanStateMachine, flat_terms) -> None:
        loan = machine.create_loan("member-001", "Asha", flat_terms)
        machine.record_payment(loan.loan_id, Decimal("5250"))

        record = loan_to_record(machine.get_loan(loan.loan_id))

        assert record["remainingDue"] == -250.0
        assert record["refundDue"] == 250.0
