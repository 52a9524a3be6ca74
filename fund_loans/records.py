"""Conversion between loans and their JSON records.

Loan records use the field names of the dashboard's loan API
(``loanAmount``, ``tenure``, ``interestRate`` ...). Money is written as
floats and timestamps as ISO 8601 strings.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from .data_models import (
    AmortizationOutcome,
    Installment,
    Loan,
    LoanStatus,
    LoanTerms,
    PaymentOutcome,
    RepaymentMode,
    ScheduleEntry,
)
from .exceptions import (
    InvalidFixedPayment,
    InvalidPaymentAmount,
    InvalidPrincipal,
    InvalidRate,
    InvalidTenure,
    LoanEngineError,
)
from .state import recompute
from .utils import parse_timestamp, to_decimal

# Request fields that make up a loan's financial terms.
TERM_FIELDS = ("loanAmount", "tenure", "interestRate", "repaymentMode", "fixedMonthlyPayment")


def _money(value: Optional[Decimal]) -> float:
    return float(value) if value is not None else 0.0


def _parse_mode(value: Any) -> RepaymentMode:
    if value is None or value == "":
        return RepaymentMode.CALCULATED_EMI
    if isinstance(value, RepaymentMode):
        return value
    for mode in RepaymentMode:
        if str(value).strip().lower() in (mode.value.lower(), mode.name.lower()):
            return mode
    raise LoanEngineError(f"Unknown repayment mode: {value}")


def _parse_tenure(value: Any) -> Optional[int]:
    try:
        tenure = to_decimal(value)
    except ValueError as exc:
        raise InvalidTenure(f"Invalid tenure: {value}") from exc
    if tenure is None:
        return None
    if tenure != tenure.to_integral_value():
        raise InvalidTenure(f"Tenure must be a whole number of months: {value}")
    return int(tenure)


def _parse_amount(value: Any, error: type, label: str) -> Optional[Decimal]:
    try:
        return to_decimal(value)
    except ValueError as exc:
        raise error(f"Invalid {label}: {value}") from exc


def terms_from_payload(payload: Mapping[str, Any]) -> LoanTerms:
    """Build ``LoanTerms`` from a loan record or request payload.

    A missing interest rate is read as zero. Values that cannot be parsed
    raise the same errors as values that fail validation.
    """
    rate = _parse_amount(payload.get("interestRate"), InvalidRate, "interest rate")
    return LoanTerms(
        principal=_parse_amount(payload.get("loanAmount"), InvalidPrincipal, "loan amount"),
        annual_rate=rate if rate is not None else Decimal("0"),
        mode=_parse_mode(payload.get("repaymentMode")),
        tenure_months=_parse_tenure(payload.get("tenure")),
        fixed_monthly_payment=_parse_amount(
            payload.get("fixedMonthlyPayment"), InvalidFixedPayment, "fixed monthly payment"
        ),
    )


def merge_terms(terms: LoanTerms, payload: Mapping[str, Any]) -> LoanTerms:
    """Overlay the term fields present in ``payload`` on ``terms``.

    Fields the payload leaves out keep their current values, so a partial
    edit such as ``{"tenure": 24}`` changes only the tenure.
    """
    current: Dict[str, Any] = {
        "loanAmount": terms.principal,
        "tenure": terms.tenure_months,
        "interestRate": terms.annual_rate,
        "repaymentMode": terms.mode,
        "fixedMonthlyPayment": terms.fixed_monthly_payment,
    }
    current.update({key: payload[key] for key in TERM_FIELDS if key in payload})
    return terms_from_payload(current)


def payment_from_payload(payload: Mapping[str, Any]) -> Installment:
    """Parse an ``{amount, date}`` installment submission."""
    amount = _parse_amount(payload.get("amount"), InvalidPaymentAmount, "payment amount")
    if amount is None:
        raise InvalidPaymentAmount("Payment amount is required")
    try:
        when = parse_timestamp(payload.get("date"))
    except ValueError as exc:
        raise LoanEngineError(str(exc)) from exc
    return Installment(amount=amount, date=when)


def installment_to_record(installment: Installment) -> Dict[str, Any]:
    return {"amount": _money(installment.amount), "date": installment.date.isoformat()}


def loan_to_record(loan: Loan) -> Dict[str, Any]:
    terms = loan.terms
    return {
        "_id": loan.loan_id,
        "memberId": loan.member_id,
        "memberName": loan.member_name,
        "loanAmount": _money(terms.principal),
        "tenure": terms.tenure_months,
        "interestRate": _money(terms.annual_rate),
        "repaymentMode": terms.mode.value,
        "fixedMonthlyPayment": _money(terms.fixed_monthly_payment),
        "monthlyEMI": _money(loan.monthly_emi),
        "totalInterest": _money(loan.total_interest),
        "totalRepayment": _money(loan.total_repayment),
        "amountPaid": _money(loan.amount_paid),
        "remainingDue": _money(loan.remaining_due),
        "refundDue": _money(loan.refund_due),
        "status": loan.status.value,
        "installments": [installment_to_record(i) for i in loan.payments],
        "createdAt": loan.created_at.isoformat(),
    }


def loan_from_record(record: Mapping[str, Any]) -> Loan:
    """Rebuild a loan from its record.

    The stored amortization figures are kept as they are; the paid amount,
    balance and status are recomputed from the installments.
    """
    installments: List[Installment] = [
        Installment(amount=to_decimal(item["amount"]), date=parse_timestamp(item.get("date")))
        for item in record.get("installments") or []
    ]
    loan = Loan(
        loan_id=str(record["_id"]),
        member_id=str(record.get("memberId", "")),
        member_name=record.get("memberName", ""),
        terms=terms_from_payload(record),
        monthly_emi=to_decimal(record.get("monthlyEMI")) or Decimal("0"),
        total_interest=to_decimal(record.get("totalInterest")) or Decimal("0"),
        total_repayment=to_decimal(record.get("totalRepayment")) or Decimal("0"),
        payments=installments,
        status=LoanStatus(record.get("status", LoanStatus.ACTIVE.value)),
    )
    if record.get("createdAt"):
        loan.created_at = parse_timestamp(record["createdAt"])
    return recompute(loan)


def outcome_to_record(outcome: AmortizationOutcome) -> Dict[str, Any]:
    return {
        "monthlyEMI": _money(outcome.monthly_emi),
        "totalInterest": _money(outcome.total_interest),
        "totalRepayment": _money(outcome.total_repayment),
        "tenure": outcome.tenure_months,
        "remainingDue": _money(outcome.remaining_due),
        "status": outcome.status.value,
    }


def payment_outcome_to_record(outcome: PaymentOutcome) -> Dict[str, Any]:
    return {
        "amountPaid": _money(outcome.amount_paid),
        "remainingDue": _money(outcome.remaining_due),
        "status": outcome.status.value,
    }


def schedule_to_records(schedule: List[ScheduleEntry]) -> List[Dict[str, Any]]:
    return [
        {
            "period": entry.period,
            "date": entry.date.strftime("%Y-%m"),
            "startingBalance": _money(entry.starting_balance),
            "payment": _money(entry.payment),
            "principal": _money(entry.principal_payment),
            "interest": _money(entry.interest_payment),
            "endingBalance": _money(entry.ending_balance),
        }
        for entry in schedule
    ]
