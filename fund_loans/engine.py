"""Amortization calculator for fund loans.

This module implements the financial logic of the repayment engine. A loan is
either repaid in equated monthly installments (EMI) computed from a fixed
tenure, or with a fixed monthly payment, in which case the tenure is derived
by letting the balance accrue interest month by month until the payments
clear it. Both computations are pure functions of the loan terms.

A projected month-by-month schedule can also be built for either mode.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_CEILING, Decimal, InvalidOperation, Overflow, getcontext
from typing import List, Optional

from .data_models import AmortizationResult, LoanTerms, RepaymentMode, ScheduleEntry
from .exceptions import (
    InvalidFixedPayment,
    InvalidPrincipal,
    InvalidRate,
    InvalidTenure,
    LoanEngineError,
    NonConvergentAmortization,
)
from .logging import get_logger
from .utils import add_months, quantize_money

getcontext().prec = 28  # increase precision for financial calculations

logger = get_logger(__name__)

# Upper bound on the tenure of a loan, given (EMI mode) or derived (fixed payment).
MAX_TENURE_MONTHS = 1000

ZERO = Decimal("0")


def _validate_terms(terms: LoanTerms) -> None:
    if terms.principal is None or terms.principal <= 0:
        raise InvalidPrincipal("Loan amount must be greater than zero")
    if terms.annual_rate is None or terms.annual_rate < 0:
        raise InvalidRate("Interest rate cannot be negative")
    if terms.mode == RepaymentMode.CALCULATED_EMI:
        if terms.tenure_months is None or terms.tenure_months <= 0:
            raise InvalidTenure("Tenure must be a positive number of months")
        if terms.tenure_months > MAX_TENURE_MONTHS:
            raise InvalidTenure(f"Tenure cannot exceed {MAX_TENURE_MONTHS} months")
    elif terms.mode == RepaymentMode.FIXED_PAYMENT:
        if terms.fixed_monthly_payment is None or terms.fixed_monthly_payment <= 0:
            raise InvalidFixedPayment("Fixed monthly payment must be greater than zero")
    else:
        raise ValueError(f"Unknown repayment mode: {terms.mode}")


def _calculate_emi(principal: Decimal, rate_per_month: Decimal, term: int) -> Decimal:
    """Return the equated monthly installment, rounded to cents.

    The formula is:

        EMI = P * r * (1 + r)^n / ((1 + r)^n - 1)

    where ``P`` is the principal, ``r`` is the monthly interest rate and
    ``n`` is the number of installments. When the interest rate is zero, the
    installment simplifies to ``P / n``.

    The result is rounded half-up. If that would make ``EMI * n`` fall short
    of the principal, it is rounded up instead.
    """
    if rate_per_month == 0:
        exact = principal / Decimal(term)
    else:
        factor = (1 + rate_per_month) ** term
        exact = principal * rate_per_month * factor / (factor - 1)
    emi = quantize_money(exact)
    if emi * term < principal:
        emi = quantize_money(exact, rounding=ROUND_CEILING)
    return emi


def _fixed_payment_tenure(principal: Decimal, rate_per_month: Decimal, payment: Decimal) -> int:
    """Return how many fixed payments it takes to clear ``principal``.

    Interest accrues on the balance every month before the payment is
    applied. Raises ``NonConvergentAmortization`` when the payment does not
    exceed the first month's interest, or when the balance is not cleared
    within ``MAX_TENURE_MONTHS``.
    """
    if payment <= principal * rate_per_month:
        raise NonConvergentAmortization(
            f"Fixed payment {payment} does not cover the monthly interest of "
            f"{quantize_money(principal * rate_per_month)}"
        )
    balance = principal
    months = 0
    while balance > 0:
        if months >= MAX_TENURE_MONTHS:
            raise NonConvergentAmortization(
                f"Fixed payment {payment} does not repay the loan within "
                f"{MAX_TENURE_MONTHS} months"
            )
        balance = balance + balance * rate_per_month - payment
        months += 1
    return months


def calculate_amortization(terms: LoanTerms) -> AmortizationResult:
    """Compute the repayment figures for a set of loan terms.

    Parameters
    ----------
    terms: LoanTerms
        Principal, annual rate and either the tenure (EMI mode) or the fixed
        monthly payment (fixed payment mode).

    Returns
    -------
    AmortizationResult
        The monthly installment, total interest, total repayment and tenure.
        In fixed payment mode the installment is the fixed payment and the
        tenure is derived.

    Raises
    ------
    LoanEngineError
        One of the validation errors when the terms are unusable. Nothing is
        returned for non-convergent fixed payment terms.
    """
    _validate_terms(terms)
    principal = terms.principal
    rate_per_month = terms.monthly_rate

    try:
        if terms.mode == RepaymentMode.CALCULATED_EMI:
            tenure = terms.tenure_months
            monthly_emi = _calculate_emi(principal, rate_per_month, tenure)
        else:
            monthly_emi = terms.fixed_monthly_payment
            tenure = _fixed_payment_tenure(principal, rate_per_month, monthly_emi)
        total_repayment = monthly_emi * tenure
        total_interest = total_repayment - principal
    except (InvalidOperation, Overflow) as exc:
        # Amounts or rates too large for the decimal context.
        raise LoanEngineError(
            f"Loan terms are out of range: principal={principal} rate={terms.annual_rate}"
        ) from exc

    logger.debug(
        "Amortized %s at %s%% (%s): emi=%s tenure=%s total=%s",
        principal,
        terms.annual_rate,
        terms.mode.value,
        monthly_emi,
        tenure,
        total_repayment,
    )
    return AmortizationResult(
        monthly_emi=monthly_emi,
        total_interest=total_interest,
        total_repayment=total_repayment,
        tenure_months=tenure,
    )


def build_schedule(terms: LoanTerms, start_date: Optional[date] = None) -> List[ScheduleEntry]:
    """Project the month-by-month repayment schedule for a set of terms.

    Interest for each month is rounded to cents and charged on the opening
    balance; the rest of the installment reduces the principal. The final
    installment is trimmed (or topped up) so the balance ends at exactly
    zero, which absorbs the rounding of the installment itself.

    Parameters
    ----------
    terms: LoanTerms
        The loan terms; validated the same way as ``calculate_amortization``.
    start_date: date, optional
        Due date of the first installment. Defaults to the first day of next
        month.
    """
    result = calculate_amortization(terms)
    rate_per_month = terms.monthly_rate
    if start_date is None:
        start_date = add_months(date.today().replace(day=1), 1)

    schedule: List[ScheduleEntry] = []
    balance = terms.principal
    for period in range(1, result.tenure_months + 1):
        starting_balance = balance
        interest_payment = quantize_money(balance * rate_per_month)
        payment = result.monthly_emi
        if period == result.tenure_months or payment > balance + interest_payment:
            payment = balance + interest_payment
        principal_payment = payment - interest_payment
        balance = balance - principal_payment
        schedule.append(
            ScheduleEntry(
                period=period,
                date=add_months(start_date, period - 1),
                starting_balance=starting_balance,
                payment=payment,
                principal_payment=principal_payment,
                interest_payment=interest_payment,
                ending_balance=balance,
            )
        )
        if balance <= ZERO:
            break
    return schedule
