"""Data models for the fund loan engine.

This module defines dataclasses representing the entities the repayment
engine works with: the loan terms entered by an administrator, the computed
amortization figures, recorded installments, the loan itself and entries of a
projected repayment schedule. Using dataclasses makes it easy to construct,
inspect and serialize these structures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional


class RepaymentMode(str, Enum):
    """How a loan is repaid.

    The values are the labels stored in loan records.
    """

    CALCULATED_EMI = "Calculated EMI"
    FIXED_PAYMENT = "Fixed Payment"


class LoanStatus(str, Enum):
    ACTIVE = "Active"
    CLOSED = "Closed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class LoanTerms:
    """Financial terms of a loan as entered by the administrator.

    Attributes
    ----------
    principal: Decimal
        The amount lent to the member.
    annual_rate: Decimal
        Annual nominal interest rate in percent (``12`` means 12 %).
    mode: RepaymentMode
        ``CALCULATED_EMI`` derives the installment from the tenure,
        ``FIXED_PAYMENT`` derives the tenure from the installment.
    tenure_months: int
        Number of monthly installments. Only an input in EMI mode.
    fixed_monthly_payment: Decimal
        The agreed installment. Only meaningful in fixed payment mode.
    """

    principal: Optional[Decimal]
    annual_rate: Decimal
    mode: RepaymentMode = RepaymentMode.CALCULATED_EMI
    tenure_months: Optional[int] = None
    fixed_monthly_payment: Optional[Decimal] = None

    @property
    def monthly_rate(self) -> Decimal:
        """Monthly rate as a fraction (``annual_rate / 12 / 100``)."""
        return (self.annual_rate / Decimal(12)) / Decimal(100)


@dataclass(frozen=True)
class AmortizationResult:
    monthly_emi: Decimal
    total_interest: Decimal
    total_repayment: Decimal
    tenure_months: int


@dataclass(frozen=True)
class AmortizationOutcome:
    """Amortization figures evaluated against the amount already paid."""

    monthly_emi: Decimal
    total_interest: Decimal
    total_repayment: Decimal
    tenure_months: int
    remaining_due: Decimal
    status: LoanStatus


@dataclass(frozen=True)
class Installment:
    """A single recorded payment against a loan.

    Installments are immutable; the ledger only ever appends them.
    """

    amount: Decimal
    date: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class PaymentOutcome:
    amount_paid: Decimal
    remaining_due: Decimal
    status: LoanStatus


@dataclass
class Loan:
    """A member loan together with its derived repayment state.

    ``monthly_emi``, ``total_interest`` and ``total_repayment`` only change
    when the terms change. ``amount_paid``, ``remaining_due`` and ``status``
    are cached values refreshed after every mutation; ``payments`` is the
    source of truth for ``amount_paid``.
    """

    loan_id: str
    member_id: str
    member_name: str
    terms: LoanTerms
    monthly_emi: Decimal = Decimal("0")
    total_interest: Decimal = Decimal("0")
    total_repayment: Decimal = Decimal("0")
    payments: List[Installment] = field(default_factory=list)
    amount_paid: Decimal = Decimal("0")
    remaining_due: Decimal = Decimal("0")
    status: LoanStatus = LoanStatus.ACTIVE
    created_at: datetime = field(default_factory=utcnow)

    @property
    def principal(self) -> Decimal:
        return self.terms.principal

    @property
    def tenure_months(self) -> Optional[int]:
        return self.terms.tenure_months

    @property
    def outstanding(self) -> Decimal:
        """Balance still owed by the member, never negative."""
        return max(Decimal("0"), self.remaining_due)

    @property
    def refund_due(self) -> Decimal:
        """Amount overpaid by the member, zero unless the loan is overpaid."""
        return max(Decimal("0"), -self.remaining_due)


@dataclass
class ScheduleEntry:
    """One month of a projected repayment schedule."""

    period: int
    date: date
    starting_balance: Decimal
    payment: Decimal
    principal_payment: Decimal
    interest_payment: Decimal
    ending_balance: Decimal
