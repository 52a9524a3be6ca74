"""Append-only installment ledger for a single loan."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterator, List, Optional, Tuple

from .data_models import Installment
from .exceptions import InvalidPaymentAmount


def validate_payment_amount(amount: Optional[Decimal]) -> Decimal:
    if amount is None or not amount.is_finite() or amount <= 0:
        raise InvalidPaymentAmount("Payment amount must be greater than zero")
    return amount


class PaymentLedger:
    """Installments recorded against one loan.

    The ledger wraps the loan's own installment list, so appends are visible
    on the loan immediately. Installments can only be appended; there is no
    way to edit or remove one.
    """

    def __init__(self, loan_id: str, installments: Optional[List[Installment]] = None) -> None:
        self.loan_id = loan_id
        self._installments: List[Installment] = installments if installments is not None else []

    def append_installment(self, amount: Decimal, date: Optional[datetime] = None) -> Installment:
        """Record a payment and return the new installment.

        ``date`` defaults to the time of the call.
        """
        validate_payment_amount(amount)
        installment = Installment(amount=amount, date=date or datetime.now(timezone.utc))
        self._installments.append(installment)
        return installment

    def total_paid(self) -> Decimal:
        return sum((i.amount for i in self._installments), Decimal("0"))

    @property
    def installments(self) -> Tuple[Installment, ...]:
        return tuple(self._installments)

    def __iter__(self) -> Iterator[Installment]:
        return iter(tuple(self._installments))

    def __len__(self) -> int:
        return len(self._installments)
