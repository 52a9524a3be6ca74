"""Loan lifecycle and derived repayment state.

A loan is ``Active`` while money is still owed and ``Closed`` once the
recorded payments cover the total repayment. The status is never set on its
own: it is derived from ``(total_repayment, amount_paid)`` every time a loan
is recomputed, and a loan is recomputed after every mutation.

``LoanStateMachine`` owns the loans. Each mutation is a function handed to
the repository's ``update``, which loads the current loan, applies the
function and writes the result back as one atomic step, so the change is
always computed from the latest stored state. Mutations on the same loan id
are also serialized with a per-loan lock.
"""

from __future__ import annotations

import copy
import threading
import weakref
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterator, List, Optional, Union
from uuid import uuid4

from .data_models import (
    AmortizationOutcome,
    AmortizationResult,
    Installment,
    Loan,
    LoanStatus,
    LoanTerms,
    PaymentOutcome,
)
from .engine import calculate_amortization
from .exceptions import LoanEngineError, LoanNotFoundError
from .ledger import PaymentLedger
from .logging import get_logger

logger = get_logger(__name__)

# Applied to a working copy of a loan; returns the installment to store, if any.
Mutation = Callable[[Loan], Optional[Installment]]


def derive_status(total_repayment: Decimal, amount_paid: Decimal) -> LoanStatus:
    if total_repayment - amount_paid <= 0:
        return LoanStatus.CLOSED
    return LoanStatus.ACTIVE


def evaluate_terms(terms: LoanTerms, amount_paid: Decimal = Decimal("0")) -> AmortizationOutcome:
    """Amortize ``terms`` and evaluate the balance against ``amount_paid``.

    This is the preview used when a loan is created or its terms are edited;
    nothing is stored.
    """
    result = calculate_amortization(terms)
    remaining_due = result.total_repayment - amount_paid
    return AmortizationOutcome(
        monthly_emi=result.monthly_emi,
        total_interest=result.total_interest,
        total_repayment=result.total_repayment,
        tenure_months=result.tenure_months,
        remaining_due=remaining_due,
        status=derive_status(result.total_repayment, amount_paid),
    )


def recompute(loan: Loan) -> Loan:
    """Refresh ``amount_paid``, ``remaining_due`` and ``status`` in place.

    ``remaining_due`` is not clamped: an overpaid loan carries a negative
    balance, which ``Loan.refund_due`` reports.
    """
    loan.amount_paid = PaymentLedger(loan.loan_id, loan.payments).total_paid()
    loan.remaining_due = loan.total_repayment - loan.amount_paid
    loan.status = derive_status(loan.total_repayment, loan.amount_paid)
    return loan


def _apply_amortization(loan: Loan, terms: LoanTerms, result: AmortizationResult) -> None:
    # In fixed payment mode the tenure is an output of the amortization.
    loan.terms = replace(terms, tenure_months=result.tenure_months)
    loan.monthly_emi = result.monthly_emi
    loan.total_interest = result.total_interest
    loan.total_repayment = result.total_repayment


class InMemoryLoanRepository:
    """Process-local loan storage.

    Loans are stored and returned as deep copies, so a working copy that
    fails half way through a mutation never leaks into stored state.
    """

    def __init__(self) -> None:
        self._loans: Dict[str, Loan] = {}
        self._guard = threading.Lock()

    def get(self, loan_id: str) -> Optional[Loan]:
        loan = self._loans.get(loan_id)
        return copy.deepcopy(loan) if loan is not None else None

    def add(self, loan: Loan) -> None:
        self._loans[loan.loan_id] = copy.deepcopy(loan)

    def update(self, loan_id: str, mutate: Mutation) -> Loan:
        with self._guard:
            stored = self._loans.get(loan_id)
            if stored is None:
                raise LoanNotFoundError(f"Loan {loan_id} not found")
            loan = copy.deepcopy(stored)
            mutate(loan)
            self._loans[loan_id] = copy.deepcopy(loan)
        return loan

    def delete(self, loan_id: str) -> bool:
        return self._loans.pop(loan_id, None) is not None

    def list(self) -> List[Loan]:
        loans = sorted(self._loans.values(), key=lambda loan: loan.created_at)
        return [copy.deepcopy(loan) for loan in loans]


class _LoanLocks:
    """One lock per loan id, alive while some caller holds or awaits it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()

    def __len__(self) -> int:
        return len(self._locks)

    @contextmanager
    def hold(self, loan_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.get(loan_id)
            if lock is None:
                lock = self._locks[loan_id] = threading.Lock()
        with lock:
            yield


class LoanStateMachine:
    """Creates loans, edits their terms and records their payments.

    Parameters
    ----------
    repository:
        Any object with ``get``, ``add``, ``update``, ``delete`` and
        ``list`` methods. ``update(loan_id, mutate)`` loads the loan, passes
        it to ``mutate`` and writes the result back as one atomic step; the
        installment ``mutate`` returns, if any, is stored in the same
        transaction as the loan's updated totals. Defaults to an
        ``InMemoryLoanRepository``.
    """

    def __init__(self, repository=None) -> None:
        self.repository = repository if repository is not None else InMemoryLoanRepository()
        self._locks = _LoanLocks()

    def _load(self, loan_id: str) -> Loan:
        loan = self.repository.get(loan_id)
        if loan is None:
            raise LoanNotFoundError(f"Loan {loan_id} not found")
        return loan

    def get_loan(self, loan_id: str) -> Loan:
        return self._load(loan_id)

    def list_loans(self) -> List[Loan]:
        return self.repository.list()

    def total_paid(self, loan_id: str) -> Decimal:
        loan = self._load(loan_id)
        return PaymentLedger(loan.loan_id, loan.payments).total_paid()

    def create_loan(
        self,
        member_id: str,
        member_name: str,
        terms: LoanTerms,
        loan_id: Optional[str] = None,
    ) -> Loan:
        """Amortize ``terms`` and store a new ``Active`` loan."""
        try:
            result = calculate_amortization(terms)
        except LoanEngineError as exc:
            logger.warning("Rejected loan for member %s: %s", member_id, exc)
            raise
        loan = Loan(
            loan_id=loan_id or uuid4().hex,
            member_id=member_id,
            member_name=member_name,
            terms=terms,
        )
        _apply_amortization(loan, terms, result)
        recompute(loan)
        self.repository.add(loan)
        logger.info(
            "Created loan %s for member %s: principal=%s total=%s tenure=%s",
            loan.loan_id,
            member_id,
            loan.principal,
            loan.total_repayment,
            loan.tenure_months,
            extra={"loan_id": loan.loan_id},
        )
        return loan

    def edit_terms(
        self,
        loan_id: str,
        terms: Union[LoanTerms, Callable[[LoanTerms], LoanTerms]],
        member_name: Optional[str] = None,
    ) -> Loan:
        """Replace a loan's terms and recompute everything derived from them.

        ``terms`` is either the new terms or a function from the loan's
        current terms to the new ones. A function runs while the loan is
        locked, so a partial edit is always merged into the latest terms.

        The status is re-evaluated against the new total repayment and the
        payments already recorded, so a loan can move back to ``Active``.
        """

        def apply(loan: Loan) -> None:
            new_terms = terms(loan.terms) if callable(terms) else terms
            try:
                result = calculate_amortization(new_terms)
            except LoanEngineError as exc:
                logger.warning("Rejected new terms for loan %s: %s", loan_id, exc, extra={"loan_id": loan_id})
                raise
            _apply_amortization(loan, new_terms, result)
            if member_name:
                loan.member_name = member_name
            recompute(loan)

        with self._locks.hold(loan_id):
            loan = self.repository.update(loan_id, apply)
        logger.info(
            "Updated terms of loan %s: total=%s remaining=%s status=%s",
            loan_id,
            loan.total_repayment,
            loan.remaining_due,
            loan.status.value,
            extra={"loan_id": loan_id},
        )
        return loan

    def record_payment(
        self,
        loan_id: str,
        amount: Decimal,
        date: Optional[datetime] = None,
    ) -> PaymentOutcome:
        """Append an installment and return the loan's refreshed balance.

        Payments on a closed loan are accepted; they simply deepen the
        overpayment.
        """

        def apply(loan: Loan) -> Installment:
            ledger = PaymentLedger(loan.loan_id, loan.payments)
            try:
                installment = ledger.append_installment(amount, date)
            except LoanEngineError as exc:
                logger.warning("Rejected payment for loan %s: %s", loan_id, exc, extra={"loan_id": loan_id})
                raise
            recompute(loan)
            return installment

        with self._locks.hold(loan_id):
            loan = self.repository.update(loan_id, apply)
        logger.info(
            "Recorded payment of %s on loan %s: paid=%s remaining=%s status=%s",
            amount,
            loan_id,
            loan.amount_paid,
            loan.remaining_due,
            loan.status.value,
            extra={"loan_id": loan_id},
        )
        return PaymentOutcome(
            amount_paid=loan.amount_paid,
            remaining_due=loan.remaining_due,
            status=loan.status,
        )

    def delete_loan(self, loan_id: str) -> None:
        with self._locks.hold(loan_id):
            if not self.repository.delete(loan_id):
                raise LoanNotFoundError(f"Loan {loan_id} not found")
        logger.info("Deleted loan %s", loan_id, extra={"loan_id": loan_id})
