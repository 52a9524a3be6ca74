"""Persistence layer for loans and their installments.

This module stores loans in an external database through SQLAlchemy. It
defaults to SQLite for local development, but accepts any
SQLAlchemy-compatible URL (e.g. PostgreSQL/MySQL) for shared deployments.

``LoanStore`` is the repository used by ``LoanStateMachine``. A mutation
reads the loan and writes it back inside one transaction that holds the loan
row's write lock, so processes sharing the database cannot lose each other's
payments or edits.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    create_engine,
    select,
    update as sa_update,
)
from sqlalchemy.orm import declarative_base, relationship, selectinload, sessionmaker

from fund_loans.config import DEFAULT_DATABASE_URL
from fund_loans.data_models import Installment, Loan, LoanStatus, LoanTerms, RepaymentMode
from fund_loans.exceptions import LoanNotFoundError
from fund_loans.logging import get_logger
from fund_loans.state import Mutation, recompute

Base = declarative_base()

logger = get_logger(__name__)

MONEY = Numeric(18, 4)


class LoanModel(Base):
    __tablename__ = "loans"

    id = Column(String(64), primary_key=True)
    member_id = Column(String(64), index=True, nullable=False)
    member_name = Column(String(255), nullable=False)
    loan_amount = Column(MONEY, nullable=False)
    interest_rate = Column(MONEY, nullable=False)
    repayment_mode = Column(String(32), nullable=False)
    tenure = Column(Integer, nullable=False)
    fixed_monthly_payment = Column(MONEY, nullable=True)
    monthly_emi = Column(MONEY, nullable=False)
    total_interest = Column(MONEY, nullable=False)
    total_repayment = Column(MONEY, nullable=False)
    amount_paid = Column(MONEY, nullable=False)
    remaining_due = Column(MONEY, nullable=False)
    status = Column(String(16), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)

    installments = relationship(
        "InstallmentModel",
        back_populates="loan",
        cascade="all, delete-orphan",
        order_by="InstallmentModel.id",
    )


class InstallmentModel(Base):
    __tablename__ = "installments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(String(64), ForeignKey("loans.id"), index=True, nullable=False)
    amount = Column(MONEY, nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=False)

    loan = relationship("LoanModel", back_populates="installments")


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops the offset; everything is written in UTC.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _copy_loan_to_row(loan: Loan, row: LoanModel) -> None:
    terms = loan.terms
    row.member_id = loan.member_id
    row.member_name = loan.member_name
    row.loan_amount = terms.principal
    row.interest_rate = terms.annual_rate
    row.repayment_mode = terms.mode.value
    row.tenure = terms.tenure_months
    row.fixed_monthly_payment = terms.fixed_monthly_payment
    row.monthly_emi = loan.monthly_emi
    row.total_interest = loan.total_interest
    row.total_repayment = loan.total_repayment
    row.amount_paid = loan.amount_paid
    row.remaining_due = loan.remaining_due
    row.status = loan.status.value


def _row_to_loan(row: LoanModel) -> Loan:
    loan = Loan(
        loan_id=row.id,
        member_id=row.member_id,
        member_name=row.member_name,
        terms=LoanTerms(
            principal=Decimal(row.loan_amount),
            annual_rate=Decimal(row.interest_rate),
            mode=RepaymentMode(row.repayment_mode),
            tenure_months=row.tenure,
            fixed_monthly_payment=(
                Decimal(row.fixed_monthly_payment) if row.fixed_monthly_payment is not None else None
            ),
        ),
        monthly_emi=Decimal(row.monthly_emi),
        total_interest=Decimal(row.total_interest),
        total_repayment=Decimal(row.total_repayment),
        payments=[
            Installment(amount=Decimal(item.amount), date=_aware(item.paid_at))
            for item in row.installments
        ],
        status=LoanStatus(row.status),
        created_at=_aware(row.created_at),
    )
    return recompute(loan)


class LoanStore:
    """Database-backed loan repository."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def get(self, loan_id: str) -> Optional[Loan]:
        with self._session_factory() as session:
            row = session.execute(
                select(LoanModel)
                .options(selectinload(LoanModel.installments))
                .where(LoanModel.id == loan_id)
            ).scalar_one_or_none()
            return _row_to_loan(row) if row is not None else None

    def list(self) -> List[Loan]:
        with self._session_factory() as session:
            rows = session.execute(
                select(LoanModel)
                .options(selectinload(LoanModel.installments))
                .order_by(LoanModel.created_at.asc())
            ).scalars()
            return [_row_to_loan(row) for row in rows]

    def add(self, loan: Loan) -> None:
        row = LoanModel(id=loan.loan_id, created_at=loan.created_at)
        _copy_loan_to_row(loan, row)
        for installment in loan.payments:
            row.installments.append(InstallmentModel(amount=installment.amount, paid_at=installment.date))
        with self._session_factory() as session:
            session.add(row)
            session.commit()

    def update(self, loan_id: str, mutate: Mutation) -> Loan:
        """Load a loan, apply ``mutate`` and write the result back.

        Everything happens in one transaction that starts by claiming the
        loan row with an ``UPDATE``. That takes the row's write lock on every
        backend, SQLite included, before the installments are read, so a
        concurrent writer in another process waits and then sees this one's
        installment. The installment ``mutate`` returns is inserted in the
        same transaction as the loan's updated totals.
        """
        with self._session_factory() as session, session.begin():
            claimed = session.execute(
                sa_update(LoanModel)
                .where(LoanModel.id == loan_id)
                .values(updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            if claimed.rowcount == 0:
                raise LoanNotFoundError(f"Loan {loan_id} not found")
            row = session.execute(
                select(LoanModel)
                .options(selectinload(LoanModel.installments))
                .where(LoanModel.id == loan_id)
                .with_for_update()
            ).scalar_one()
            loan = _row_to_loan(row)
            appended = mutate(loan)
            _copy_loan_to_row(loan, row)
            if appended is not None:
                row.installments.append(InstallmentModel(amount=appended.amount, paid_at=appended.date))
        logger.debug("Saved loan %s", loan_id)
        return loan

    def delete(self, loan_id: str) -> bool:
        with self._session_factory() as session:
            row = session.get(LoanModel, loan_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True


def create_store_from_env(url: Optional[str]) -> LoanStore:
    return LoanStore(url or DEFAULT_DATABASE_URL)
