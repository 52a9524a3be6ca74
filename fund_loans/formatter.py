"""Output helpers for the loan CLI.

This module renders amortization summaries, repayment schedules and loan
balances in a simple tabular text format using built-in printing and string
formatting.
"""

from __future__ import annotations

from typing import Iterable

from .data_models import AmortizationOutcome, Loan, ScheduleEntry


def print_summary(outcome: AmortizationOutcome) -> None:
    """Print the amortization figures in a human-readable format."""
    print("Summary")
    print("-" * 72)
    print(f"Monthly installment: {outcome.monthly_emi:.2f}")
    print(f"Tenure (months)    : {outcome.tenure_months}")
    print(f"Total interest     : {outcome.total_interest:.2f}")
    print(f"Total repayment    : {outcome.total_repayment:.2f}")
    print(f"Remaining due      : {outcome.remaining_due:.2f}")
    if outcome.remaining_due < 0:
        print(f"Refund due         : {-outcome.remaining_due:.2f}")
    print(f"Status             : {outcome.status.value}")
    print("-" * 72)


def print_loan(loan: Loan) -> None:
    print(f"Loan {loan.loan_id} ({loan.member_name or loan.member_id})")
    print(f"  Mode           : {loan.terms.mode.value}")
    print(f"  Principal      : {loan.principal:.2f}")
    print(f"  Total repayment: {loan.total_repayment:.2f}")
    print(f"  Amount paid    : {loan.amount_paid:.2f}")
    print(f"  Outstanding    : {loan.outstanding:.2f}")
    if loan.refund_due > 0:
        print(f"  Refund due     : {loan.refund_due:.2f}")
    print(f"  Status         : {loan.status.value}")


def print_schedule(schedule: Iterable[ScheduleEntry]) -> None:
    """Print the repayment schedule as a simple table."""
    headers = ["Period", "Date", "StartBal", "Payment", "Principal", "Interest", "EndBal"]
    print("\t".join(headers))
    for entry in schedule:
        row = [
            str(entry.period),
            entry.date.strftime("%Y-%m"),
            f"{entry.starting_balance:.2f}",
            f"{entry.payment:.2f}",
            f"{entry.principal_payment:.2f}",
            f"{entry.interest_payment:.2f}",
            f"{entry.ending_balance:.2f}",
        ]
        print("\t".join(row))
