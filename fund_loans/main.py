"""Command-line interface for the fund loan engine.

This module uses ``click`` to implement a multi-command interface. Users can
preview the amortization of a loan, print or export its projected repayment
schedule, list stored loans and start the loan API server.
"""

from __future__ import annotations

import json
from decimal import Decimal
from pathlib import Path
from typing import Optional

import click

from .config import AppConfig
from .data_models import LoanTerms, RepaymentMode
from .engine import build_schedule
from .exceptions import LoanEngineError
from .formatter import print_loan, print_schedule, print_summary
from .logging import setup_logging
from .records import schedule_to_records
from .state import evaluate_terms
from .utils import decimal_from_str, parse_year_month


def parse_amount(value: str) -> Decimal:
    """Parse a money amount with optional suffixes.

    Accepts plain numbers ("50000") and shorthand with ``k``/``m`` suffixes
    (e.g., "50k" meaning 50_000).
    """
    value = value.strip().lower().replace(",", "")
    factor = Decimal(1)
    if value.endswith("k"):
        factor = Decimal(1_000)
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal(1_000_000)
        value = value[:-1]
    try:
        return decimal_from_str(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def build_terms_from_options(
    principal: str,
    rate: str,
    term: Optional[int],
    fixed_payment: Optional[str],
) -> LoanTerms:
    if term is None and not fixed_payment:
        raise click.UsageError("Provide either --term or --fixed-payment")
    if term is not None and fixed_payment:
        raise click.UsageError("--term and --fixed-payment are mutually exclusive")
    try:
        annual_rate = decimal_from_str(rate.rstrip("%"))
    except ValueError:
        raise click.BadParameter(f"Invalid rate: {rate}")
    if fixed_payment:
        return LoanTerms(
            principal=parse_amount(principal),
            annual_rate=annual_rate,
            mode=RepaymentMode.FIXED_PAYMENT,
            fixed_monthly_payment=parse_amount(fixed_payment),
        )
    return LoanTerms(
        principal=parse_amount(principal),
        annual_rate=annual_rate,
        mode=RepaymentMode.CALCULATED_EMI,
        tenure_months=term,
    )


def loan_options(func):
    """Attach the loan term options shared by ``compute`` and ``schedule``."""
    func = click.option(
        "--fixed-payment", "-f", "fixed_payment", help="Fixed monthly payment (tenure is derived)"
    )(func)
    func = click.option("--term", "-t", "term", type=int, help="Tenure in months (EMI mode)")(func)
    func = click.option("--rate", "-r", "rate", required=True, help="Annual interest rate (percent)")(func)
    func = click.option("--principal", "-p", "principal", required=True, help="Loan amount")(func)
    return func


@click.group()
@click.option("--log-level", default=None, help="Log level (defaults to $LOG_LEVEL or INFO)")
def cli(log_level: Optional[str]) -> None:
    """Repayment engine for the community fund's member loans."""
    config = AppConfig.from_env()
    setup_logging(log_level or config.log_level, config.log_format)


@cli.command()
@loan_options
@click.option("--paid", "paid", default="0", help="Amount already repaid")
def compute(principal: str, rate: str, term: Optional[int], fixed_payment: Optional[str], paid: str) -> None:
    """Compute the installment, interest, total repayment and balance."""
    terms = build_terms_from_options(principal, rate, term, fixed_payment)
    try:
        outcome = evaluate_terms(terms, parse_amount(paid))
    except LoanEngineError as exc:
        raise click.ClickException(str(exc))
    print_summary(outcome)


@cli.command()
@loan_options
@click.option("--start-date", "-s", "start_date", help="First installment month (YYYY-MM)")
@click.option("--output", "output", type=str, help="Output file path (.json)")
def schedule(
    principal: str,
    rate: str,
    term: Optional[int],
    fixed_payment: Optional[str],
    start_date: Optional[str],
    output: Optional[str],
) -> None:
    """Print or export the projected repayment schedule."""
    terms = build_terms_from_options(principal, rate, term, fixed_payment)
    try:
        start = parse_year_month(start_date) if start_date else None
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    try:
        entries = build_schedule(terms, start)
    except LoanEngineError as exc:
        raise click.ClickException(str(exc))
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Unsupported output format; use .json")
        with path.open("w", encoding="utf-8") as f:
            json.dump({"schedule": schedule_to_records(entries)}, f, indent=2)
        click.echo(f"Schedule exported to {path}")
    else:
        print_schedule(entries)


@cli.command()
@click.option("--database-url", default=None, help="SQLAlchemy database URL")
def loans(database_url: Optional[str]) -> None:
    """List stored loans with their balances."""
    from fund_loans_web.store import create_store_from_env

    store = create_store_from_env(database_url or AppConfig.from_env().database_url)
    stored = store.list()
    if not stored:
        click.echo("No loans recorded.")
        return
    for loan in stored:
        print_loan(loan)


@cli.command()
@click.option("--host", default=None, help="Bind address")
@click.option("--port", default=None, type=int, help="Port")
@click.option("--database-url", default=None, help="SQLAlchemy database URL")
def serve(host: Optional[str], port: Optional[int], database_url: Optional[str]) -> None:
    """Run the loan API server."""
    from fund_loans_web.app import create_app

    config = AppConfig.from_env()
    if host:
        config.host = host
    if port:
        config.port = port
    if database_url:
        config.database_url = database_url
    app = create_app(config)
    click.echo(f"Serving loan API on http://{config.host}:{config.port}")
    app.run(host=config.host, port=config.port)


if __name__ == "__main__":
    cli()
