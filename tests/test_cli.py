"""Tests for the command-line interface."""

import json
import logging
from decimal import Decimal

import pytest
from click.testing import CliRunner

from fund_loans.main import cli, parse_amount
from fund_loans.state import LoanStateMachine


@pytest.fixture(autouse=True)
def restore_root_handlers():
    # The CLI installs a handler on the runner's temporary stderr.
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestParseAmount:
    @pytest.mark.parametrize("raw,expected", [("12000", "12000"), ("12k", "12000"), ("1.5m", "1500000"), ("1,000", "1000")])
    def test_suffixes(self, raw, expected) -> None:
        assert parse_amount(raw) == Decimal(expected)


class TestCompute:
    def test_emi(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["compute", "-p", "12k", "-r", "10", "-t", "12"])

        assert result.exit_code == 0, result.output
        assert "1054.99" in result.output
        assert "12659.88" in result.output
        assert "Active" in result.output

    def test_fixed_payment(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["compute", "-p", "10000", "-r", "12", "-f", "1000", "--paid", "11000"])

        assert result.exit_code == 0, result.output
        assert "Tenure (months)    : 11" in result.output
        assert "Closed" in result.output

    def test_non_convergent(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["compute", "-p", "10000", "-r", "24", "-f", "50"])

        assert result.exit_code == 1
        assert "does not cover the monthly interest" in result.output

    def test_requires_term_or_payment(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["compute", "-p", "10000", "-r", "12"])
        assert result.exit_code == 2

    def test_term_and_payment_conflict(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["compute", "-p", "10000", "-r", "12", "-t", "12", "-f", "1000"])
        assert result.exit_code == 2


class TestSchedule:
    def test_print(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["schedule", "-p", "12000", "-r", "10", "-t", "12", "-s", "2025-01"])

        assert result.exit_code == 0, result.output
        lines = result.output.strip().splitlines()
        assert lines[0].startswith("Period")
        assert len(lines) == 13
        assert lines[1].startswith("1\t2025-01")

    def test_export_json(self, runner: CliRunner, tmp_path) -> None:
        path = tmp_path / "schedule.json"
        result = runner.invoke(
            cli, ["schedule", "-p", "10000", "-r", "12", "-f", "1000", "-s", "2025-01", "--output", str(path)]
        )

        assert result.exit_code == 0, result.output
        data = json.loads(path.read_text(encoding="utf-8"))
        assert len(data["schedule"]) == 11
        assert data["schedule"][-1]["endingBalance"] == 0.0

    def test_rejects_other_formats(self, runner: CliRunner, tmp_path) -> None:
        result = runner.invoke(
            cli, ["schedule", "-p", "1000", "-r", "12", "-t", "6", "--output", str(tmp_path / "s.csv")]
        )
        assert result.exit_code == 2


class TestLoans:
    def test_lists_stored_loans(self, runner: CliRunner, store, database_url, flat_terms) -> None:
        machine = LoanStateMachine(store)
        loan = machine.create_loan("member-001", "Asha", flat_terms)
        machine.record_payment(loan.loan_id, Decimal("5000"))

        result = runner.invoke(cli, ["loans", "--database-url", database_url])

        assert result.exit_code == 0, result.output
        assert f"Loan {loan.loan_id} (Asha)" in result.output
        assert "Closed" in result.output

    def test_empty(self, runner: CliRunner, database_url) -> None:
        result = runner.invoke(cli, ["loans", "--database-url", database_url])
        assert "No loans recorded." in result.output

    def test_overpaid_loan_shows_refund(self, runner: CliRunner, store, database_url, flat_terms) -> None:
        machine = LoanStateMachine(store)
        loan = machine.create_loan("member-001", "Asha", flat_terms)
        machine.record_payment(loan.loan_id, Decimal("5250"))

        result = runner.invoke(cli, ["loans", "--database-url", database_url])

        assert result.exit_code == 0, result.output
        assert "Outstanding    : 0.00" in result.output
        assert "Refund due     : 250.00" in result.output
