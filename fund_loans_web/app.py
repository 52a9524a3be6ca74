"""JSON API for the fund's loan dashboard.

The routes follow the dashboard's loan endpoints. Creating a loan or editing
its terms runs the amortization calculator; recording an installment goes
through the loan state machine so the payment and the loan's refreshed
totals are stored together.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request

from fund_loans.config import AppConfig
from fund_loans.engine import build_schedule
from fund_loans.exceptions import LoanEngineError, LoanNotFoundError
from fund_loans.logging import get_logger, setup_logging
from fund_loans.records import (
    loan_to_record,
    merge_terms,
    outcome_to_record,
    payment_from_payload,
    payment_outcome_to_record,
    schedule_to_records,
    terms_from_payload,
)
from fund_loans.state import LoanStateMachine, evaluate_terms
from fund_loans.utils import add_months, parse_year_month, to_decimal
from fund_loans_web.store import create_store_from_env

logger = get_logger(__name__)


def _payload() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def create_app(config: Optional[AppConfig] = None, store=None) -> Flask:
    """Build the Flask app.

    ``store`` defaults to a ``LoanStore`` on ``config.database_url``.
    """
    config = config or AppConfig.from_env()
    app = Flask(__name__)
    app.config["FUND_LOANS"] = config
    machine = LoanStateMachine(store if store is not None else create_store_from_env(config.database_url))
    app.extensions["loan_state_machine"] = machine

    @app.errorhandler(LoanNotFoundError)
    def handle_not_found(exc: LoanNotFoundError):
        return jsonify({"message": str(exc), "error": type(exc).__name__}), 404

    @app.errorhandler(LoanEngineError)
    def handle_engine_error(exc: LoanEngineError):
        return jsonify({"message": str(exc), "error": type(exc).__name__}), 400

    @app.get("/api/loan")
    def list_loans():
        return jsonify({"data": [loan_to_record(loan) for loan in machine.list_loans()]})

    @app.get("/api/loan/<loan_id>")
    def get_loan(loan_id: str):
        return jsonify({"data": loan_to_record(machine.get_loan(loan_id))})

    @app.post("/api/loan/create")
    def create_loan():
        payload = _payload()
        member_id = str(payload.get("memberId") or "").strip()
        if not member_id:
            return jsonify({"message": "Select a member", "error": "MissingMember"}), 400
        loan = machine.create_loan(
            member_id=member_id,
            member_name=str(payload.get("memberName") or ""),
            terms=terms_from_payload(payload),
        )
        return jsonify({"data": loan_to_record(loan)}), 201

    @app.put("/api/loan/<loan_id>")
    def update_loan(loan_id: str):
        payload = _payload()
        loan = machine.edit_terms(
            loan_id,
            lambda terms: merge_terms(terms, payload),
            member_name=payload.get("memberName"),
        )
        return jsonify({"data": loan_to_record(loan)})

    @app.delete("/api/loan/<loan_id>")
    def delete_loan(loan_id: str):
        machine.delete_loan(loan_id)
        return jsonify({"message": "Loan deleted"})

    @app.post("/api/loan/installment/<loan_id>")
    def add_installment(loan_id: str):
        installment = payment_from_payload(_payload())
        outcome = machine.record_payment(loan_id, installment.amount, installment.date)
        return jsonify({"data": payment_outcome_to_record(outcome)}), 201

    @app.post("/api/loan/amortization")
    def compute_amortization():
        payload = _payload()
        try:
            amount_paid = to_decimal(payload.get("amountPaid"))
        except ValueError as exc:
            raise LoanEngineError(f"Invalid amount paid: {payload.get('amountPaid')}") from exc
        outcome = evaluate_terms(terms_from_payload(payload), amount_paid or Decimal("0"))
        return jsonify({"data": outcome_to_record(outcome)})

    @app.get("/api/loan/<loan_id>/schedule")
    def loan_schedule(loan_id: str):
        loan = machine.get_loan(loan_id)
        start = request.args.get("start")
        try:
            start_date = parse_year_month(start) if start else add_months(loan.created_at.date(), 1)
        except ValueError as exc:
            raise LoanEngineError(str(exc)) from exc
        schedule = build_schedule(loan.terms, start_date)
        return jsonify({"data": schedule_to_records(schedule)})

    return app


def main() -> None:
    config = AppConfig.from_env()
    setup_logging(config.log_level, config.log_format)
    app = create_app(config)
    logger.info("Starting loan API on %s:%s", config.host, config.port)
    app.run(host=config.host, port=config.port)


if __name__ == "__main__":
    main()
