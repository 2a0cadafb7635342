from __future__ import annotations
import logging
from flask import Flask, jsonify, render_template_string, request
from .config import AppConfig, get_config
from .db import init_db
from .errors import (
    ConcurrencyConflictError,
    ConvergenceError,
    InvalidInputError,
    LoanNotFoundError,
    PersistenceError,
    XirrError,
)
from .logger import configure_logging
from .services.capabilities import TriggerContext
from .services.loans import (
    SqlRateSink,
    SqlTransactionSource,
    add_transaction,
    as_date,
    create_loan,
    get_loan,
    get_transaction,
    list_loans,
    transaction_counts,
    transaction_image,
)
from .services.parsing import parse_cash_flows, parse_date_iso, parse_money
from .services.recalculate import XirrRecalculator
from .services.xirr import newton_xirr

log = logging.getLogger(__name__)


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        raise InvalidInputError("request body must be a JSON object")
    return body


def _loan_json(loan, n_transactions: int | None = None) -> dict:
    out = {
        "id": loan.id,
        "name": loan.name,
        "xirr": loan.xirr,
        "xirr_updated_at": loan.xirr_updated_at.isoformat() if loan.xirr_updated_at else None,
        "version": loan.version,
    }
    if n_transactions is not None:
        out["transactions"] = n_transactions
    return out


def _error(exc: XirrError, status: int):
    return jsonify({"error": type(exc).__name__, "message": str(exc)}), status


def create_app(config: AppConfig | None = None) -> Flask:
    config = config or get_config()
    configure_logging(config)

    app = Flask(__name__)
    engine, Session = init_db(config.DATABASE_URI)
    app.config["XIRR_SETTINGS"] = config
    app.extensions["loan_xirr.engine"] = engine
    app.extensions["loan_xirr.session"] = Session

    @app.teardown_appcontext
    def remove_session(exc=None):
        Session.remove()

    @app.errorhandler(InvalidInputError)
    def on_invalid_input(exc):
        return _error(exc, 400)

    @app.errorhandler(LoanNotFoundError)
    def on_not_found(exc):
        return _error(exc, 404)

    @app.errorhandler(ConcurrencyConflictError)
    def on_conflict(exc):
        return _error(exc, 409)

    @app.errorhandler(ConvergenceError)
    def on_no_convergence(exc):
        return jsonify({
            "error": type(exc).__name__,
            "message": str(exc),
            "iterations": exc.iterations,
        }), 422

    @app.errorhandler(PersistenceError)
    def on_persistence(exc):
        return _error(exc, 500)

    def recalculator(s) -> XirrRecalculator:
        return XirrRecalculator(SqlTransactionSource(s), SqlRateSink(s), config)

    def fire_trigger(s, context: TriggerContext) -> dict:
        """Recalculate after a transaction change and report the outcome.

        The change itself is already committed; a failed recalculation leaves
        the stored rate as it was and is reported back instead of raised.
        """
        try:
            rate = recalculator(s).handle(context)
        except XirrError as exc:
            return {"status": "failed", "error": type(exc).__name__, "message": str(exc)}
        if rate is None:
            return {"status": "skipped"}
        return {"status": "ok", "xirr": rate}

    @app.get("/")
    def index():
        s = Session()
        counts = transaction_counts(s)
        loans = [_loan_json(l, counts.get(l.id, 0)) for l in list_loans(s)]
        html = """
        <html><head><meta charset="utf-8" />
        <title>Loans</title>
        <style>
          body{font-family:system-ui, -apple-system, Segoe UI, Roboto, Arial; margin:24px}
          table{border-collapse:collapse; width:100%} th,td{border:1px solid #ddd;padding:6px 8px;text-align:left}
          .muted{color:#888}
        </style></head><body>
        <h2>Loans</h2>
        <table><tr><th>Loan</th><th>Transactions</th><th>XIRR</th><th>Updated</th></tr>
        {% for l in loans %}
          <tr>
            <td>{{ l.name }}</td>
            <td>{{ l.transactions }}</td>
            <td>{% if l.xirr is not none %}{{ "%.2f"|format(l.xirr * 100) }}%{% else %}<span class="muted">–</span>{% endif %}</td>
            <td>{{ l.xirr_updated_at or '' }}</td>
          </tr>
        {% else %}
          <tr><td colspan="4" class="muted">no loans yet</td></tr>
        {% endfor %}
        </table>
        </body></html>
        """
        return render_template_string(html, loans=loans)

    # ---------- loans ----------
    @app.get("/api/loans")
    def api_loans():
        s = Session()
        counts = transaction_counts(s)
        return jsonify([_loan_json(l, counts.get(l.id, 0)) for l in list_loans(s)])

    @app.post("/api/loans")
    def api_create_loan():
        body = _json_body()
        name = body.get("name")
        if not isinstance(name, str) or not name.strip():
            raise InvalidInputError("loan name is required")
        loan = create_loan(Session(), name.strip())
        log.info("Loan created", extra={"loan_id": loan.id})
        return jsonify(_loan_json(loan, 0)), 201

    @app.get("/api/loans/<int:loan_id>")
    def api_loan(loan_id: int):
        loan = get_loan(Session(), loan_id)
        out = _loan_json(loan, len(loan.transactions))
        out["cash_flows"] = [transaction_image(tx) for tx in loan.transactions]
        return jsonify(out)

    @app.post("/api/loans/<int:loan_id>/recalculate")
    def api_recalculate(loan_id: int):
        rate = recalculator(Session()).recalculate(loan_id)
        return jsonify({"loan_id": loan_id, "xirr": rate})

    # ---------- transactions (each change fires the trigger) ----------
    @app.post("/api/loans/<int:loan_id>/transactions")
    def api_add_transaction(loan_id: int):
        body = _json_body()
        s = Session()
        tx = add_transaction(
            s,
            loan_id,
            parse_date_iso(body.get("date")),
            parse_money(body.get("cashflow")),
            body.get("note"),
        )
        image = transaction_image(tx)
        outcome = fire_trigger(s, TriggerContext("create", image))
        return jsonify({"transaction": image, "recalculation": outcome}), 201

    @app.put("/api/transactions/<int:transaction_id>")
    def api_update_transaction(transaction_id: int):
        body = _json_body()
        s = Session()
        tx = get_transaction(s, transaction_id)
        if tx is None:
            return jsonify({"error": "NotFound", "message": f"transaction {transaction_id} does not exist"}), 404
        pre_image = transaction_image(tx)
        if "date" in body:
            tx.date = as_date(parse_date_iso(body["date"]))
        if "cashflow" in body:
            tx.cashflow = parse_money(body["cashflow"])
        if "note" in body:
            tx.note = body["note"]
        s.commit()
        outcome = fire_trigger(s, TriggerContext("update", pre_image))
        return jsonify({"transaction": transaction_image(tx), "recalculation": outcome})

    @app.delete("/api/transactions/<int:transaction_id>")
    def api_delete_transaction(transaction_id: int):
        s = Session()
        tx = get_transaction(s, transaction_id)
        if tx is None:
            return jsonify({"error": "NotFound", "message": f"transaction {transaction_id} does not exist"}), 404
        pre_image = transaction_image(tx)
        s.delete(tx)
        s.commit()
        outcome = fire_trigger(s, TriggerContext("delete", pre_image))
        return jsonify({"transaction": pre_image, "recalculation": outcome})

    # ---------- pure computation ----------
    @app.post("/api/xirr")
    def api_xirr():
        body = _json_body()
        cash_flows = parse_cash_flows(body.get("cash_flows"))
        max_iterations = body.get("max_iterations", config.XIRR_MAX_ITERATIONS)
        # clients may lower the iteration limit but never raise it
        if isinstance(max_iterations, int) and max_iterations > config.XIRR_MAX_ITERATIONS:
            raise InvalidInputError(
                f"max_iterations may not exceed {config.XIRR_MAX_ITERATIONS}, got {max_iterations}"
            )
        result = newton_xirr(
            cash_flows,
            guess=body.get("guess", config.XIRR_GUESS),
            tolerance=body.get("tolerance", config.XIRR_TOLERANCE),
            max_iterations=max_iterations,
        )
        return jsonify({"xirr": result.rate, "iterations": result.iterations})

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
