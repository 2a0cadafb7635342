"""
Tests for the Flask surface in loan_xirr.app.

Transaction changes fire the recalculation trigger; the response reports
whether the stored rate was updated.
"""

import pytest

from loan_xirr.app import create_app


@pytest.fixture
def client(config):
    app = create_app(config)
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c
    app.extensions["loan_xirr.engine"].dispose()


def _new_loan(client, name="Loan A"):
    resp = client.post("/api/loans", json={"name": name})
    assert resp.status_code == 201
    return resp.get_json()["id"]


def test_transaction_changes_recalculate_the_loan(client):
    loan_id = _new_loan(client)

    first = client.post(
        f"/api/loans/{loan_id}/transactions", json={"date": "2023-01-01", "cashflow": "-1000.00"}
    )
    assert first.status_code == 201
    # a single cash flow has no root
    assert first.get_json()["recalculation"]["status"] == "failed"
    assert first.get_json()["recalculation"]["error"] == "NonFiniteIterateError"

    second = client.post(
        f"/api/loans/{loan_id}/transactions", json={"date": "2024-01-01", "cashflow": 1100}
    )
    outcome = second.get_json()["recalculation"]
    assert outcome["status"] == "ok"
    assert outcome["xirr"] == pytest.approx(0.10, abs=1e-3)

    loan = client.get(f"/api/loans/{loan_id}").get_json()
    assert loan["xirr"] == pytest.approx(outcome["xirr"])
    assert loan["version"] == 2
    assert [cf["date"] for cf in loan["cash_flows"]] == ["2023-01-01", "2024-01-01"]


def test_update_and_delete_fire_the_trigger(client):
    loan_id = _new_loan(client)
    client.post(f"/api/loans/{loan_id}/transactions", json={"date": "2023-01-01", "cashflow": -1000})
    repayment = client.post(
        f"/api/loans/{loan_id}/transactions", json={"date": "2024-01-01", "cashflow": 1100}
    ).get_json()["transaction"]

    updated = client.put(f"/api/transactions/{repayment['id']}", json={"cashflow": "1200"})
    assert updated.status_code == 200
    rate = updated.get_json()["recalculation"]["xirr"]
    assert rate == pytest.approx(0.2, abs=2e-3)

    deleted = client.delete(f"/api/transactions/{repayment['id']}")
    assert deleted.get_json()["recalculation"]["status"] == "failed"
    # the failed run leaves the last good rate in place
    assert client.get(f"/api/loans/{loan_id}").get_json()["xirr"] == pytest.approx(rate)


def test_missing_transaction_is_404(client):
    assert client.put("/api/transactions/999", json={"cashflow": 1}).status_code == 404
    assert client.delete("/api/transactions/999").status_code == 404


def test_explicit_recalculate(client):
    loan_id = _new_loan(client)
    client.post(f"/api/loans/{loan_id}/transactions", json={"date": "2023-01-01", "cashflow": -1000})

    failed = client.post(f"/api/loans/{loan_id}/recalculate")
    assert failed.status_code == 422
    assert failed.get_json()["error"] == "NonFiniteIterateError"

    client.post(f"/api/loans/{loan_id}/transactions", json={"date": "2024-01-01", "cashflow": 1100})
    ok = client.post(f"/api/loans/{loan_id}/recalculate")
    assert ok.status_code == 200
    assert ok.get_json()["xirr"] == pytest.approx(0.10, abs=1e-3)


def test_unknown_loan_is_404(client):
    assert client.get("/api/loans/123").status_code == 404
    assert client.post("/api/loans/123/recalculate").status_code == 404
    resp = client.post("/api/loans/123/transactions", json={"date": "2023-01-01", "cashflow": 1})
    assert resp.status_code == 404
    assert resp.get_json()["error"] == "LoanNotFoundError"


@pytest.mark.parametrize(
    "body",
    [
        {"date": "01/02/2023", "cashflow": 1},
        {"date": "2023-01-01", "cashflow": "ten"},
        {"date": "2023-01-01"},
    ],
)
def test_bad_transaction_payload_is_400(client, body):
    loan_id = _new_loan(client)
    resp = client.post(f"/api/loans/{loan_id}/transactions", json=body)
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "InvalidInputError"


def test_loan_requires_name(client):
    assert client.post("/api/loans", json={}).status_code == 400
    assert client.post("/api/loans", data="not json").status_code == 400


def test_index_lists_loans(client):
    loan_id = _new_loan(client, "Bridge loan")
    client.post(f"/api/loans/{loan_id}/transactions", json={"date": "2023-01-01", "cashflow": -1000})
    client.post(f"/api/loans/{loan_id}/transactions", json={"date": "2024-01-01", "cashflow": 1100})

    html = client.get("/").get_data(as_text=True)
    assert "Bridge loan" in html
    assert "10.01%" in html

    listed = client.get("/api/loans").get_json()
    assert listed[0]["transactions"] == 2


def test_pure_xirr_endpoint(client):
    resp = client.post(
        "/api/xirr",
        json={
            "cash_flows": [
                {"date": "2023-01-01", "amount": -1000},
                {"date": "2023-07-01", "amount": "50"},
                {"date": "2024-01-01", "amount": 1000},
            ]
        },
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert 0.0 < body["xirr"] < 0.1
    assert body["iterations"] >= 1


def test_pure_xirr_endpoint_failures(client):
    single = client.post("/api/xirr", json={"cash_flows": [{"date": "2023-01-01", "amount": 5}]})
    assert single.status_code == 422
    assert single.get_json()["iterations"] == 1

    limited = client.post(
        "/api/xirr",
        json={
            "cash_flows": [
                {"date": "2023-01-01", "amount": -1000},
                {"date": "2023-07-01", "amount": 50},
                {"date": "2024-01-01", "amount": 1000},
            ],
            "max_iterations": 1,
        },
    )
    assert limited.status_code == 422
    assert limited.get_json()["error"] == "ConvergenceError"

    assert client.post("/api/xirr", json={"cash_flows": []}).status_code == 400
    assert client.post("/api/xirr", json={"cash_flows": [{"date": "2023-01-01"}]}).status_code == 400
    bad_tolerance = client.post(
        "/api/xirr",
        json={"cash_flows": [{"date": "2023-01-01", "amount": -1}], "tolerance": -1},
    )
    assert bad_tolerance.status_code == 400


def test_pure_xirr_endpoint_accepts_aware_and_naive_dates(client):
    resp = client.post(
        "/api/xirr",
        json={
            "cash_flows": [
                {"date": "2023-01-01T00:00:00", "amount": -1000},
                {"date": "2024-01-01T00:00:00+00:00", "amount": 1100},
            ]
        },
    )
    assert resp.status_code == 200
    assert resp.get_json()["xirr"] == pytest.approx(0.10, abs=1e-3)


def test_pure_xirr_endpoint_caps_iteration_limit(client, config):
    flows = [
        {"date": "2023-01-01", "amount": -1000},
        {"date": "2024-01-01", "amount": 1100},
    ]
    too_many = client.post(
        "/api/xirr", json={"cash_flows": flows, "max_iterations": config.XIRR_MAX_ITERATIONS + 1}
    )
    assert too_many.status_code == 400
    assert too_many.get_json()["error"] == "InvalidInputError"

    at_limit = client.post(
        "/api/xirr", json={"cash_flows": flows, "max_iterations": config.XIRR_MAX_ITERATIONS}
    )
    assert at_limit.status_code == 200
