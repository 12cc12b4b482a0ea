"""Integration tests for API endpoints"""

import pytest
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from lending_engine.domain.exceptions import TransferAPIError
from lending_engine.domain.models import LoanStatus, PaymentStatus
from lending_engine.infrastructure.database.repositories import JobLockRepository
from lending_engine.services.payment_processor import JOB_NAME
from conftest import CUSTOMER_INFO, LINKED_BANK_DATA


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["service"] == "lending-engine"


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "lending_decision_total" in response.text


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_origination_flow(client: TestClient):
    """Create -> submit -> select offer -> fund"""
    response = client.post("/v1/applications", json={"job_reference": "JOB-1", "customer_reference": "CUST-1"})
    assert response.status_code == 201
    application_id = response.json()["application_id"]
    assert response.json()["status"] == "initiated"

    response = client.post(
        f"/v1/applications/{application_id}/submit",
        json={"loan_amount_cents": 300_000, "bank_data": LINKED_BANK_DATA, "customer_info": CUSTOMER_INFO},
    )
    assert response.status_code == 200
    decision = response.json()
    assert decision["approved"] is True
    assert decision["decision_status"] == "approved"
    assert [o["term_months"] for o in decision["offers"]] == [24, 48, 60]

    response = client.get(f"/v1/applications/{application_id}/decision")
    assert response.status_code == 200
    assert response.json()["score"] == decision["score"]

    offer_id = decision["offers"][0]["offer_id"]
    response = client.post(f"/v1/offers/{offer_id}/select")
    assert response.status_code == 200
    assert response.json()["selected"] is True

    response = client.post(f"/v1/applications/{application_id}/fund", json={"funding_date": "2024-01-15"})
    assert response.status_code == 201
    loan = response.json()
    assert loan["status"] == "funded"
    assert loan["funded_amount_cents"] == 300_000
    assert len(loan["payments"]) == 24
    assert loan["payments"][0]["due_date"] == "2024-02-15"

    response = client.get(f"/v1/loans/{loan['loan_id']}")
    assert response.status_code == 200
    assert response.json()["loan_id"] == loan["loan_id"]


def test_submit_twice_conflicts(client: TestClient):
    application_id = client.post("/v1/applications", json={"job_reference": "J", "customer_reference": "C"}).json()["application_id"]
    body = {"loan_amount_cents": 300_000, "bank_data": LINKED_BANK_DATA}

    assert client.post(f"/v1/applications/{application_id}/submit", json=body).status_code == 200
    assert client.post(f"/v1/applications/{application_id}/submit", json=body).status_code == 409


@pytest.mark.parametrize(
    "body",
    [
        {"loan_amount_cents": 0, "bank_data": {"institution_name": "Chase"}},
        {"loan_amount_cents": 100_000},
    ],
)
def test_submit_validation(client: TestClient, body):
    application_id = client.post("/v1/applications", json={"job_reference": "J", "customer_reference": "C"}).json()["application_id"]

    response = client.post(f"/v1/applications/{application_id}/submit", json=body)

    assert response.status_code == 422


def test_unknown_ids(client: TestClient):
    assert client.get("/v1/loans/not-a-uuid").status_code == 400
    assert client.get("/v1/loans/00000000-0000-0000-0000-000000000000").status_code == 404
    assert client.get("/v1/loans/00000000-0000-0000-0000-000000000000/payoff-quote").status_code == 404
    assert client.get("/v1/applications/00000000-0000-0000-0000-000000000000/decision").status_code == 404
    assert client.post("/v1/offers/00000000-0000-0000-0000-000000000000/select").status_code == 404


def test_payoff_quote_and_execute(client: TestClient, make_loan, event_client):
    loan = make_loan()
    loan_id = str(loan.id)

    quote = client.get(f"/v1/loans/{loan_id}/payoff-quote").json()
    assert quote["total_payoff_cents"] == 240_000
    assert quote["breakdown"]["payments_remaining"] == 24

    response = client.post(f"/v1/loans/{loan_id}/payoff", json={"quote_valid_until": quote["valid_until"]})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == PaymentStatus.PROCESSING
    assert data["amount_cents"] == 240_000
    assert data["transfer_id"] == "tr-1"
    assert event_client.published[0]["event"] == "PAYOFF_INITIATED"


def test_payoff_with_expired_quote(client: TestClient, make_loan):
    loan = make_loan()
    expired = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()

    response = client.post(f"/v1/loans/{loan.id}/payoff", json={"quote_valid_until": expired})

    assert response.status_code == 400


def test_payoff_on_paid_off_loan(client: TestClient, make_loan):
    loan = make_loan(status=LoanStatus.PAID_OFF)
    valid_until = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()

    response = client.post(f"/v1/loans/{loan.id}/payoff", json={"quote_valid_until": valid_until})

    assert response.status_code == 409


def test_payoff_provider_unavailable(client: TestClient, make_loan, transfer_client):
    loan = make_loan()
    transfer_client.results.append(TransferAPIError("Transfer API unreachable"))
    valid_until = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()

    response = client.post(f"/v1/loans/{loan.id}/payoff", json={"quote_valid_until": valid_until})

    assert response.status_code == 503


def test_cron_requires_token(client: TestClient):
    assert client.post("/v1/cron/process-payments").status_code == 401
    assert client.post("/v1/cron/process-payments", headers={"Authorization": "Bearer wrong"}).status_code == 401
    assert client.get("/v1/cron/process-payments").status_code == 401


def test_cron_run(client: TestClient, make_loan, cron_headers, event_client):
    """A loan funded in January 2024 has its whole schedule due"""
    make_loan()

    response = client.post("/v1/cron/process-payments", headers=cron_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["processed"] == 24
    assert data["successful"] == 24
    assert data["sync"] == {"checked": 0, "updated": 0, "errors": []}
    assert event_client.published == []


def test_cron_overlapping_run(client: TestClient, db: Session, cron_headers):
    JobLockRepository(db).acquire(JOB_NAME, "other-worker", 3600)

    response = client.post("/v1/cron/process-payments", headers=cron_headers)

    assert response.status_code == 409


def test_cron_queue_status(client: TestClient, make_loan, cron_headers):
    make_loan()

    response = client.get("/v1/cron/process-payments", headers=cron_headers)

    assert response.status_code == 200
    assert response.json()["due_today"] == 24


def test_admin_requires_token(client: TestClient, make_loan):
    loan = make_loan()
    payment_id = loan.payments[0].id

    assert client.post(f"/v1/admin/payments/{payment_id}/retry").status_code == 401
    assert client.post(f"/v1/admin/payments/{payment_id}/mark-paid").status_code == 401


def test_admin_retry(client: TestClient, db: Session, make_loan, admin_headers):
    loan = make_loan()
    payment = loan.payments[0]
    payment.status = PaymentStatus.FAILED
    payment.requires_action = True
    db.commit()

    response = client.post(f"/v1/admin/payments/{payment.id}/retry", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["status"] == PaymentStatus.SCHEDULED
    assert response.json()["requires_action"] is False


def test_admin_retry_wrong_state(client: TestClient, make_loan, admin_headers):
    loan = make_loan()

    response = client.post(f"/v1/admin/payments/{loan.payments[0].id}/retry", headers=admin_headers)

    assert response.status_code == 400


def test_admin_mark_paid(client: TestClient, make_loan, admin_headers, event_client):
    loan = make_loan()

    response = client.post(
        f"/v1/admin/payments/{loan.payments[0].id}/mark-paid",
        json={"note": "Paid in cash at the office"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["status"] == PaymentStatus.COMPLETED
    assert [e["event"] for e in event_client.published] == ["PAYMENT_COMPLETED"]


def test_admin_unknown_payment(client: TestClient, admin_headers):
    response = client.post("/v1/admin/payments/00000000-0000-0000-0000-000000000000/retry", headers=admin_headers)

    assert response.status_code == 404
