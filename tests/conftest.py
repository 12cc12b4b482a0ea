"""Pytest fixtures for testing"""

import pytest
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Generator, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from lending_engine.api.main import create_app
from lending_engine.api.dependencies import get_event_client, get_transfer_client
from lending_engine.config import settings
from lending_engine.domain.installments import generate_payment_schedule
from lending_engine.domain.models import (
    ApplicationStatus,
    DecisionStatus,
    LoanStatus,
    SettlementCredentials,
    TransferResult,
    TransferStatus,
)
from lending_engine.domain.offers import calculate_monthly_payment
from lending_engine.domain.scoring import EVALUATOR_VERSION
from lending_engine.infrastructure.database.models import Application, Base, Decision, Offer
from lending_engine.infrastructure.database.repositories import LoanRepository, PaymentRepository
from lending_engine.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

WEBHOOK_SECRET = "whsec-test"
CRON_SECRET = "cron-test"
ADMIN_TOKEN = "admin-test"

LINKED_BANK_DATA = {
    "institution_name": "Chase",
    "account_mask": "4321",
    "account_type": "checking",
    "balance": {"current_cents": 1_000_000, "available_cents": 1_000_000},
    "access_token": "access-sandbox-123",
    "account_id": "acct-123",
}

CUSTOMER_INFO = {"first_name": "Jane", "last_name": "Doe", "email": "jane@example.com"}


@dataclass
class FakeTransferClient:
    """In-memory stand-in for TransferClient"""

    results: List[Any] = field(default_factory=list)
    statuses: Dict[str, TransferStatus] = field(default_factory=dict)
    calls: List[Dict[str, Any]] = field(default_factory=list)
    _counter: int = 0

    async def initiate_transfer(
        self,
        credentials: SettlementCredentials,
        amount_cents: int,
        description: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> TransferResult:
        self.calls.append(
            {"credentials": credentials, "amount_cents": amount_cents, "description": description, "metadata": metadata}
        )
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        self._counter += 1
        return TransferResult(success=True, transfer_id=f"tr-{self._counter}", status="pending")

    async def get_transfer(self, transfer_id: str) -> TransferStatus:
        status = self.statuses.get(transfer_id)
        if isinstance(status, Exception):
            raise status
        return status or TransferStatus(transfer_id=transfer_id, status="pending")


@dataclass
class FakeEventClient:
    published: List[Dict[str, Any]] = field(default_factory=list)

    async def publish(self, events: List[Dict[str, Any]]) -> int:
        self.published.extend(events)
        return len(events)


@pytest.fixture(autouse=True)
def boundary_secrets(monkeypatch):
    """Configure the secrets every protected endpoint checks"""
    monkeypatch.setattr(settings, "transfer_webhook_secret", WEBHOOK_SECRET)
    monkeypatch.setattr(settings, "cron_secret", CRON_SECRET)
    monkeypatch.setattr(settings, "admin_api_token", ADMIN_TOKEN)
    monkeypatch.setattr(settings, "environment", "test")


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def transfer_client() -> FakeTransferClient:
    return FakeTransferClient()


@pytest.fixture
def event_client() -> FakeEventClient:
    return FakeEventClient()


@pytest.fixture
def client(db: Session, transfer_client: FakeTransferClient, event_client: FakeEventClient) -> TestClient:
    """Create FastAPI test client with test database and fake provider clients"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_transfer_client] = lambda: transfer_client
    app.dependency_overrides[get_event_client] = lambda: event_client
    return TestClient(app)


@pytest.fixture
def make_loan(db: Session):
    """Factory for a funded loan with its full payment schedule"""

    def _make(
        financed_cents: int = 240_000,
        apr: float = 0.0,
        term_months: int = 24,
        funding_date: date = date(2024, 1, 15),
        status: str = LoanStatus.REPAYING,
        bank_data: Optional[Dict[str, Any]] = LINKED_BANK_DATA,
    ):
        application = Application(
            job_reference="JOB-100",
            customer_reference="CUST-100",
            status=ApplicationStatus.FUNDED,
            requested_cents=financed_cents,
            bank_data=bank_data,
            customer_info=CUSTOMER_INFO,
        )
        db.add(application)
        db.flush()

        monthly = calculate_monthly_payment(financed_cents, term_months, apr)
        decision = Decision(
            application_id=application.id,
            score=720,
            decision_status=DecisionStatus.APPROVED,
            risk_factors=[],
            positive_factors=[],
            max_loan_amount_cents=financed_cents,
            evaluator_version=EVALUATOR_VERSION,
        )
        db.add(decision)
        db.flush()

        offer = Offer(
            decision_id=decision.id,
            term_months=term_months,
            apr=apr,
            monthly_payment_cents=monthly,
            total_amount_cents=monthly * term_months,
            selected=True,
        )
        db.add(offer)
        db.flush()

        loan = LoanRepository(db).create_loan(application.id, offer, financed_cents, funding_date)
        loan.status = status
        PaymentRepository(db).create_schedule(
            loan.id,
            generate_payment_schedule(financed_cents, apr, term_months, funding_date, monthly_payment_cents=monthly),
        )
        db.commit()
        return loan

    return _make


@pytest.fixture
def cron_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {CRON_SECRET}"}


@pytest.fixture
def admin_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
